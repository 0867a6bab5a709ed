from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal

from authentication.models import Cafe, TimeStampedModel


class MenuCategory(TimeStampedModel):
    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='menu_categories')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    image_url = models.URLField(blank=True)
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return str(self.name)

    class Meta:
        db_table = 'menu_categories'
        unique_together = ['cafe', 'name']
        ordering = ['sort_order', 'name']
        verbose_name_plural = "Menu Categories"


class Customization(TimeStampedModel):
    """A reusable option group (size, milk, extra shot) attached to menu items"""
    TYPE_CHOICES = [
        ('SIZE', 'Size'),
        ('ADDON', 'Add-on'),
        ('MODIFIER', 'Modifier'),
        ('SUBSTITUTION', 'Substitution'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='customizations')
    name = models.CharField(max_length=100)
    customization_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='MODIFIER')
    is_required = models.BooleanField(default=False)
    max_selections = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'menu_customizations'
        unique_together = ['cafe', 'name']


class CustomizationOption(models.Model):
    customization = models.ForeignKey(Customization, on_delete=models.CASCADE, related_name='options')
    name = models.CharField(max_length=100)
    price_modifier = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'))
    is_available = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)

    def __str__(self):
        return f"{self.customization.name} - {self.name}"

    class Meta:
        db_table = 'menu_customization_options'
        ordering = ['sort_order', 'id']


class MenuItem(TimeStampedModel):
    STATUS_CHOICES = [
        ('AVAILABLE', 'Available'),
        ('UNAVAILABLE', 'Unavailable'),
        ('SEASONAL', 'Seasonal'),
        ('DISCONTINUED', 'Discontinued'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='menu_items')
    category = models.ForeignKey(MenuCategory, on_delete=models.CASCADE, related_name='items')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='AVAILABLE')
    preparation_time = models.PositiveIntegerField(default=5)  # minutes

    image_url = models.URLField(blank=True)
    allergens = models.JSONField(default=list, blank=True)
    nutritional_info = models.JSONField(default=dict, blank=True)
    sort_order = models.IntegerField(default=0)
    is_featured = models.BooleanField(default=False)

    customizations = models.ManyToManyField(Customization, blank=True, related_name='menu_items')

    def __str__(self):
        return self.name

    @property
    def is_orderable(self):
        return self.status == 'AVAILABLE' and self.category.is_active

    def resolve_customizations(self, selections):
        """
        Validate a list of ``{"customization_id", "option_ids"}`` selections.

        Returns ``(snapshot, price_delta, errors)``: the snapshot is what an
        order or cart line stores, errors are ``(code, message)`` pairs.
        """
        errors = []
        snapshot = []
        price_delta = Decimal('0.00')

        available = {c.id: c for c in self.customizations.filter(is_active=True).prefetch_related('options')}
        chosen = {}
        for selection in selections or []:
            try:
                customization_id = int(selection.get('customization_id'))
            except (TypeError, ValueError):
                errors.append(('INVALID_CUSTOMIZATION', 'Customization id is missing or invalid'))
                continue
            option_ids = selection.get('option_ids') or []
            if customization_id in chosen:
                errors.append(('INVALID_CUSTOMIZATION', f'Customization {customization_id} is selected more than once'))
                continue
            if len({str(option_id) for option_id in option_ids}) != len(option_ids):
                errors.append(('INVALID_CUSTOMIZATION', f'Options repeat within customization {customization_id}'))
                continue
            customization = available.get(customization_id)
            if customization is None:
                errors.append(('INVALID_CUSTOMIZATION', f'Customization {customization_id} does not apply to {self.name}'))
                continue
            if len(option_ids) > customization.max_selections:
                errors.append((
                    'INVALID_CUSTOMIZATION',
                    f'{customization.name} allows at most {customization.max_selections} selection(s)'
                ))
                continue

            options = {o.id: o for o in customization.options.all()}
            picked = []
            for option_id in option_ids:
                option = options.get(int(option_id)) if str(option_id).isdigit() else None
                if option is None or not option.is_available:
                    errors.append(('INVALID_CUSTOMIZATION', f'Option {option_id} is not available for {customization.name}'))
                    continue
                picked.append(option)
                price_delta += option.price_modifier
            chosen[customization_id] = picked
            if picked:
                snapshot.append({
                    'customization_id': customization.id,
                    'name': customization.name,
                    'options': [
                        {'option_id': o.id, 'name': o.name, 'price_modifier': str(o.price_modifier)}
                        for o in picked
                    ],
                })

        for customization in available.values():
            if customization.is_required and not chosen.get(customization.id):
                errors.append(('REQUIRED_CUSTOMIZATION_MISSING', f'{customization.name} is required for {self.name}'))

        snapshot.sort(key=lambda entry: entry['customization_id'])
        return snapshot, price_delta, errors

    class Meta:
        db_table = 'menu_items'
        unique_together = ['cafe', 'name']
        ordering = ['sort_order', 'name']
