from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from authentication.models import Cafe, CustomUser, TimeStampedModel
from menu.models import MenuItem


class InventoryItem(TimeStampedModel):
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('DISCONTINUED', 'Discontinued'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='inventory_items')
    sku = models.CharField(max_length=50)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    unit = models.CharField(max_length=20, default='unit')

    current_stock = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    minimum_stock = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0'))
    maximum_stock = models.DecimalField(max_digits=12, decimal_places=3, null=True, blank=True)
    reorder_level = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0'))

    unit_cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    supplier = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')
    last_restocked_at = models.DateTimeField(null=True, blank=True)
    expiry_date = models.DateField(null=True, blank=True)

    class Meta:
        db_table = 'inventory_items'
        unique_together = ['cafe', 'sku']
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def is_low_stock(self):
        return self.current_stock <= self.minimum_stock

    @property
    def is_out_of_stock(self):
        return self.current_stock == 0

    @property
    def is_overstock(self):
        return self.maximum_stock is not None and self.current_stock > self.maximum_stock

    @property
    def is_expired(self):
        return self.expiry_date is not None and self.expiry_date < timezone.localdate()

    @property
    def is_expiring_soon(self):
        if self.expiry_date is None or self.is_expired:
            return False
        days = self.cafe.get_setting('stock_expiry_warning_days')
        return self.expiry_date <= timezone.localdate() + timedelta(days=days)

    @property
    def is_critical(self):
        ratio = self.cafe.get_setting('critical_stock_ratio')
        return self.current_stock < self.reorder_level * ratio

    @property
    def stock_value(self):
        return (self.current_stock * self.unit_cost).quantize(Decimal('0.01'))


class RecipeIngredient(models.Model):
    """How much of an inventory item one unit of a menu item consumes"""
    menu_item = models.ForeignKey(MenuItem, on_delete=models.CASCADE, related_name='ingredients')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='used_in')
    quantity = models.DecimalField(max_digits=10, decimal_places=3, validators=[MinValueValidator(Decimal('0.001'))])

    class Meta:
        db_table = 'recipe_ingredients'
        unique_together = ['menu_item', 'inventory_item']

    def __str__(self):
        return f"{self.menu_item.name}: {self.quantity} {self.inventory_item.unit} {self.inventory_item.name}"


class StockMovement(models.Model):
    MOVEMENT_TYPES = [
        ('RESTOCK', 'Restock'),
        ('SALE', 'Sale'),
        ('RETURN', 'Return'),
        ('ADJUSTMENT', 'Adjustment'),
        ('WASTE', 'Waste'),
    ]

    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='movements')
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPES)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)  # signed
    stock_after = models.DecimalField(max_digits=12, decimal_places=3)
    reference = models.CharField(max_length=100, blank=True)
    note = models.CharField(max_length=500, blank=True)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.movement_type} {self.quantity} {self.inventory_item.sku}"


class InventoryAlert(models.Model):
    ALERT_TYPES = [
        ('LOW_STOCK', 'Low Stock'),
        ('OUT_OF_STOCK', 'Out of Stock'),
        ('OVERSTOCK', 'Overstock'),
        ('EXPIRING_SOON', 'Expiring Soon'),
        ('EXPIRED', 'Expired'),
    ]
    SEVERITY_CHOICES = [
        ('LOW', 'Low'),
        ('MEDIUM', 'Medium'),
        ('HIGH', 'High'),
        ('CRITICAL', 'Critical'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='inventory_alerts')
    inventory_item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name='alerts')
    alert_type = models.CharField(max_length=20, choices=ALERT_TYPES)
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES)
    message = models.CharField(max_length=500)

    is_resolved = models.BooleanField(default=False)
    resolved_at = models.DateTimeField(null=True, blank=True)
    acknowledged_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='acknowledged_alerts'
    )
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'inventory_alerts'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.alert_type} ({self.severity}) {self.inventory_item.sku}"
