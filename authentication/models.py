from django.db import models
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.validators import RegexValidator
from django.conf import settings
from django.utils import timezone
from decimal import Decimal
from zoneinfo import ZoneInfo
import uuid


class CustomUserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('The Email field must be set')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_super_admin', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class TimeStampedModel(models.Model):
    """Base model with created_at and updated_at fields"""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# =============== USER MANAGEMENT ===============

class CustomUser(AbstractUser):
    """Extended User model. Staff and customers share it."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_regex = RegexValidator(regex=r'^\+?1?\d{9,15}$')
    phone = models.CharField(validators=[phone_regex], max_length=17, blank=True)
    email = models.EmailField(unique=True)
    pin = models.CharField(max_length=6, blank=True)  # staff quick-login PIN, optional
    date_of_birth = models.DateField(null=True, blank=True)
    is_super_admin = models.BooleanField(default=False)  # Can access all cafes
    last_login_at = models.DateTimeField(null=True, blank=True)

    username = None
    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']
    objects = CustomUserManager()

    class Meta:
        db_table = 'users'

    def __str__(self):
        return self.email

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email


# =============== CAFE & COUNTER MODELS ===============

class Cafe(TimeStampedModel):
    """Tenant: a cafe location owning menus, orders, staff and stock"""
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('MAINTENANCE', 'Maintenance'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(max_length=80, unique=True)
    hostname = models.CharField(max_length=255, blank=True, null=True, unique=True)
    description = models.TextField(blank=True)

    # Contact & Address
    location = models.CharField(max_length=255, blank=True)
    address = models.JSONField(default=dict, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')
    open_time = models.TimeField(null=True, blank=True)
    close_time = models.TimeField(null=True, blank=True)
    timezone = models.CharField(max_length=50, default='UTC')

    # Overrides for settings.TABLETAP keys, lower-case
    settings = models.JSONField(default=dict, blank=True)

    owner = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='owned_cafes'
    )

    class Meta:
        db_table = 'cafes'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.slug})"

    @property
    def is_active(self):
        return self.status == 'ACTIVE'

    def get_setting(self, key, default=None):
        """
        Look up a business setting, preferring this cafe's override.

        Keys are the lower-case form of the TABLETAP settings dict.
        Numeric defaults that are Decimals come back as Decimals even
        when the override was stored in JSON as a string or float.
        """
        fallback = settings.TABLETAP.get(key.upper(), default)
        value = (self.settings or {}).get(key.lower(), fallback)
        if isinstance(fallback, Decimal) and not isinstance(value, Decimal):
            return Decimal(str(value))
        return value

    def is_open(self, at=None):
        """Opening hours check in the cafe's own time zone; a cafe without hours is open whenever it is ACTIVE"""
        if not self.is_active:
            return False
        if not self.open_time or not self.close_time:
            return True
        current = timezone.localtime(at or timezone.now(), ZoneInfo(self.timezone)).time()
        if self.open_time <= self.close_time:
            return self.open_time <= current <= self.close_time
        # overnight hours, e.g. 18:00 to 02:00
        return current >= self.open_time or current <= self.close_time


class Counter(TimeStampedModel):
    """Service point inside a cafe that orders are routed to"""
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('MAINTENANCE', 'Maintenance'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='counters')
    number = models.PositiveIntegerField()
    name = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')
    max_concurrent_orders = models.PositiveIntegerField(default=10)

    class Meta:
        db_table = 'counters'
        unique_together = ['cafe', 'number']
        ordering = ['number']

    def __str__(self):
        return f"{self.cafe.name} - Counter {self.number}"

    @property
    def active_order_count(self):
        return self.orders.filter(status__in=['PENDING', 'PREPARING']).count()

    @property
    def is_available(self):
        return self.status == 'ACTIVE' and self.active_order_count < self.max_concurrent_orders
