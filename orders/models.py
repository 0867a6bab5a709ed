from django.db import models, transaction
from django.db.models.functions import Length
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal

from authentication.models import Cafe, Counter, CustomUser, TimeStampedModel
from menu.models import MenuItem


# Allowed next statuses; COMPLETED and CANCELLED are terminal
ORDER_TRANSITIONS = {
    'PENDING': ['PREPARING', 'CANCELLED'],
    'PREPARING': ['READY', 'CANCELLED'],
    'READY': ['COMPLETED', 'CANCELLED'],
    'COMPLETED': [],
    'CANCELLED': [],
}

ACTIVE_ORDER_STATUSES = ['PENDING', 'PREPARING']


class Order(TimeStampedModel):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('PREPARING', 'Preparing'),
        ('READY', 'Ready'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]
    ORDER_TYPE_CHOICES = [
        ('DINE_IN', 'Dine In'),
        ('TAKEAWAY', 'Takeaway'),
        ('DELIVERY', 'Delivery'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('UNPAID', 'Unpaid'),
        ('PARTIALLY_PAID', 'Partially Paid'),
        ('PAID', 'Paid'),
        ('REFUNDED', 'Refunded'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='orders')
    order_number = models.CharField(max_length=20, editable=False)
    customer = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='customer_orders'
    )
    created_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_orders'
    )
    counter = models.ForeignKey(Counter, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    order_type = models.CharField(max_length=20, choices=ORDER_TYPE_CHOICES, default='DINE_IN')
    table_number = models.CharField(max_length=10, blank=True)
    customer_name = models.CharField(max_length=100, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    delivery_address = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='UNPAID')

    # Pricing fields
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    service_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    tip = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    discount_code = models.CharField(max_length=50, blank=True)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    notes = models.TextField(blank=True)
    cancellation_reason = models.CharField(max_length=500, blank=True)

    estimated_ready_time = models.DateTimeField(null=True, blank=True)
    preparing_at = models.DateTimeField(null=True, blank=True)
    ready_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    loyalty_points_awarded = models.BooleanField(default=False)

    class Meta:
        db_table = 'orders'
        unique_together = ['cafe', 'order_number']
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if self.order_number:
            return super().save(*args, **kwargs)
        with transaction.atomic():
            self.order_number = self.next_order_number(self.cafe)
            super().save(*args, **kwargs)

    @staticmethod
    def next_order_number(cafe):
        """
        YYYYMMDD followed by the cafe's sequence for the day, zero-padded
        to 4 digits. Holds a lock on the cafe row until the caller's
        transaction ends, so concurrent orders get distinct numbers.
        """
        Cafe.objects.select_for_update().filter(pk=cafe.pk).first()
        prefix = timezone.localdate().strftime('%Y%m%d')
        # longer numbers sort after 9999 once the sequence grows a digit
        last_number = Order.objects.filter(
            cafe=cafe,
            order_number__startswith=prefix
        ).annotate(number_length=Length('order_number')).order_by(
            '-number_length', '-order_number'
        ).values_list('order_number', flat=True).first()
        sequence = int(last_number[len(prefix):]) + 1 if last_number else 1
        return f"{prefix}{sequence:04d}"

    def __str__(self):
        return f"#{self.order_number} - {self.get_order_type_display()} ({self.status})"

    @property
    def is_terminal(self):
        return not ORDER_TRANSITIONS[self.status]

    def can_transition_to(self, new_status):
        return new_status in ORDER_TRANSITIONS.get(self.status, [])

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items.all())

    @property
    def is_overdue(self):
        return (
            self.status in ACTIVE_ORDER_STATUSES
            and self.estimated_ready_time is not None
            and self.estimated_ready_time < timezone.now()
        )


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name='items', on_delete=models.CASCADE)
    menu_item = models.ForeignKey(MenuItem, on_delete=models.PROTECT, related_name='order_items')
    menu_item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)  # base + option modifiers
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    customizations = models.JSONField(default=list, blank=True)
    special_instructions = models.CharField(max_length=500, blank=True)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.menu_item_name}"


class Payment(TimeStampedModel):
    METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('CARD', 'Card'),
        ('MOBILE', 'Mobile'),
        ('GIFT_CARD', 'Gift Card'),
        ('STORE_CREDIT', 'Store Credit'),
    ]
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('PROCESSING', 'Processing'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
        ('REFUNDED', 'Refunded'),
        ('PARTIALLY_REFUNDED', 'Partially Refunded'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='payments')
    transaction_id = models.CharField(max_length=64, unique=True)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    refunded_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    processor_reference = models.CharField(max_length=100, blank=True)
    processor_response = models.JSONField(default=dict, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True)

    processed_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='processed_payments'
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.transaction_id} {self.method} {self.amount} ({self.status})"

    @property
    def net_amount(self):
        return self.amount - self.refunded_amount

    @property
    def refundable_amount(self):
        if self.status not in ['COMPLETED', 'PARTIALLY_REFUNDED']:
            return Decimal('0.00')
        return self.net_amount


class CustomerCredit(models.Model):
    """One ledger entry of a customer's store credit at a cafe; amount is signed"""
    TRANSACTION_TYPES = [
        ('CREDIT', 'Credit'),
        ('DEBIT', 'Debit'),
        ('REFUND', 'Refund'),
        ('ADJUSTMENT', 'Adjustment'),
        ('EXPIRY', 'Expiry'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='customer_credits')
    customer = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='credit_entries')
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPES)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    balance = models.DecimalField(max_digits=10, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='credit_entries')
    expires_at = models.DateTimeField(null=True, blank=True)
    is_expired = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='issued_credits'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'customer_credits'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.customer.email} {self.transaction_type} {self.amount} -> {self.balance}"
