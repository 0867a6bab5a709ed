from rest_framework import serializers
from decimal import Decimal

from authentication.models import CustomUser, Counter
from .models import Order, OrderItem, Payment, CustomerCredit
from .pricing import DISCOUNT_TYPES


class CustomizationSelectionSerializer(serializers.Serializer):
    customization_id = serializers.IntegerField()
    option_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)


class OrderLineSerializer(serializers.Serializer):
    """One requested line of a new order or a cart item"""
    menu_item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(default=1)
    customizations = CustomizationSelectionSerializer(many=True, required=False, default=list)
    special_instructions = serializers.CharField(required=False, allow_blank=True, default='')


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            'id', 'menu_item', 'menu_item_name', 'quantity', 'unit_price', 'total_price',
            'customizations', 'special_instructions'
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    counter_number = serializers.IntegerField(source='counter.number', read_only=True, default=None)
    created_by_name = serializers.CharField(source='created_by.full_name', read_only=True, default=None)
    item_count = serializers.ReadOnlyField()
    is_overdue = serializers.ReadOnlyField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer', 'customer_name', 'customer_phone', 'created_by',
            'created_by_name', 'counter', 'counter_number', 'order_type', 'table_number', 'delivery_address',
            'status', 'payment_status', 'subtotal', 'tax', 'service_fee', 'delivery_fee', 'tip', 'discount',
            'discount_code', 'total', 'notes', 'cancellation_reason', 'estimated_ready_time', 'preparing_at',
            'ready_at', 'completed_at', 'cancelled_at', 'loyalty_points_awarded', 'item_count', 'is_overdue',
            'items', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    item_count = serializers.ReadOnlyField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer_name', 'order_type', 'table_number', 'status', 'payment_status',
            'total', 'item_count', 'counter', 'estimated_ready_time', 'created_at'
        ]
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    items = OrderLineSerializer(many=True)
    order_type = serializers.ChoiceField(choices=Order.ORDER_TYPE_CHOICES, default='DINE_IN')
    table_number = serializers.CharField(max_length=10, required=False, allow_blank=True, default='')
    customer_id = serializers.UUIDField(required=False, allow_null=True)
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    tip = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), default=Decimal('0.00'))
    discount_type = serializers.ChoiceField(choices=DISCOUNT_TYPES, required=False, allow_null=True)
    discount_value = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal('0'), default=Decimal('0.00')
    )
    redemption_code = serializers.CharField(max_length=8, required=False, allow_blank=True)

    def validate_customer_id(self, value):
        if value is None:
            return None
        customer = CustomUser.objects.filter(pk=value, is_active=True).first()
        if customer is None:
            raise serializers.ValidationError('Customer not found')
        return customer

    def validate(self, attrs):
        if attrs['order_type'] == 'DELIVERY' and not attrs.get('delivery_address'):
            raise serializers.ValidationError({'delivery_address': 'Required for delivery orders'})
        if attrs.get('discount_type') and attrs['discount_value'] <= 0:
            raise serializers.ValidationError({'discount_value': 'Must be positive when a discount type is set'})
        return attrs


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class AssignCounterSerializer(serializers.Serializer):
    counter_id = serializers.UUIDField(required=False, allow_null=True)

    def validate_counter_id(self, value):
        if value is None:
            return None
        counter = Counter.objects.filter(pk=value, cafe=self.context.get('cafe')).first()
        if counter is None:
            raise serializers.ValidationError('Counter not found')
        return counter


# =============== PAYMENTS ===============

class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    net_amount = serializers.ReadOnlyField()

    class Meta:
        model = Payment
        fields = [
            'id', 'order', 'order_number', 'transaction_id', 'method', 'status', 'amount', 'refunded_amount',
            'net_amount', 'processor_reference', 'failure_reason', 'refund_reason', 'processed_by',
            'processed_at', 'refunded_at', 'created_at'
        ]
        read_only_fields = fields


class ProcessPaymentSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), required=False)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


# =============== CUSTOMER CREDIT ===============

class CustomerCreditSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)

    class Meta:
        model = CustomerCredit
        fields = [
            'id', 'transaction_type', 'amount', 'balance', 'description', 'reference', 'order',
            'order_number', 'expires_at', 'is_expired', 'created_at'
        ]
        read_only_fields = fields


class CreditChangeSerializer(serializers.Serializer):
    ACTIONS = [('add', 'Add'), ('use', 'Use'), ('adjust', 'Adjust')]

    action = serializers.ChoiceField(choices=ACTIONS, default='add')
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    expires_at = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['amount'] == 0:
            raise serializers.ValidationError({'amount': 'Amount must not be zero'})
        if attrs['action'] in ['add', 'use'] and attrs['amount'] < 0:
            raise serializers.ValidationError({'amount': 'Amount must be positive'})
        return attrs


# =============== CART ===============

class CartItemUpdateSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(required=False)
    customizations = CustomizationSelectionSerializer(many=True, required=False)
    special_instructions = serializers.CharField(required=False, allow_blank=True)


class CartDiscountSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=DISCOUNT_TYPES, required=False, allow_null=True)
    value = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    code = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('type') and not attrs.get('code'):
            raise serializers.ValidationError('Send a discount type and value, or a reward code')
        return attrs


class CartTipSerializer(serializers.Serializer):
    tip = serializers.DecimalField(max_digits=10, decimal_places=2)


class CartOrderTypeSerializer(serializers.Serializer):
    order_type = serializers.CharField(max_length=20)
    table_number = serializers.CharField(max_length=10, required=False, allow_blank=True, default='')


class CartNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(allow_blank=True)


class CheckoutSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='')
