from rest_framework import serializers
from decimal import Decimal

from menu.models import MenuItem
from .models import InventoryItem, RecipeIngredient, StockMovement, InventoryAlert


class InventoryItemSerializer(serializers.ModelSerializer):
    is_low_stock = serializers.ReadOnlyField()
    is_out_of_stock = serializers.ReadOnlyField()
    is_overstock = serializers.ReadOnlyField()
    is_expiring_soon = serializers.ReadOnlyField()
    is_expired = serializers.ReadOnlyField()
    is_critical = serializers.ReadOnlyField()
    stock_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            'id', 'sku', 'name', 'description', 'category', 'unit',
            'current_stock', 'minimum_stock', 'maximum_stock', 'reorder_level',
            'unit_cost', 'supplier', 'status', 'last_restocked_at', 'expiry_date',
            'is_low_stock', 'is_out_of_stock', 'is_overstock', 'is_expiring_soon',
            'is_expired', 'is_critical', 'stock_value', 'created_at', 'updated_at'
        ]
        read_only_fields = ['last_restocked_at', 'created_at', 'updated_at']

    def validate_sku(self, value):
        """Validate unique SKU within cafe"""
        cafe = self.context.get('cafe')
        if cafe:
            queryset = InventoryItem.objects.filter(cafe=cafe, sku=value)
            if self.instance:
                queryset = queryset.exclude(id=self.instance.id)
            if queryset.exists():
                raise serializers.ValidationError("An inventory item with this SKU already exists in your cafe.")
        return value

    def validate_current_stock(self, value):
        if self.instance is not None and value != self.instance.current_stock:
            raise serializers.ValidationError("Use the stock adjustment endpoints to change stock levels.")
        return value

    def validate(self, data):
        minimum = data.get('minimum_stock', getattr(self.instance, 'minimum_stock', Decimal('0')))
        maximum = data.get('maximum_stock', getattr(self.instance, 'maximum_stock', None))
        if maximum is not None and maximum < minimum:
            raise serializers.ValidationError({'maximum_stock': 'Maximum stock cannot be below minimum stock.'})
        return data


class RecipeIngredientSerializer(serializers.ModelSerializer):
    inventory_item_name = serializers.CharField(source='inventory_item.name', read_only=True)
    unit = serializers.CharField(source='inventory_item.unit', read_only=True)
    menu_item_name = serializers.CharField(source='menu_item.name', read_only=True)

    class Meta:
        model = RecipeIngredient
        fields = ['id', 'menu_item', 'menu_item_name', 'inventory_item', 'inventory_item_name', 'unit', 'quantity']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        cafe = self.context.get('cafe')
        if cafe is not None:
            self.fields['menu_item'].queryset = MenuItem.objects.filter(cafe=cafe)
            self.fields['inventory_item'].queryset = InventoryItem.objects.filter(cafe=cafe)


class StockMovementSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='inventory_item.sku', read_only=True)
    performed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = StockMovement
        fields = [
            'id', 'inventory_item', 'sku', 'movement_type', 'quantity', 'stock_after',
            'reference', 'note', 'performed_by', 'performed_by_name', 'created_at'
        ]

    def get_performed_by_name(self, obj):
        return obj.performed_by.full_name if obj.performed_by else None


class StockAdjustmentSerializer(serializers.Serializer):
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    movement_type = serializers.ChoiceField(
        choices=['ADJUSTMENT', 'WASTE', 'RETURN', 'SALE'], default='ADJUSTMENT'
    )
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity cannot be zero.")
        return value

    def validate(self, data):
        # waste and sales always take stock out
        if data['movement_type'] in ['WASTE', 'SALE'] and data['quantity'] > 0:
            data['quantity'] = -data['quantity']
        return data


class RestockSerializer(serializers.Serializer):
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=Decimal('0.001'))
    unit_cost = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=Decimal('0'))
    expiry_date = serializers.DateField(required=False)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class InventoryAlertSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='inventory_item.sku', read_only=True)
    item_name = serializers.CharField(source='inventory_item.name', read_only=True)
    acknowledged_by_name = serializers.SerializerMethodField()

    class Meta:
        model = InventoryAlert
        fields = [
            'id', 'inventory_item', 'sku', 'item_name', 'alert_type', 'severity', 'message',
            'is_resolved', 'resolved_at', 'acknowledged_by', 'acknowledged_by_name',
            'acknowledged_at', 'created_at'
        ]
        read_only_fields = fields

    def get_acknowledged_by_name(self, obj):
        return obj.acknowledged_by.full_name if obj.acknowledged_by else None
