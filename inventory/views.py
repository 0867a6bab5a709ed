from rest_framework import generics, status, filters
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from authentication.permissions import CafeContextMixin, HasCafePermission, require_permission
from authentication.roles import Permissions
from .models import InventoryItem, RecipeIngredient, StockMovement, InventoryAlert
from .serializers import (
    InventoryItemSerializer, RecipeIngredientSerializer, StockMovementSerializer,
    StockAdjustmentSerializer, RestockSerializer, InventoryAlertSerializer
)
from . import services

logger = logging.getLogger(__name__)


class InventoryPermissionMixin:
    """Read needs view_inventory, write needs manage_inventory"""

    def get_permissions(self):
        if self.request.method in ['POST', 'PUT', 'PATCH', 'DELETE']:
            return [HasCafePermission(Permissions.MANAGE_INVENTORY)]
        return [HasCafePermission(Permissions.VIEW_INVENTORY)]


# Inventory Item Views
class InventoryItemListCreateView(InventoryPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: List stock items for the cafe
    post: Create a stock item
    """
    queryset = InventoryItem.objects.select_related('cafe')
    serializer_class = InventoryItemSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'category', 'supplier']
    search_fields = ['name', 'sku', 'supplier']
    ordering_fields = ['name', 'sku', 'current_stock', 'expiry_date', 'created_at']
    ordering = ['name']

    def perform_create(self, serializer):
        item = serializer.save(cafe=self.get_user_cafe())
        services.evaluate_alerts(item)
        logger.info(f"Inventory item {item.sku} created in {item.cafe.slug}")


class InventoryItemDetailView(InventoryPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = InventoryItem.objects.select_related('cafe')
    serializer_class = InventoryItemSerializer

    def perform_update(self, serializer):
        item = serializer.save()
        services.evaluate_alerts(item)

    def perform_destroy(self, instance):
        # Keep the movement history; retire the item instead
        if instance.movements.exists():
            instance.status = 'DISCONTINUED'
            instance.save(update_fields=['status', 'updated_at'])
            instance.alerts.filter(is_resolved=False).update(is_resolved=True)
        else:
            instance.delete()


class RecipeIngredientListCreateView(InventoryPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: Recipe lines, filter with ?menu_item=<id>
    post: Link a menu item to the stock it consumes
    """
    queryset = RecipeIngredient.objects.select_related('menu_item', 'inventory_item')
    serializer_class = RecipeIngredientSerializer
    cafe_field = 'menu_item__cafe'
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['menu_item', 'inventory_item']

    def perform_create(self, serializer):
        serializer.save()


class RecipeIngredientDetailView(InventoryPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = RecipeIngredient.objects.select_related('menu_item', 'inventory_item')
    serializer_class = RecipeIngredientSerializer
    cafe_field = 'menu_item__cafe'


class StockMovementListView(CafeContextMixin, generics.ListAPIView):
    """Audit trail of stock changes"""
    queryset = StockMovement.objects.select_related('inventory_item', 'performed_by')
    serializer_class = StockMovementSerializer
    permission_classes = [require_permission(Permissions.VIEW_INVENTORY)]
    cafe_field = 'inventory_item__cafe'
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['inventory_item', 'movement_type']
    ordering = ['-created_at']

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('inventory_item', openapi.IN_QUERY, description="Filter by item id", type=openapi.TYPE_INTEGER),
            openapi.Parameter('movement_type', openapi.IN_QUERY, description="RESTOCK, SALE, RETURN, ADJUSTMENT or WASTE", type=openapi.TYPE_STRING),
        ]
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


@swagger_auto_schema(
    method='post',
    operation_description="Adjust stock by a signed quantity",
    request_body=StockAdjustmentSerializer,
    responses={
        200: InventoryItemSerializer,
        409: openapi.Response(description="Adjustment would make stock negative"),
    }
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.STOCK_ADJUSTMENTS)])
def adjust_stock(request, pk):
    item = get_object_or_404(InventoryItem, pk=pk, cafe=request.user_cafe)
    serializer = StockAdjustmentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    item = services.adjust_stock(
        item, data['quantity'], data['movement_type'], user=request.user,
        reference=data['reference'], note=data['note']
    )
    return Response(InventoryItemSerializer(item).data)


@swagger_auto_schema(
    method='post',
    operation_description="Receive stock, optionally updating unit cost and expiry",
    request_body=RestockSerializer,
    responses={200: InventoryItemSerializer}
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.STOCK_ADJUSTMENTS)])
def restock_item(request, pk):
    item = get_object_or_404(InventoryItem, pk=pk, cafe=request.user_cafe)
    serializer = RestockSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    item = services.restock(
        item, data['quantity'], user=request.user,
        unit_cost=data.get('unit_cost'), expiry_date=data.get('expiry_date'),
        reference=data['reference'], note=data['note']
    )
    return Response(InventoryItemSerializer(item).data)


@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_INVENTORY)])
def low_stock_items(request):
    items = services.low_stock_items(request.user_cafe)
    serializer = InventoryItemSerializer(items, many=True)
    return Response({
        'count': len(serializer.data),
        'items': serializer.data
    })


# Alerts
class InventoryAlertListView(CafeContextMixin, generics.ListAPIView):
    """Alerts for the cafe; open ones by default"""
    queryset = InventoryAlert.objects.select_related('inventory_item', 'acknowledged_by')
    serializer_class = InventoryAlertSerializer
    permission_classes = [require_permission(Permissions.VIEW_INVENTORY)]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['alert_type', 'severity', 'inventory_item']

    def get_queryset(self):
        queryset = super().get_queryset()
        resolved = self.request.query_params.get('resolved', 'false').lower()
        if resolved in ['true', '1']:
            return queryset.filter(is_resolved=True)
        if resolved == 'all':
            return queryset
        return queryset.filter(is_resolved=False)

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('resolved', openapi.IN_QUERY, description="false (default), true or all", type=openapi.TYPE_STRING),
            openapi.Parameter('severity', openapi.IN_QUERY, description="LOW, MEDIUM, HIGH or CRITICAL", type=openapi.TYPE_STRING),
        ]
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


@api_view(['POST'])
@permission_classes([require_permission(Permissions.VIEW_INVENTORY)])
def acknowledge_alert(request, pk):
    alert = get_object_or_404(InventoryAlert, pk=pk, cafe=request.user_cafe)
    services.acknowledge_alert(alert, request.user)
    return Response(InventoryAlertSerializer(alert).data)


@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_INVENTORY)])
def resolve_alert(request, pk):
    alert = get_object_or_404(InventoryAlert, pk=pk, cafe=request.user_cafe)
    if alert.is_resolved:
        return Response({'detail': 'Alert is already resolved'}, status=status.HTTP_400_BAD_REQUEST)
    services.resolve_alert(alert, request.user)
    return Response(InventoryAlertSerializer(alert).data)


@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_INVENTORY)])
def alerts_summary(request):
    return Response(services.alerts_summary(request.user_cafe))


@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_INVENTORY)])
def refresh_alerts(request):
    """Re-evaluate alert conditions for every item of the cafe"""
    raised = services.evaluate_cafe_alerts(request.user_cafe)
    return Response({'alerts_raised': raised, 'summary': services.alerts_summary(request.user_cafe)})
