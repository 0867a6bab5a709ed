from rest_framework import generics, status, filters
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django.db import models, transaction
from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
import logging

from authentication.permissions import (
    CafeContextMixin, HasCafeAccess, HasCafePermission, require_permission, get_request_cafe
)
from authentication.roles import Permissions
from .models import MenuCategory, MenuItem, Customization
from .serializers import (
    MenuCategorySerializer, MenuItemSerializer, CustomizationSerializer,
    PublicMenuCategorySerializer, PublicMenuItemSerializer
)

logger = logging.getLogger(__name__)


class MenuPermissionMixin:
    """Read for any staff member, write needs the manage_menu permission"""

    def get_permissions(self):
        if self.request.method in ['POST', 'PUT', 'PATCH', 'DELETE']:
            return [HasCafePermission(Permissions.MANAGE_MENU)]
        return [HasCafeAccess()]


# Category Views
class MenuCategoryListCreateView(MenuPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: List all menu categories for the staff member's cafe
    post: Create a new category
    """
    queryset = MenuCategory.objects.all()
    serializer_class = MenuCategorySerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['name']
    ordering_fields = ['name', 'sort_order', 'created_at']
    ordering = ['sort_order', 'name']


class MenuCategoryDetailView(MenuPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = MenuCategory.objects.all()
    serializer_class = MenuCategorySerializer


# Customization Views
class CustomizationListCreateView(MenuPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: List customizations with their options
    post: Create a customization with options
    """
    queryset = Customization.objects.prefetch_related('options')
    serializer_class = CustomizationSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['customization_type', 'is_required', 'is_active']
    search_fields = ['name']


class CustomizationDetailView(MenuPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = Customization.objects.prefetch_related('options')
    serializer_class = CustomizationSerializer


# Menu Item Views
class MenuItemListCreateView(MenuPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: List all menu items for the staff member's cafe
    post: Create a new menu item
    """
    queryset = MenuItem.objects.select_related('category').prefetch_related('customizations__options')
    serializer_class = MenuItemSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'category', 'is_featured']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'price', 'sort_order', 'created_at']
    ordering = ['sort_order', 'name']


class MenuItemDetailView(MenuPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = MenuItem.objects.select_related('category').prefetch_related('customizations__options')
    serializer_class = MenuItemSerializer

    def perform_destroy(self, instance):
        # Items referenced by past orders are kept and retired instead
        if instance.order_items.exists():
            instance.status = 'DISCONTINUED'
            instance.save(update_fields=['status', 'updated_at'])
            logger.info(f"Menu item {instance.id} discontinued instead of deleted")
        else:
            instance.delete()


# Customer facing menu
@api_view(['GET'])
@permission_classes([AllowAny])
def public_menu(request):
    """Active categories with their orderable items for the requested cafe"""
    cafe = get_request_cafe(request)
    categories = MenuCategory.objects.filter(cafe=cafe, is_active=True).prefetch_related(
        Prefetch('items', queryset=MenuItem.objects.prefetch_related('customizations__options'))
    )
    return Response({
        'cafe': {'id': str(cafe.id), 'name': cafe.name, 'slug': cafe.slug, 'is_open': cafe.is_open()},
        'categories': PublicMenuCategorySerializer(categories, many=True).data,
    })


@api_view(['GET'])
@permission_classes([AllowAny])
def search_menu_items(request):
    """Search orderable items by name or description"""
    cafe = get_request_cafe(request)
    query = request.GET.get('q', '')
    if not query:
        return Response(
            {"detail": "Query parameter 'q' is required"},
            status=status.HTTP_400_BAD_REQUEST
        )

    menu_items = MenuItem.objects.filter(
        cafe=cafe,
        status='AVAILABLE',
        category__is_active=True
    ).filter(
        models.Q(name__icontains=query) |
        models.Q(description__icontains=query)
    ).prefetch_related('customizations__options')[:20]

    serializer = PublicMenuItemSerializer(menu_items, many=True)
    return Response({
        'query': query,
        'results_count': len(serializer.data),
        'menu_items': serializer.data
    })


@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_MENU)])
def bulk_update_menu_status(request):
    """Bulk update menu item status for the cafe"""
    cafe = request.user_cafe
    menu_ids = request.data.get('menu_ids', [])
    new_status = request.data.get('status')

    if not menu_ids:
        return Response({"detail": "menu_ids is required"}, status=status.HTTP_400_BAD_REQUEST)
    if new_status not in dict(MenuItem.STATUS_CHOICES):
        return Response({"detail": "Invalid status"}, status=status.HTTP_400_BAD_REQUEST)

    updated_count = MenuItem.objects.filter(id__in=menu_ids, cafe=cafe).update(status=new_status)
    logger.info(f"Bulk status update in {cafe.slug}: {updated_count} items set to {new_status}")

    return Response({
        "detail": f"Updated {updated_count} menu items",
        "updated_count": updated_count
    })


@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_MENU)])
def duplicate_menu_item(request, menu_id):
    """Duplicate a menu item with its customizations"""
    cafe = request.user_cafe
    original_item = get_object_or_404(
        MenuItem.objects.prefetch_related('customizations'),
        id=menu_id,
        cafe=cafe
    )

    new_name = request.data.get('name', f"{original_item.name} - Copy")
    if MenuItem.objects.filter(cafe=cafe, name=new_name).exists():
        return Response(
            {"detail": "Menu item with this name already exists."},
            status=status.HTTP_400_BAD_REQUEST
        )

    with transaction.atomic():
        new_item = MenuItem.objects.create(
            cafe=cafe,
            category=original_item.category,
            name=new_name,
            description=original_item.description,
            price=request.data.get('price', original_item.price),
            status=original_item.status,
            preparation_time=original_item.preparation_time,
            image_url=original_item.image_url,
            allergens=list(original_item.allergens),
            nutritional_info=dict(original_item.nutritional_info),
            sort_order=original_item.sort_order,
        )
        new_item.customizations.set(original_item.customizations.all())

    return Response(MenuItemSerializer(new_item).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([HasCafeAccess])
def menu_dashboard(request):
    """Counts of items, categories and customizations for the cafe"""
    cafe = request.user_cafe
    items = MenuItem.objects.filter(cafe=cafe)
    by_status = dict(items.order_by().values_list('status').annotate(total=models.Count('id')))

    return Response({
        'cafe_info': {'name': cafe.name, 'slug': cafe.slug},
        'menu_stats': {
            'total_menu_items': items.count(),
            'available_menu_items': by_status.get('AVAILABLE', 0),
            'unavailable_menu_items': by_status.get('UNAVAILABLE', 0),
            'seasonal_menu_items': by_status.get('SEASONAL', 0),
            'discontinued_menu_items': by_status.get('DISCONTINUED', 0),
            'total_categories': MenuCategory.objects.filter(cafe=cafe, is_active=True).count(),
            'total_customizations': Customization.objects.filter(cafe=cafe, is_active=True).count(),
        }
    })
