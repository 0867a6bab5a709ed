from django.urls import path
from . import views


urlpatterns = [
    # Category URLs
    path('categories/', views.MenuCategoryListCreateView.as_view(), name='category-list-create'),
    path('categories/<int:pk>/', views.MenuCategoryDetailView.as_view(), name='category-detail'),

    # Customization URLs
    path('customizations/', views.CustomizationListCreateView.as_view(), name='customization-list-create'),
    path('customizations/<int:pk>/', views.CustomizationDetailView.as_view(), name='customization-detail'),

    # Menu Item URLs
    path('items/', views.MenuItemListCreateView.as_view(), name='menu-item-list-create'),
    path('items/<int:pk>/', views.MenuItemDetailView.as_view(), name='menu-item-detail'),
    path('items/bulk-update-status/', views.bulk_update_menu_status, name='menu-bulk-update-status'),
    path('items/<int:menu_id>/duplicate/', views.duplicate_menu_item, name='menu-duplicate'),

    # Customer facing
    path('public/', views.public_menu, name='public-menu'),
    path('search/', views.search_menu_items, name='menu-search'),

    # Dashboard
    path('dashboard/', views.menu_dashboard, name='menu-dashboard'),
]
