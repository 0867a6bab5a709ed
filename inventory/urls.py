from django.urls import path
from . import views


urlpatterns = [
    # Stock items
    path('items/', views.InventoryItemListCreateView.as_view(), name='inventory-item-list-create'),
    path('items/low-stock/', views.low_stock_items, name='inventory-low-stock'),
    path('items/<int:pk>/', views.InventoryItemDetailView.as_view(), name='inventory-item-detail'),
    path('items/<int:pk>/adjust/', views.adjust_stock, name='inventory-adjust'),
    path('items/<int:pk>/restock/', views.restock_item, name='inventory-restock'),

    # Recipes
    path('recipes/', views.RecipeIngredientListCreateView.as_view(), name='recipe-list-create'),
    path('recipes/<int:pk>/', views.RecipeIngredientDetailView.as_view(), name='recipe-detail'),

    # Movements
    path('movements/', views.StockMovementListView.as_view(), name='stock-movement-list'),

    # Alerts
    path('alerts/', views.InventoryAlertListView.as_view(), name='inventory-alert-list'),
    path('alerts/summary/', views.alerts_summary, name='inventory-alert-summary'),
    path('alerts/refresh/', views.refresh_alerts, name='inventory-alert-refresh'),
    path('alerts/<int:pk>/acknowledge/', views.acknowledge_alert, name='inventory-alert-acknowledge'),
    path('alerts/<int:pk>/resolve/', views.resolve_alert, name='inventory-alert-resolve'),
]
