from django.urls import path
from . import views

urlpatterns = [
    path('overview/', views.dashboard_overview, name='dashboard-overview'),
    path('sales/', views.sales_analytics, name='dashboard-sales'),
    path('kitchen/', views.kitchen_dashboard, name='dashboard-kitchen'),

    # Exports
    path('exports/daybook/', views.export_daybook, name='export-daybook'),
    path('exports/sales-report/', views.export_sales_report, name='export-sales-report'),
    path('exports/inventory/', views.export_inventory, name='export-inventory'),
]
