import django_filters

from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Order history filters: status, type, payment, date range and customer"""
    status = django_filters.MultipleChoiceFilter(choices=Order.STATUS_CHOICES)
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    date = django_filters.DateFilter(field_name='created_at', lookup_expr='date')
    customer_email = django_filters.CharFilter(field_name='customer__email', lookup_expr='iexact')
    min_total = django_filters.NumberFilter(field_name='total', lookup_expr='gte')
    max_total = django_filters.NumberFilter(field_name='total', lookup_expr='lte')

    class Meta:
        model = Order
        fields = ['status', 'order_type', 'payment_status', 'counter', 'customer']
