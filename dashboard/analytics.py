from django.db.models import Sum, Count, Avg, F
from django.db.models.functions import TruncDate, ExtractHour
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from authentication.models import Counter
from employees.services import staff_on_shift
from inventory.models import InventoryAlert
from orders.models import Order, OrderItem, Payment, ACTIVE_ORDER_STATUSES

ZERO = Decimal('0.00')


def revenue_orders(cafe):
    """Orders that count towards sales: everything except cancellations"""
    return Order.objects.filter(cafe=cafe).exclude(status='CANCELLED')


def _percent_change(current, previous):
    if not previous:
        return 0.0
    return round(float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100), 1)


def get_day_stats(cafe, date):
    orders = revenue_orders(cafe).filter(created_at__date=date)
    revenue = orders.aggregate(total=Sum('total'))['total'] or ZERO
    count = orders.count()
    avg_order_value = (revenue / count).quantize(Decimal('0.01')) if count else ZERO
    return {
        'revenue': revenue,
        'orders_count': count,
        'avg_order_value': avg_order_value,
    }


def get_status_counts(cafe):
    counts = dict(
        Order.objects.filter(cafe=cafe, status__in=['PENDING', 'PREPARING', 'READY'])
        .values_list('status')
        .annotate(count=Count('id'))
    )
    return {
        'pending': counts.get('PENDING', 0),
        'preparing': counts.get('PREPARING', 0),
        'ready': counts.get('READY', 0),
    }


def overview(cafe, today=None):
    """Today's figures against yesterday, live order counts, alerts and staff"""
    today = today or timezone.localdate()
    yesterday = today - timedelta(days=1)

    today_stats = get_day_stats(cafe, today)
    yesterday_stats = get_day_stats(cafe, yesterday)

    open_alerts = InventoryAlert.objects.filter(cafe=cafe, is_resolved=False)
    on_shift = staff_on_shift(cafe)

    return {
        'date': today,
        'today': today_stats,
        'yesterday': yesterday_stats,
        'comparison': {
            'revenue_change': _percent_change(today_stats['revenue'], yesterday_stats['revenue']),
            'orders_change': _percent_change(today_stats['orders_count'], yesterday_stats['orders_count']),
            'avg_order_value_change': _percent_change(
                today_stats['avg_order_value'], yesterday_stats['avg_order_value']
            ),
        },
        'orders': get_status_counts(cafe),
        'inventory': {
            'open_alerts': open_alerts.count(),
            'critical_alerts': open_alerts.filter(severity='CRITICAL').count(),
        },
        'staff_on_shift': [
            {
                'employee_code': employee.employee_code,
                'name': employee.user.full_name,
                'role': employee.role,
            }
            for employee in on_shift
        ],
    }


# =============== SALES ===============

def get_daily_sales(cafe, start_date, end_date):
    rows = revenue_orders(cafe).filter(
        created_at__date__gte=start_date,
        created_at__date__lte=end_date,
    ).annotate(
        day=TruncDate('created_at')
    ).values('day').annotate(
        orders_count=Count('id'),
        revenue=Sum('total'),
        tax=Sum('tax'),
        discount=Sum('discount'),
    ).order_by('day')

    by_day = {row['day']: row for row in rows}
    daily = []
    day = start_date
    while day <= end_date:
        row = by_day.get(day, {})
        daily.append({
            'date': day,
            'orders_count': row.get('orders_count', 0),
            'revenue': row.get('revenue') or ZERO,
            'tax': row.get('tax') or ZERO,
            'discount': row.get('discount') or ZERO,
        })
        day += timedelta(days=1)
    return daily


def get_order_type_breakdown(orders):
    return list(
        orders.values('order_type').annotate(
            orders_count=Count('id'),
            revenue=Sum('total'),
        ).order_by('-revenue')
    )


def get_payment_breakdown(cafe, start_date, end_date):
    return list(
        Payment.objects.filter(
            order__cafe=cafe,
            status__in=['COMPLETED', 'PARTIALLY_REFUNDED', 'REFUNDED'],
            created_at__date__gte=start_date,
            created_at__date__lte=end_date,
        ).values('method').annotate(
            count=Count('id'),
            total_amount=Sum('amount'),
            refunded_amount=Sum('refunded_amount'),
        ).order_by('-total_amount')
    )


def get_top_selling_items(cafe, start_date, end_date, limit=10):
    items = OrderItem.objects.filter(
        order__cafe=cafe,
        order__created_at__date__gte=start_date,
        order__created_at__date__lte=end_date,
    ).exclude(order__status='CANCELLED').values(
        'menu_item_id', 'menu_item__name'
    ).annotate(
        total_quantity=Sum('quantity'),
        total_revenue=Sum('total_price'),
    )
    return {
        'by_quantity': list(items.order_by('-total_quantity', 'menu_item__name')[:limit]),
        'by_revenue': list(items.order_by('-total_revenue', 'menu_item__name')[:limit]),
    }


def get_category_revenue(cafe, start_date, end_date):
    return list(
        OrderItem.objects.filter(
            order__cafe=cafe,
            order__created_at__date__gte=start_date,
            order__created_at__date__lte=end_date,
        ).exclude(order__status='CANCELLED').values(
            category=F('menu_item__category__name')
        ).annotate(
            items_sold=Sum('quantity'),
            revenue=Sum('total_price'),
        ).order_by('-revenue')
    )


def get_peak_hours(orders):
    hourly = dict(
        (row['hour'], row)
        for row in orders.annotate(hour=ExtractHour('created_at')).values('hour').annotate(
            orders_count=Count('id'),
            revenue=Sum('total'),
        )
    )
    hours = [
        {
            'hour': hour,
            'orders_count': hourly.get(hour, {}).get('orders_count', 0),
            'revenue': hourly.get(hour, {}).get('revenue') or ZERO,
        }
        for hour in range(24)
    ]
    busiest = sorted((h for h in hours if h['orders_count']), key=lambda h: (-h['orders_count'], h['hour']))
    return {'hourly': hours, 'peak_hours': [h['hour'] for h in busiest[:3]]}


def sales_analytics(cafe, start_date, end_date, top_limit=10):
    """Revenue, mix and peaks for the closed date range [start_date, end_date]"""
    orders = revenue_orders(cafe).filter(
        created_at__date__gte=start_date,
        created_at__date__lte=end_date,
    )
    totals = orders.aggregate(
        revenue=Sum('total'),
        tax=Sum('tax'),
        tips=Sum('tip'),
        discounts=Sum('discount'),
        avg_order_value=Avg('total'),
    )
    orders_count = orders.count()
    peaks = get_peak_hours(orders)

    return {
        'start_date': start_date,
        'end_date': end_date,
        'summary': {
            'orders_count': orders_count,
            'cancelled_count': Order.objects.filter(
                cafe=cafe, status='CANCELLED',
                created_at__date__gte=start_date, created_at__date__lte=end_date,
            ).count(),
            'revenue': totals['revenue'] or ZERO,
            'tax': totals['tax'] or ZERO,
            'tips': totals['tips'] or ZERO,
            'discounts': totals['discounts'] or ZERO,
            'avg_order_value': Decimal(str(totals['avg_order_value'] or 0)).quantize(Decimal('0.01')),
        },
        'daily': get_daily_sales(cafe, start_date, end_date),
        'by_order_type': get_order_type_breakdown(orders),
        'by_payment_method': get_payment_breakdown(cafe, start_date, end_date),
        'top_items': get_top_selling_items(cafe, start_date, end_date, limit=top_limit),
        'by_category': get_category_revenue(cafe, start_date, end_date),
        'hourly': peaks['hourly'],
        'peak_hours': peaks['peak_hours'],
    }


# =============== KITCHEN ===============

def _queue_entry(order, now):
    waiting = int((now - order.created_at).total_seconds() // 60)
    return {
        'id': order.id,
        'order_number': order.order_number,
        'status': order.status,
        'order_type': order.order_type,
        'table_number': order.table_number,
        'item_count': order.item_count,
        'created_at': order.created_at,
        'estimated_ready_time': order.estimated_ready_time,
        'waiting_minutes': max(waiting, 0),
        'is_overdue': order.is_overdue,
    }


def average_preparation_minutes(cafe, date):
    """Mean minutes from order creation to READY for orders created on ``date``"""
    durations = [
        (ready_at - created_at).total_seconds() / 60
        for created_at, ready_at in Order.objects.filter(
            cafe=cafe, created_at__date=date, ready_at__isnull=False
        ).values_list('created_at', 'ready_at')
    ]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 1)


def kitchen_dashboard(cafe, now=None):
    now = now or timezone.now()
    active = list(
        Order.objects.filter(cafe=cafe, status__in=ACTIVE_ORDER_STATUSES)
        .select_related('counter').prefetch_related('items').order_by('created_at')
    )

    queues = []
    for counter in Counter.objects.filter(cafe=cafe).order_by('number'):
        orders = [order for order in active if order.counter_id == counter.id]
        queues.append({
            'counter_id': str(counter.id),
            'counter_number': counter.number,
            'name': counter.name,
            'status': counter.status,
            'max_concurrent_orders': counter.max_concurrent_orders,
            'count': len(orders),
            'orders': [_queue_entry(order, now) for order in orders],
        })
    unassigned = [order for order in active if order.counter_id is None]

    return {
        'counters': queues,
        'unassigned': [_queue_entry(order, now) for order in unassigned],
        'ready_for_pickup': Order.objects.filter(cafe=cafe, status='READY').count(),
        'average_preparation_minutes': average_preparation_minutes(cafe, timezone.localdate(now)),
        'overdue': [_queue_entry(order, now) for order in active if order.is_overdue],
    }
