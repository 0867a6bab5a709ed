from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal
import logging
import math

from authentication.exceptions import TableTapError, CartValidationError, InvalidStatusTransition
from authentication.models import Counter
from inventory.services import deduct_for_order, restore_for_order
from loyalty import services as loyalty_services
from menu.models import MenuItem
from . import pricing
from .models import Order, OrderItem, ORDER_TRANSITIONS, ACTIVE_ORDER_STATUSES
from .signals import order_created, order_status_changed

logger = logging.getLogger(__name__)

STATUS_TIMESTAMPS = {
    'PREPARING': 'preparing_at',
    'READY': 'ready_at',
    'COMPLETED': 'completed_at',
    'CANCELLED': 'cancelled_at',
}


def _error(field, message, code):
    return {'field': field, 'message': message, 'code': code}


def resolve_lines(cafe, items):
    """
    Validate requested lines against the cafe's menu and price them.

    ``items`` is a list of ``{menu_item_id, quantity, customizations,
    special_instructions}`` dicts. Returns ``(lines, errors)`` where each
    line carries the MenuItem, unit and total price and the customization
    snapshot; errors are ``{field, message, code}`` dicts.
    """
    max_quantity = cafe.get_setting('max_quantity_per_item')
    max_notes = cafe.get_setting('max_notes_length')
    lines = []
    errors = []

    for index, data in enumerate(items):
        field = f'items[{index}]'
        menu_item = MenuItem.objects.select_related('category').filter(
            cafe=cafe, pk=data.get('menu_item_id')
        ).first() if str(data.get('menu_item_id', '')).isdigit() else None

        if menu_item is None:
            errors.append(_error(f'{field}.menu_item_id', 'Menu item not found', 'ITEM_NOT_FOUND'))
            continue
        if not menu_item.is_orderable:
            errors.append(_error(
                f'{field}.menu_item_id', f'{menu_item.name} is currently unavailable', 'MENU_ITEM_UNAVAILABLE'
            ))
            continue

        try:
            quantity = int(data.get('quantity', 1))
        except (TypeError, ValueError):
            quantity = 0
        if quantity < 1:
            errors.append(_error(f'{field}.quantity', 'Quantity must be at least 1', 'QUANTITY_TOO_LOW'))
            continue
        if quantity > max_quantity:
            errors.append(_error(
                f'{field}.quantity', f'Quantity cannot exceed {max_quantity} per item', 'QUANTITY_TOO_HIGH'
            ))
            continue

        instructions = data.get('special_instructions') or ''
        if len(instructions) > max_notes:
            errors.append(_error(
                f'{field}.special_instructions',
                f'Special instructions cannot exceed {max_notes} characters', 'NOTES_TOO_LONG'
            ))
            continue

        snapshot, price_delta, customization_errors = menu_item.resolve_customizations(data.get('customizations'))
        if customization_errors:
            errors.extend(_error(f'{field}.customizations', message, code) for code, message in customization_errors)
            continue

        lines.append({
            'menu_item': menu_item,
            'quantity': quantity,
            'unit_price': pricing.round2(menu_item.price + price_delta),
            'total_price': pricing.line_total(menu_item.price, quantity, price_delta),
            'customizations': snapshot,
            'special_instructions': instructions,
        })

    return lines, errors


def estimate_ready_time(cafe, lines, now=None):
    """Base minutes plus a batch allowance, never shorter than the slowest item"""
    now = now or timezone.now()
    total_quantity = sum(line['quantity'] for line in lines)
    batches = math.ceil(total_quantity / cafe.get_setting('items_per_batch'))
    minutes = cafe.get_setting('base_preparation_minutes') + batches * cafe.get_setting('minutes_per_item_batch')
    longest = max((line['menu_item'].preparation_time for line in lines), default=0)
    return now + timedelta(minutes=max(minutes, longest))


def pick_counter(cafe):
    """Least busy active counter that still has capacity, or None"""
    counters = Counter.objects.filter(cafe=cafe, status='ACTIVE').annotate(
        active_orders=Count('orders', filter=Q(orders__status__in=ACTIVE_ORDER_STATUSES))
    ).order_by('active_orders', 'number')
    for counter in counters:
        if counter.active_orders < counter.max_concurrent_orders:
            return counter
    return None


def create_order(cafe, items, created_by=None, customer=None, order_type='DINE_IN', table_number='',
                 customer_name='', customer_phone='', delivery_address='', notes='',
                 tip=Decimal('0.00'), discount_type=None, discount_value=Decimal('0.00'), redemption_code=None):
    """
    Validate, price and persist an order, consuming its recipe stock.

    Runs in one transaction: an invalid line, an unusable reward code or
    a stock shortfall leaves nothing behind. Emits ``order_created``.
    """
    if not cafe.is_active:
        logger.warning(f"Order rejected: cafe {cafe.slug} is {cafe.status}")
        raise TableTapError(f"{cafe.name} is not accepting orders right now.")
    if not items:
        raise CartValidationError([_error('items', 'An order needs at least one item', 'EMPTY_CART')])
    if Decimal(str(tip or 0)) < 0:
        raise CartValidationError([_error('tip', 'Tip cannot be negative', 'INVALID_TIP')])
    if len(notes or '') > cafe.get_setting('max_notes_length'):
        raise CartValidationError([_error('notes', 'Order notes are too long', 'NOTES_TOO_LONG')])

    lines, errors = resolve_lines(cafe, items)
    if errors:
        logger.warning(f"Order rejected for {cafe.slug}: {len(errors)} invalid line(s)")
        raise CartValidationError(errors)

    with transaction.atomic():
        order = Order.objects.create(
            cafe=cafe,
            customer=customer,
            created_by=created_by,
            order_type=order_type,
            table_number=table_number or '',
            customer_name=customer_name or (customer.full_name if customer else ''),
            customer_phone=customer_phone or '',
            delivery_address=delivery_address or '',
            notes=notes or '',
        )
        for line in lines:
            OrderItem.objects.create(
                order=order,
                menu_item=line['menu_item'],
                menu_item_name=line['menu_item'].name,
                quantity=line['quantity'],
                unit_price=line['unit_price'],
                total_price=line['total_price'],
                customizations=line['customizations'],
                special_instructions=line['special_instructions'],
            )

        subtotal = sum((line['total_price'] for line in lines), Decimal('0.00'))
        discount = Decimal('0.00')
        if discount_type:
            discount += pricing.discount_amount(subtotal, discount_type, discount_value)
        if redemption_code:
            _, reward_discount = loyalty_services.apply_redemption_to_order(
                cafe, redemption_code, subtotal, order=order
            )
            discount += reward_discount
            order.discount_code = redemption_code.upper()

        totals = pricing.totals_for_cafe(cafe, subtotal, order_type, tip=tip, discount=discount)
        for field, value in totals.items():
            setattr(order, field, value)

        deduct_for_order(order, user=created_by)

        order.counter = pick_counter(cafe)
        order.estimated_ready_time = estimate_ready_time(cafe, lines)
        order.save()

    if order.counter is None:
        logger.warning(f"Order {order.order_number} created without a counter: all counters busy")
    logger.info(f"Order {order.order_number} created in {cafe.slug}: total {order.total}")
    order_created.send(sender=Order, order=order, user=created_by)
    return order


def update_status(order, new_status, user=None, reason=''):
    """Move an order forward one step; cancellations go through cancel_order()"""
    if new_status not in ORDER_TRANSITIONS:
        raise InvalidStatusTransition(f"Unknown order status: {new_status}")
    if new_status == 'CANCELLED':
        return cancel_order(order, reason=reason, user=user)

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        old_status = locked.status
        if not locked.can_transition_to(new_status):
            logger.warning(f"Order {locked.order_number}: rejected transition {old_status} -> {new_status}")
            raise InvalidStatusTransition(
                f"Cannot change order {locked.order_number} from {old_status} to {new_status}"
            )
        locked.status = new_status
        setattr(locked, STATUS_TIMESTAMPS[new_status], timezone.now())
        locked.save()

    logger.info(f"Order {locked.order_number} status changed: {old_status} -> {new_status}")
    order_status_changed.send(sender=Order, order=locked, old_status=old_status, new_status=new_status, user=user)
    return locked


def cancel_order(order, reason='', user=None):
    """Cancel, put the stock back and refund any reward points spent on it"""
    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        old_status = locked.status
        if not locked.can_transition_to('CANCELLED'):
            logger.warning(f"Order {locked.order_number}: cannot cancel from {old_status}")
            raise InvalidStatusTransition(f"Cannot cancel order {locked.order_number} in status {old_status}")

        restore_for_order(locked, user=user)
        loyalty_services.cancel_order_redemptions(locked, reason=reason)

        locked.status = 'CANCELLED'
        locked.cancelled_at = timezone.now()
        locked.cancellation_reason = reason or ''
        if reason:
            locked.notes = f"{locked.notes}\nCancelled: {reason}".strip()
        locked.save()

    logger.info(f"Order {locked.order_number} cancelled from {old_status}: {reason or 'no reason given'}")
    order_status_changed.send(
        sender=Order, order=locked, old_status=old_status, new_status='CANCELLED', user=user
    )
    return locked


def assign_counter(order, counter=None):
    if order.is_terminal:
        raise TableTapError(f"Order {order.order_number} is already {order.status.lower()}")

    if counter is None:
        counter = pick_counter(order.cafe)
        if counter is None:
            raise TableTapError("No counter is available right now.")
    elif counter.cafe_id != order.cafe_id:
        raise TableTapError("Counter belongs to a different cafe.")
    elif not counter.is_available:
        raise TableTapError(f"Counter {counter.number} is not available.")

    order.counter = counter
    order.save(update_fields=['counter', 'updated_at'])
    logger.info(f"Order {order.order_number} assigned to counter {counter.number}")
    return order


def get_queue(cafe, counter=None):
    """Orders the kitchen still has to work on, oldest first"""
    queryset = Order.objects.filter(cafe=cafe, status__in=ACTIVE_ORDER_STATUSES)
    if counter is not None:
        queryset = queryset.filter(counter=counter)
    return queryset.select_related('counter').prefetch_related('items').order_by('created_at')
