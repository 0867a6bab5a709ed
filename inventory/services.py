from django.db import transaction
from django.db.models import Sum, F
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from decimal import Decimal
import logging

from authentication.exceptions import InsufficientStock
from .models import InventoryItem, InventoryAlert, RecipeIngredient, StockMovement

logger = logging.getLogger(__name__)


def adjust_stock(item, delta, movement_type, user=None, reference='', note=''):
    """
    Change an item's stock by ``delta`` (signed) and record the movement.

    The row is locked for the duration so concurrent sales cannot drive
    stock below zero. Raises InsufficientStock when they would.
    """
    delta = Decimal(str(delta))
    with transaction.atomic():
        locked = InventoryItem.objects.select_for_update().get(pk=item.pk)
        new_stock = locked.current_stock + delta
        if new_stock < 0:
            logger.warning(
                f"Stock adjustment rejected for {locked.sku}: have {locked.current_stock}, change {delta}"
            )
            raise InsufficientStock(
                f"Insufficient stock for {locked.name}: available {locked.current_stock} {locked.unit}, "
                f"requested {abs(delta)}"
            )

        locked.current_stock = new_stock
        update_fields = ['current_stock', 'updated_at']
        if movement_type == 'RESTOCK':
            locked.last_restocked_at = timezone.now()
            update_fields.append('last_restocked_at')
        locked.save(update_fields=update_fields)

        StockMovement.objects.create(
            inventory_item=locked,
            movement_type=movement_type,
            quantity=delta,
            stock_after=new_stock,
            reference=reference,
            note=note,
            performed_by=user,
        )
        evaluate_alerts(locked)

    logger.info(f"Stock adjusted: {locked.sku} {movement_type} {delta} -> {new_stock}")
    item.current_stock = locked.current_stock
    item.last_restocked_at = locked.last_restocked_at
    return locked


def restock(item, quantity, user=None, unit_cost=None, expiry_date=None, reference='', note=''):
    quantity = Decimal(str(quantity))
    if quantity <= 0:
        raise ValidationError({"quantity": "Restock quantity must be positive"})

    with transaction.atomic():
        if unit_cost is not None or expiry_date is not None:
            if unit_cost is not None:
                item.unit_cost = Decimal(str(unit_cost))
            if expiry_date is not None:
                item.expiry_date = expiry_date
            item.save(update_fields=['unit_cost', 'expiry_date', 'updated_at'])
        return adjust_stock(item, quantity, 'RESTOCK', user=user, reference=reference, note=note)


def _recipe_requirements(order):
    """Total quantity of each inventory item the order's lines consume"""
    required = {}
    for order_item in order.items.all():
        for ingredient in RecipeIngredient.objects.filter(menu_item_id=order_item.menu_item_id):
            amount = ingredient.quantity * order_item.quantity
            required[ingredient.inventory_item_id] = required.get(ingredient.inventory_item_id, Decimal('0')) + amount
    return required


def deduct_for_order(order, user=None):
    """
    Consume stock for every recipe ingredient of the order's items.

    All-or-nothing: the first shortfall rolls back every deduction.
    """
    required = _recipe_requirements(order)
    with transaction.atomic():
        # lock in pk order to keep concurrent orders from deadlocking
        for item in InventoryItem.objects.filter(pk__in=required.keys()).order_by('pk'):
            adjust_stock(
                item, -required[item.pk], 'SALE', user=user,
                reference=order.order_number, note=f"Order {order.order_number}"
            )
    return required


def restore_for_order(order, user=None):
    required = _recipe_requirements(order)
    with transaction.atomic():
        for item in InventoryItem.objects.filter(pk__in=required.keys()).order_by('pk'):
            adjust_stock(
                item, required[item.pk], 'RETURN', user=user,
                reference=order.order_number, note=f"Cancelled order {order.order_number}"
            )
    return required


def check_availability(cafe, lines):
    """
    Shortfalls for a prospective order given ``(menu_item, quantity)`` pairs.

    Returns a list of ``{inventory_item, required, available}`` dicts; an
    empty list means everything can be made.
    """
    required = {}
    for menu_item, quantity in lines:
        for ingredient in RecipeIngredient.objects.filter(menu_item=menu_item).select_related('inventory_item'):
            entry = required.setdefault(ingredient.inventory_item_id, [ingredient.inventory_item, Decimal('0')])
            entry[1] += ingredient.quantity * quantity

    shortfalls = []
    for inventory_item, amount in required.values():
        if inventory_item.current_stock < amount:
            shortfalls.append({
                'inventory_item': inventory_item,
                'required': amount,
                'available': inventory_item.current_stock,
            })
    return shortfalls


def _active_conditions(item):
    """Alert type -> (severity, message) for every condition that currently holds"""
    conditions = {}
    if item.is_out_of_stock:
        conditions['OUT_OF_STOCK'] = ('CRITICAL', f"{item.name} is out of stock")
    elif item.is_low_stock:
        severity = 'HIGH' if item.is_critical else 'MEDIUM'
        conditions['LOW_STOCK'] = (
            severity, f"{item.name} is low: {item.current_stock} {item.unit} left (minimum {item.minimum_stock})"
        )
    if item.is_overstock:
        conditions['OVERSTOCK'] = (
            'LOW', f"{item.name} is over maximum: {item.current_stock} of {item.maximum_stock} {item.unit}"
        )
    if item.is_expired:
        conditions['EXPIRED'] = ('HIGH', f"{item.name} expired on {item.expiry_date}")
    elif item.is_expiring_soon:
        conditions['EXPIRING_SOON'] = ('MEDIUM', f"{item.name} expires on {item.expiry_date}")
    return conditions


def evaluate_alerts(item):
    """
    Sync the item's open alerts with its current state.

    Opens one alert per holding condition (never a duplicate), refreshes
    the severity of existing ones and resolves those that cleared.
    Returns the list of newly raised alerts.
    """
    conditions = _active_conditions(item)
    open_alerts = {alert.alert_type: alert for alert in item.alerts.filter(is_resolved=False)}
    raised = []
    now = timezone.now()

    for alert_type, alert in open_alerts.items():
        if alert_type not in conditions:
            alert.is_resolved = True
            alert.resolved_at = now
            alert.save(update_fields=['is_resolved', 'resolved_at'])
            logger.info(f"Alert resolved: {alert_type} for {item.sku}")

    for alert_type, (severity, message) in conditions.items():
        alert = open_alerts.get(alert_type)
        if alert is None:
            raised.append(InventoryAlert.objects.create(
                cafe_id=item.cafe_id,
                inventory_item=item,
                alert_type=alert_type,
                severity=severity,
                message=message,
            ))
            logger.info(f"Alert raised: {alert_type} ({severity}) for {item.sku}")
        elif alert.severity != severity or alert.message != message:
            alert.severity = severity
            alert.message = message
            alert.save(update_fields=['severity', 'message'])

    return raised


def evaluate_cafe_alerts(cafe=None):
    """Re-check every active item, optionally for one cafe; returns the number of alerts raised"""
    items = InventoryItem.objects.filter(status='ACTIVE').select_related('cafe')
    if cafe is not None:
        items = items.filter(cafe=cafe)
    raised = 0
    for item in items:
        raised += len(evaluate_alerts(item))
    return raised


def acknowledge_alert(alert, user):
    alert.acknowledged_by = user
    alert.acknowledged_at = timezone.now()
    alert.save(update_fields=['acknowledged_by', 'acknowledged_at'])
    return alert


def resolve_alert(alert, user=None):
    now = timezone.now()
    alert.is_resolved = True
    alert.resolved_at = now
    if user is not None and alert.acknowledged_by_id is None:
        alert.acknowledged_by = user
        alert.acknowledged_at = now
    alert.save(update_fields=['is_resolved', 'resolved_at', 'acknowledged_by', 'acknowledged_at'])
    logger.info(f"Alert {alert.id} resolved manually")
    return alert


def low_stock_items(cafe):
    return InventoryItem.objects.filter(
        cafe=cafe, status='ACTIVE', current_stock__lte=F('minimum_stock')
    ).order_by('current_stock', 'name')


def alerts_summary(cafe):
    items = list(InventoryItem.objects.filter(cafe=cafe, status='ACTIVE').select_related('cafe'))
    open_alerts = InventoryAlert.objects.filter(cafe=cafe, is_resolved=False)
    total_value = InventoryItem.objects.filter(cafe=cafe, status='ACTIVE').aggregate(
        total=Sum(F('current_stock') * F('unit_cost'))
    )['total'] or Decimal('0')

    return {
        'total_items': len(items),
        'low_stock': sum(1 for item in items if item.is_low_stock and not item.is_out_of_stock),
        'out_of_stock': sum(1 for item in items if item.is_out_of_stock),
        'overstock': sum(1 for item in items if item.is_overstock),
        'expiring_soon': sum(1 for item in items if item.is_expiring_soon),
        'expired': sum(1 for item in items if item.is_expired),
        'open_alerts': open_alerts.count(),
        'critical_alerts': open_alerts.filter(severity='CRITICAL').count(),
        'total_stock_value': Decimal(str(total_value)).quantize(Decimal('0.01')),
    }
