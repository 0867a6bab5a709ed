"""
Server-side carts kept in the Django cache.

A cart is a plain JSON-able dict stored under one key per cafe and
owner. Every save first copies the previous good state to a backup key,
so a corrupted or evicted primary entry can be recovered on the next load.
"""
from django.core.cache import cache
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from datetime import timedelta
from decimal import Decimal, InvalidOperation
import json
import logging
import secrets

from rest_framework.exceptions import PermissionDenied

from authentication.exceptions import CartValidationError, RedemptionError
from loyalty import services as loyalty_services
from . import pricing
from .models import Order
from .services import create_order, resolve_lines

logger = logging.getLogger(__name__)

CART_VERSION = 1
ORDER_TYPES = [choice for choice, _ in Order.ORDER_TYPE_CHOICES]
REWARD = 'REWARD'


def _error(field, message, code):
    return {'field': field, 'message': message, 'code': code}


def _normalize_customizations(selections):
    normalized = []
    for selection in selections or []:
        normalized.append({
            'customization_id': selection.get('customization_id'),
            'option_ids': sorted(selection.get('option_ids') or [], key=str),
        })
    return sorted(normalized, key=lambda entry: str(entry['customization_id']))


def cart_owner(request):
    """Cache identity for the requester: the user, or an anonymous cart id header"""
    if request.user.is_authenticated:
        return f"user:{request.user.pk}"
    cart_id = request.headers.get('X-Cart-Id', '').strip()
    if cart_id:
        return f"anon:{cart_id[:64]}"
    return None


class CartService:
    def __init__(self, cafe, owner):
        self.cafe = cafe
        self.owner = owner
        self.key = f"cart:{cafe.pk}:{owner}"
        self.backup_key = f"{self.key}:backup"

    # --- persistence ---

    @property
    def timeout(self):
        return int(self.cafe.get_setting('cart_expiration_hours')) * 3600

    def new_cart(self):
        now = timezone.now()
        return {
            'version': CART_VERSION,
            'cafe': self.cafe.slug,
            'items': [],
            'order_type': 'DINE_IN',
            'table_number': '',
            'tip': '0.00',
            'discount': None,
            'notes': '',
            'created_at': now.isoformat(),
            'updated_at': now.isoformat(),
            'expires_at': (now + timedelta(seconds=self.timeout)).isoformat(),
        }

    @staticmethod
    def is_well_formed(data):
        if not isinstance(data, dict) or not isinstance(data.get('items'), list):
            return False
        if parse_datetime(str(data.get('expires_at', ''))) is None:
            return False
        for item in data['items']:
            if not isinstance(item, dict) or not item.get('line_id'):
                return False
            if not isinstance(item.get('menu_item_id'), int) or not isinstance(item.get('quantity'), int):
                return False
        try:
            Decimal(str(data.get('tip', '0')))
        except InvalidOperation:
            return False
        return True

    @staticmethod
    def is_expired(cart, now=None):
        return parse_datetime(cart['expires_at']) < (now or timezone.now())

    def load(self, clear_expired=True):
        cart = cache.get(self.key)
        if not self.is_well_formed(cart):
            backup = cache.get(self.backup_key)
            if self.is_well_formed(backup):
                logger.warning(f"Cart {self.key} recovered from backup")
                cache.set(self.key, backup, self.timeout)
                cart = backup
            else:
                if cart is not None or backup is not None:
                    logger.warning(f"Cart {self.key} unreadable, starting fresh")
                cart = self.new_cart()

        if clear_expired and self.is_expired(cart):
            logger.info(f"Cart {self.key} expired, clearing")
            return self.clear()
        return cart

    def save(self, cart):
        previous = cache.get(self.key)
        if self.is_well_formed(previous):
            cache.set(self.backup_key, previous, self.timeout)

        now = timezone.now()
        cart['updated_at'] = now.isoformat()
        cart['expires_at'] = (now + timedelta(seconds=self.timeout)).isoformat()
        cache.set(self.key, cart, self.timeout)
        return cart

    def clear(self):
        cache.delete(self.backup_key)
        cart = self.new_cart()
        cache.set(self.key, cart, self.timeout)
        return cart

    # --- items ---

    def _find_line(self, cart, line_id):
        for item in cart['items']:
            if item['line_id'] == line_id:
                return item
        raise CartValidationError([_error('line_id', 'Item not found in cart', 'ITEM_NOT_FOUND')])

    def _check_line(self, item):
        lines, errors = resolve_lines(self.cafe, [item])
        if errors:
            for error in errors:
                error['field'] = error['field'].replace('items[0].', '')
            raise CartValidationError(errors)
        return lines[0]

    def _check_capacity(self, cart):
        max_items = self.cafe.get_setting('max_cart_items')
        total_quantity = sum(item['quantity'] for item in cart['items'])
        if total_quantity > max_items:
            raise CartValidationError([_error(
                'quantity', f'A cart can hold at most {max_items} items', 'MAX_ITEMS_EXCEEDED'
            )])

    def add_item(self, menu_item_id, quantity=1, customizations=None, special_instructions=''):
        if quantity < 1:
            raise CartValidationError([_error('quantity', 'Quantity must be at least 1', 'QUANTITY_TOO_LOW')])
        cart = self.load()
        customizations = _normalize_customizations(customizations)

        existing = None
        for item in cart['items']:
            if item['menu_item_id'] == menu_item_id and item['customizations'] == customizations:
                existing = item
                break

        candidate = dict(existing) if existing else {
            'line_id': secrets.token_hex(4),
            'menu_item_id': menu_item_id,
            'quantity': 0,
            'customizations': customizations,
            'special_instructions': '',
        }
        candidate['quantity'] = candidate['quantity'] + quantity
        if special_instructions:
            candidate['special_instructions'] = special_instructions

        line = self._check_line(candidate)
        candidate['name'] = line['menu_item'].name
        candidate['base_price'] = str(line['menu_item'].price)

        if existing:
            existing.update(candidate)
        else:
            cart['items'].append(candidate)
        self._check_capacity(cart)
        return self.save(cart)

    def update_item(self, line_id, quantity=None, customizations=None, special_instructions=None):
        cart = self.load()
        item = self._find_line(cart, line_id)
        candidate = dict(item)
        if quantity is not None:
            candidate['quantity'] = quantity
        if customizations is not None:
            candidate['customizations'] = _normalize_customizations(customizations)
        if special_instructions is not None:
            candidate['special_instructions'] = special_instructions

        line = self._check_line(candidate)
        candidate['base_price'] = str(line['menu_item'].price)
        item.update(candidate)
        self._check_capacity(cart)
        return self.save(cart)

    def remove_item(self, line_id):
        cart = self.load()
        item = self._find_line(cart, line_id)
        cart['items'].remove(item)
        return self.save(cart)

    # --- order details ---

    def _manual_discount(self, discount_type, value, code=''):
        if discount_type not in pricing.DISCOUNT_TYPES:
            raise CartValidationError([_error('type', 'Discount type must be PERCENTAGE or FIXED', 'INVALID_DISCOUNT')])
        try:
            value = Decimal(str(value))
        except InvalidOperation:
            value = Decimal('0')
        if not value.is_finite() or value <= 0 or (discount_type == pricing.PERCENTAGE and value > 100):
            raise CartValidationError([_error('value', 'Discount value is out of range', 'INVALID_DISCOUNT')])
        return {'type': discount_type, 'value': str(value), 'code': code or ''}

    def _checked_tip(self, amount):
        try:
            amount = pricing.round2(amount)
        except InvalidOperation:
            raise CartValidationError([_error('tip', 'Tip must be a number', 'INVALID_TIP')])
        if not amount.is_finite() or amount < 0:
            raise CartValidationError([_error('tip', 'Tip cannot be negative', 'INVALID_TIP')])
        return amount

    def _checked_notes(self, notes):
        notes = str(notes or '')
        max_notes = self.cafe.get_setting('max_notes_length')
        if len(notes) > max_notes:
            raise CartValidationError([_error('notes', f'Notes cannot exceed {max_notes} characters', 'NOTES_TOO_LONG')])
        return notes

    def apply_discount(self, discount_type=None, value=None, code='', allow_manual=False):
        """
        Either a manual PERCENTAGE/FIXED discount, or a loyalty
        redemption code (``code`` with no type). Manual discounts need
        ``allow_manual``, which callers grant to staff who may give them.
        """
        cart = self.load()
        if not discount_type and code:
            subtotal = self.totals(cart)['subtotal']
            try:
                loyalty_services.apply_redemption_to_order(self.cafe, code, subtotal)
            except RedemptionError as exc:
                raise CartValidationError([_error('code', str(exc.detail), 'INVALID_DISCOUNT')])
            cart['discount'] = {'type': REWARD, 'value': None, 'code': code.upper()}
            return self.save(cart)

        if not allow_manual:
            logger.warning(f"Manual discount refused for cart {self.key}")
            raise PermissionDenied('Only staff allowed to give discounts can apply a manual discount.')
        cart['discount'] = self._manual_discount(discount_type, value, code)
        return self.save(cart)

    def remove_discount(self):
        cart = self.load()
        cart['discount'] = None
        return self.save(cart)

    def set_tip(self, amount):
        amount = self._checked_tip(amount)
        cart = self.load()
        cart['tip'] = str(amount)
        return self.save(cart)

    def set_order_type(self, order_type, table_number=''):
        if order_type not in ORDER_TYPES:
            raise CartValidationError([_error('order_type', f'Unknown order type {order_type}', 'INVALID_ORDER_TYPE')])
        cart = self.load()
        cart['order_type'] = order_type
        cart['table_number'] = (table_number or '') if order_type == 'DINE_IN' else ''
        return self.save(cart)

    def set_notes(self, notes):
        notes = self._checked_notes(notes)
        cart = self.load()
        cart['notes'] = notes
        return self.save(cart)

    # --- pricing & validation ---

    def totals(self, cart=None):
        """
        Price the cart against the current menu.

        Lines that no longer validate count as zero and carry their
        errors, so the total always equals the listed line totals plus
        tax and fees minus the discount.
        """
        cart = cart if cart is not None else self.load()
        items = []
        subtotal = Decimal('0.00')
        for item in cart['items']:
            lines, errors = resolve_lines(self.cafe, [item])
            entry = {
                'line_id': item['line_id'],
                'menu_item_id': item['menu_item_id'],
                'name': item.get('name', ''),
                'quantity': item['quantity'],
                'customizations': item['customizations'],
                'special_instructions': item.get('special_instructions', ''),
            }
            if errors:
                entry.update({'unit_price': Decimal('0.00'), 'total_price': Decimal('0.00'), 'errors': errors})
            else:
                line = lines[0]
                entry.update({
                    'name': line['menu_item'].name,
                    'unit_price': line['unit_price'],
                    'total_price': line['total_price'],
                    'selected_customizations': line['customizations'],
                })
                subtotal += line['total_price']
            items.append(entry)

        discount = Decimal('0.00')
        discount_info = cart.get('discount')
        if discount_info:
            if discount_info['type'] == REWARD:
                try:
                    _, discount = loyalty_services.apply_redemption_to_order(
                        self.cafe, discount_info['code'], subtotal
                    )
                except RedemptionError:
                    discount = Decimal('0.00')
            else:
                discount = pricing.discount_amount(subtotal, discount_info['type'], discount_info['value'])

        summary = pricing.totals_for_cafe(
            self.cafe, subtotal, cart['order_type'], tip=Decimal(cart.get('tip') or '0'), discount=discount
        )
        summary['items'] = items
        summary['item_count'] = sum(item['quantity'] for item in cart['items'])
        return summary

    def validate(self, cart=None, for_checkout=False):
        cart = cart if cart is not None else self.load(clear_expired=not for_checkout)
        errors = []

        if for_checkout and self.is_expired(cart):
            return [_error('cart', 'Cart has expired', 'CART_EXPIRED')]
        if for_checkout and not cart['items']:
            return [_error('items', 'Cart is empty', 'EMPTY_CART')]

        for index, item in enumerate(cart['items']):
            _, line_errors = resolve_lines(self.cafe, [item])
            for error in line_errors:
                error['field'] = error['field'].replace('items[0]', f"items[{index}]")
                error['line_id'] = item['line_id']
            errors.extend(line_errors)

        max_items = self.cafe.get_setting('max_cart_items')
        if sum(item['quantity'] for item in cart['items']) > max_items:
            errors.append(_error('items', f'A cart can hold at most {max_items} items', 'MAX_ITEMS_EXCEEDED'))
        if len(cart.get('notes') or '') > self.cafe.get_setting('max_notes_length'):
            errors.append(_error('notes', 'Notes are too long', 'NOTES_TOO_LONG'))

        if for_checkout and not errors:
            minimum = self.cafe.get_setting('minimum_order_amount')
            subtotal = self.totals(cart)['subtotal']
            if subtotal < minimum:
                errors.append(_error(
                    'subtotal', f'Minimum order amount is {minimum}, cart subtotal is {subtotal}',
                    'MINIMUM_ORDER_NOT_MET'
                ))
        return errors

    def checkout(self, created_by=None, customer=None, customer_name='', customer_phone='', delivery_address='',
                 allow_manual_discount=False):
        """Turn the cart into an order and empty it"""
        cart = self.load(clear_expired=False)
        errors = self.validate(cart, for_checkout=True)
        if errors:
            if errors[0]['code'] == 'CART_EXPIRED':
                self.clear()
            logger.warning(f"Checkout rejected for {self.key}: {[e['code'] for e in errors]}")
            raise CartValidationError(errors)

        discount = cart.get('discount') or {}
        if discount.get('type') in pricing.DISCOUNT_TYPES and not allow_manual_discount:
            logger.warning(f"Dropping manual discount from cart {self.key}: requester may not give discounts")
            discount = {}
        order = create_order(
            self.cafe,
            [
                {
                    'menu_item_id': item['menu_item_id'],
                    'quantity': item['quantity'],
                    'customizations': item['customizations'],
                    'special_instructions': item.get('special_instructions', ''),
                }
                for item in cart['items']
            ],
            created_by=created_by,
            customer=customer,
            order_type=cart['order_type'],
            table_number=cart.get('table_number', ''),
            customer_name=customer_name,
            customer_phone=customer_phone,
            delivery_address=delivery_address,
            notes=cart.get('notes', ''),
            tip=Decimal(cart.get('tip') or '0'),
            discount_type=discount.get('type') if discount.get('type') != REWARD else None,
            discount_value=discount.get('value') or Decimal('0'),
            redemption_code=discount.get('code') if discount.get('type') == REWARD else None,
        )
        self.clear()
        logger.info(f"Cart {self.key} checked out as order {order.order_number}")
        return order

    # --- transfer ---

    def export_cart(self):
        return json.dumps(self.load(), cls=DjangoJSONEncoder)

    def import_cart(self, payload, allow_manual_discount=False):
        """
        Replace the cart with exported data.

        Lines that no longer validate against the menu are dropped and
        reported; returns ``(cart, skipped_errors)``. Tip, notes and a
        manual discount go through the same checks as the setters.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError:
                raise CartValidationError([_error('cart', 'Cart data is not valid JSON', 'INVALID_CART_DATA')])
        if not self.is_well_formed(payload):
            raise CartValidationError([_error('cart', 'Cart data is malformed', 'INVALID_CART_DATA')])

        cart = self.new_cart()
        skipped = []
        for item in payload['items']:
            _, errors = resolve_lines(self.cafe, [item])
            if errors:
                skipped.extend(errors)
                continue
            cart['items'].append(item)

        if payload.get('order_type') in ORDER_TYPES:
            cart['order_type'] = payload['order_type']
        if cart['order_type'] == 'DINE_IN':
            cart['table_number'] = str(payload.get('table_number') or '')
        if payload.get('tip') is not None:
            cart['tip'] = str(self._checked_tip(payload['tip']))
        if payload.get('notes') is not None:
            cart['notes'] = self._checked_notes(payload['notes'])

        discount = payload.get('discount')
        if not isinstance(discount, dict):
            discount = {}
        if discount.get('type') in pricing.DISCOUNT_TYPES:
            if allow_manual_discount:
                cart['discount'] = self._manual_discount(discount['type'], discount.get('value'), discount.get('code'))
            else:
                logger.warning(f"Cart import for {self.key} dropped a manual discount")

        self._check_capacity(cart)
        if skipped:
            logger.warning(f"Cart import for {self.key} skipped {len(skipped)} invalid line(s)")
        return self.save(cart), skipped
