"""
Money arithmetic shared by carts and orders.

Every amount is a Decimal rounded half-up to cents. Tax and service fee
are charged on the undiscounted subtotal, the discount comes off the
end, and a total never goes below zero.
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

PERCENTAGE = 'PERCENTAGE'
FIXED = 'FIXED'
DISCOUNT_TYPES = [PERCENTAGE, FIXED]


def round2(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def unit_price(base_price, option_modifiers=()):
    return round2(Decimal(str(base_price)) + sum((Decimal(str(m)) for m in option_modifiers), ZERO))


def line_total(base_price, quantity, price_delta=ZERO):
    """(base + selected option modifiers) x quantity"""
    return round2((Decimal(str(base_price)) + Decimal(str(price_delta))) * quantity)


def discount_amount(subtotal, discount_type, value):
    subtotal = Decimal(str(subtotal))
    value = Decimal(str(value or 0))
    if value <= 0 or subtotal <= 0:
        return ZERO
    if discount_type == PERCENTAGE:
        return min(round2(subtotal * min(value, Decimal('100')) / 100), round2(subtotal))
    return min(round2(value), round2(subtotal))


def calculate_totals(subtotal, tax_rate, service_fee_rate=ZERO, delivery_fee=ZERO, tip=ZERO, discount=ZERO):
    """
    Return the full breakdown for a subtotal.

    ``delivery_fee`` is the flat fee to charge, pass zero for anything but
    delivery orders. ``discount`` is an amount already resolved by
    discount_amount() and is capped at the subtotal here as well.
    """
    subtotal = round2(subtotal)
    has_items = subtotal > 0

    tax = round2(subtotal * Decimal(str(tax_rate)))
    service_fee = round2(subtotal * Decimal(str(service_fee_rate))) if has_items else ZERO
    delivery = round2(delivery_fee) if has_items else ZERO
    tip = round2(tip or 0)
    if tip < 0:
        raise ValueError(f"Tip cannot be negative: {tip}")
    discount = min(round2(discount or 0), subtotal)

    total = subtotal + tax + service_fee + delivery + tip - discount
    return {
        'subtotal': subtotal,
        'tax': tax,
        'service_fee': service_fee,
        'delivery_fee': delivery,
        'tip': tip,
        'discount': discount,
        'total': max(total, ZERO),
    }


def totals_for_cafe(cafe, subtotal, order_type='DINE_IN', tip=ZERO, discount=ZERO):
    """calculate_totals() with the cafe's configured rates"""
    return calculate_totals(
        subtotal,
        tax_rate=cafe.get_setting('tax_rate'),
        service_fee_rate=cafe.get_setting('service_fee_rate'),
        delivery_fee=cafe.get_setting('delivery_fee') if order_type == 'DELIVERY' else ZERO,
        tip=tip,
        discount=discount,
    )
