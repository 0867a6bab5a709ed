from django.db import transaction
from django.db.models import Sum
from django.utils import timezone
from rest_framework.exceptions import ValidationError
import logging
import secrets
import time

from authentication.exceptions import PaymentError
from authentication.models import CustomUser
from .models import Order, Payment, CustomerCredit
from .pricing import round2, ZERO
from .signals import payment_processed

logger = logging.getLogger(__name__)

SETTLED_STATUSES = ['COMPLETED', 'PARTIALLY_REFUNDED', 'REFUNDED']


def generate_transaction_id(order):
    timestamp = int(time.time() * 1000)
    order_part = f"{order.pk:08d}"[-8:]
    return f"TXN_{order_part}_{timestamp}_{secrets.token_hex(3)}".upper()


def payment_summary(order):
    totals = order.payments.filter(status__in=SETTLED_STATUSES).aggregate(
        paid=Sum('amount'), refunded=Sum('refunded_amount')
    )
    paid = totals['paid'] or ZERO
    refunded = totals['refunded'] or ZERO
    net = paid - refunded
    return {
        'order_total': order.total,
        'amount_paid': paid,
        'amount_refunded': refunded,
        'net_paid': net,
        'remaining_balance': max(order.total - net, ZERO),
    }


def refresh_payment_status(order):
    summary = payment_summary(order)
    if summary['amount_refunded'] > 0 and summary['net_paid'] <= 0:
        status = 'REFUNDED'
    elif order.total > 0 and summary['net_paid'] >= order.total:
        status = 'PAID'
    elif summary['net_paid'] > 0:
        status = 'PARTIALLY_PAID'
    else:
        status = 'UNPAID'

    if order.payment_status != status:
        order.payment_status = status
        order.save(update_fields=['payment_status', 'updated_at'])
    return status


def simulate_processor(method, amount, reference=''):
    """
    Stand-in for an external payment gateway.

    Cash and card always go through; mobile wallets and gift cards are
    declined without the token or card number they are charged against.
    """
    stamp = int(time.time() * 1000)
    if method == 'CASH':
        return {'success': True, 'reference': f'CASH_{stamp}'}
    if method == 'CARD':
        return {'success': True, 'reference': f'CARD_{stamp}'}
    if method == 'MOBILE':
        if not reference:
            return {'success': False, 'error': 'Mobile wallet token missing'}
        return {'success': True, 'reference': f'MOBILE_{stamp}'}
    if method == 'GIFT_CARD':
        if not reference:
            return {'success': False, 'error': 'Gift card number missing'}
        return {'success': True, 'reference': f'GIFT_{stamp}'}
    return {'success': False, 'error': f'Unsupported payment method: {method}'}


def process_payment(order, method, amount, user=None, reference=''):
    """
    Take a payment against an order's remaining balance.

    A gateway decline is not an exception: the payment is kept as FAILED
    with its reason. Validation problems raise PaymentError.
    """
    amount = round2(amount)
    if method not in dict(Payment.METHOD_CHOICES):
        raise PaymentError(f"Unsupported payment method: {method}")
    if amount <= 0:
        raise PaymentError("Payment amount must be positive.")

    with transaction.atomic():
        locked = Order.objects.select_for_update().select_related('cafe', 'customer').get(pk=order.pk)
        if locked.status == 'CANCELLED':
            raise PaymentError("Cannot process payment for a cancelled order.")

        remaining = payment_summary(locked)['remaining_balance']
        if amount > remaining:
            logger.warning(f"Payment of {amount} rejected for order {locked.order_number}: remaining {remaining}")
            raise PaymentError(f"Payment amount exceeds remaining balance. Remaining: {remaining}")

        payment = Payment.objects.create(
            order=locked,
            transaction_id=generate_transaction_id(locked),
            method=method,
            amount=amount,
            status='PROCESSING',
            processed_by=user,
        )

        if method == 'STORE_CREDIT':
            if locked.customer is None:
                raise PaymentError("Store credit needs a customer on the order.")
            entry = use_credit(
                locked.customer, locked.cafe, amount, description=f"Payment for order {locked.order_number}",
                reference=payment.transaction_id, order=locked, user=user
            )
            result = {'success': True, 'reference': f'CREDIT_{entry.pk}'}
        else:
            result = simulate_processor(method, amount, reference)

        payment.processor_response = result
        payment.processed_at = timezone.now()
        if result['success']:
            payment.status = 'COMPLETED'
            payment.processor_reference = result['reference']
        else:
            payment.status = 'FAILED'
            payment.failure_reason = result['error']
        payment.save()
        refresh_payment_status(locked)

    if payment.status == 'COMPLETED':
        logger.info(f"Payment {payment.transaction_id} completed: {amount} by {method} for {locked.order_number}")
        payment_processed.send(sender=Payment, payment=payment, order=locked)
    else:
        logger.warning(f"Payment {payment.transaction_id} declined: {payment.failure_reason}")
    order.payment_status = locked.payment_status
    return payment


def refund_payment(payment, amount=None, reason='', user=None):
    with transaction.atomic():
        locked = Payment.objects.select_for_update().select_related('order', 'order__cafe').get(pk=payment.pk)
        if locked.status not in ['COMPLETED', 'PARTIALLY_REFUNDED']:
            raise PaymentError("Can only refund completed payments.")

        refundable = locked.net_amount
        amount = refundable if amount is None else round2(amount)
        if amount <= 0 or amount > refundable:
            raise PaymentError(f"Refund amount must be between 0.01 and {refundable}.")

        locked.refunded_amount += amount
        locked.status = 'REFUNDED' if locked.refunded_amount >= locked.amount else 'PARTIALLY_REFUNDED'
        locked.refunded_at = timezone.now()
        locked.refund_reason = reason or ''
        refunds = locked.processor_response.get('refunds', [])
        refunds.append({'amount': str(amount), 'reason': reason or '', 'at': locked.refunded_at.isoformat()})
        locked.processor_response['refunds'] = refunds
        locked.save()

        order = locked.order
        if locked.method == 'STORE_CREDIT' and order.customer_id:
            add_credit(
                order.customer, order.cafe, amount, transaction_type='REFUND',
                description=f"Refund for order {order.order_number}",
                reference=locked.transaction_id, order=order, user=user
            )
        refresh_payment_status(order)

    logger.info(f"Payment {locked.transaction_id} refunded {amount} ({locked.status})")
    return locked


# =============== CUSTOMER CREDIT ===============

def credit_balance(customer, cafe):
    last = CustomerCredit.objects.filter(customer=customer, cafe=cafe).order_by('-id').first()
    return last.balance if last else ZERO


def _lock_ledger(customer):
    # serializes ledger writes per customer; take it before reading the balance
    CustomUser.objects.select_for_update().filter(pk=customer.pk).first()


def _post_credit(customer, cafe, amount, transaction_type, **fields):
    """Append a ledger entry; the caller holds the ledger lock"""
    balance = credit_balance(customer, cafe) + amount
    return CustomerCredit.objects.create(
        cafe=cafe, customer=customer, transaction_type=transaction_type,
        amount=amount, balance=balance, **fields
    )


def add_credit(customer, cafe, amount, description='', reference='', expires_at=None, user=None,
               transaction_type='CREDIT', order=None):
    amount = round2(amount)
    if amount <= 0:
        raise ValidationError({'amount': 'Credit amount must be positive.'})
    with transaction.atomic():
        _lock_ledger(customer)
        entry = _post_credit(
            customer, cafe, amount, transaction_type,
            description=description, reference=reference, expires_at=expires_at,
            order=order, created_by=user
        )
    logger.info(f"Credit {transaction_type} {amount} for {customer.email} at {cafe.slug}: balance {entry.balance}")
    return entry


def use_credit(customer, cafe, amount, description='', reference='', order=None, user=None):
    amount = round2(amount)
    if amount <= 0:
        raise ValidationError({'amount': 'Amount must be positive.'})
    with transaction.atomic():
        _lock_ledger(customer)
        balance = credit_balance(customer, cafe)
        if balance < amount:
            logger.warning(f"Store credit debit rejected for {customer.email}: balance {balance}, needs {amount}")
            raise PaymentError(f"Insufficient store credit: balance {balance}, requested {amount}.")
        entry = _post_credit(
            customer, cafe, -amount, 'DEBIT',
            description=description, reference=reference, order=order, created_by=user
        )
    logger.info(f"Credit debit {amount} for {customer.email} at {cafe.slug}: balance {entry.balance}")
    return entry


def adjust_credit(customer, cafe, amount, description='', user=None):
    """Signed manual correction; the balance may not go negative"""
    amount = round2(amount)
    with transaction.atomic():
        _lock_ledger(customer)
        if credit_balance(customer, cafe) + amount < 0:
            raise ValidationError({'amount': 'Adjustment would make the balance negative.'})
        return _post_credit(customer, cafe, amount, 'ADJUSTMENT', description=description, created_by=user)


def expire_credits(now=None, cafe=None):
    """Post EXPIRY debits for credit entries past their expiry; returns how many expired"""
    now = now or timezone.now()
    entries = CustomerCredit.objects.filter(
        transaction_type__in=['CREDIT', 'REFUND'], expires_at__lte=now, is_expired=False
    ).select_related('customer', 'cafe')
    if cafe is not None:
        entries = entries.filter(cafe=cafe)

    expired = 0
    for entry in entries.order_by('id'):
        with transaction.atomic():
            _lock_ledger(entry.customer)
            expire_amount = min(entry.amount, credit_balance(entry.customer, entry.cafe))
            entry.is_expired = True
            entry.save(update_fields=['is_expired'])
            if expire_amount > 0:
                _post_credit(
                    entry.customer, entry.cafe, -expire_amount, 'EXPIRY',
                    description=f"Expired credit from {entry.created_at:%Y-%m-%d}", reference=str(entry.pk)
                )
        expired += 1
    if expired:
        logger.info(f"Expired {expired} customer credit entries")
    return expired


def credit_history(customer, cafe):
    return CustomerCredit.objects.filter(customer=customer, cafe=cafe).order_by('-id')
