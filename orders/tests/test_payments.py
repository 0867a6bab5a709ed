from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from authentication.exceptions import PaymentError
from authentication.models import CustomUser, Cafe
from authentication.roles import CASHIER
from employees.models import Employee
from orders import payments, services
from orders.models import CustomerCredit, Payment
from .test_orders import build_menu


class PaymentServiceTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Pay Cafe', slug='pay-cafe')
        self.latte = build_menu(self.cafe)[0]
        self.customer = CustomUser.objects.create_user(email='regular@pay.com', password='SecurePass123!')
        # 2 x 4.00 + 8% tax + 3% service fee = 8.88
        self.order = services.create_order(
            self.cafe, [{'menu_item_id': self.latte.id, 'quantity': 2}], customer=self.customer
        )

    def test_full_payment_marks_order_paid(self):
        payment = payments.process_payment(self.order, 'CASH', Decimal('8.88'))

        self.assertEqual(payment.status, 'COMPLETED')
        self.assertTrue(payment.transaction_id.startswith('TXN_'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'PAID')

    def test_split_payment_and_overpayment(self):
        payments.process_payment(self.order, 'CARD', Decimal('5.00'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'PARTIALLY_PAID')
        self.assertEqual(payments.payment_summary(self.order)['remaining_balance'], Decimal('3.88'))

        with self.assertRaises(PaymentError):
            payments.process_payment(self.order, 'CASH', Decimal('4.00'))

    def test_declined_payment_is_recorded_as_failed(self):
        payment = payments.process_payment(self.order, 'MOBILE', Decimal('8.88'))

        self.assertEqual(payment.status, 'FAILED')
        self.assertEqual(payment.failure_reason, 'Mobile wallet token missing')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'UNPAID')

    def test_cancelled_order_cannot_be_paid(self):
        services.cancel_order(self.order)
        with self.assertRaises(PaymentError):
            payments.process_payment(self.order, 'CASH', Decimal('1.00'))

    def test_partial_then_full_refund(self):
        payment = payments.process_payment(self.order, 'CASH', Decimal('8.88'))

        payment = payments.refund_payment(payment, Decimal('3.00'), reason='Cold coffee')
        self.assertEqual(payment.status, 'PARTIALLY_REFUNDED')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'PARTIALLY_PAID')

        with self.assertRaises(PaymentError):
            payments.refund_payment(payment, Decimal('6.00'))

        payment = payments.refund_payment(payment)
        self.assertEqual(payment.status, 'REFUNDED')
        self.assertEqual(payment.refunded_amount, Decimal('8.88'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'REFUNDED')

    def test_store_credit_payment_and_refund(self):
        payments.add_credit(self.customer, self.cafe, Decimal('20.00'), description='Gift')

        payment = payments.process_payment(self.order, 'STORE_CREDIT', Decimal('8.88'))
        self.assertEqual(payment.status, 'COMPLETED')
        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('11.12'))

        payments.refund_payment(payment)
        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('20.00'))

    def test_store_credit_shortfall_rolls_back_payment(self):
        payments.add_credit(self.customer, self.cafe, Decimal('5.00'))
        with self.assertRaises(PaymentError):
            payments.process_payment(self.order, 'STORE_CREDIT', Decimal('8.88'))
        self.assertFalse(Payment.objects.exists())


class CustomerCreditTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Credit Cafe', slug='credit-cafe')
        self.other_cafe = Cafe.objects.create(name='Other Credit Cafe', slug='other-credit-cafe')
        self.customer = CustomUser.objects.create_user(email='credit@pay.com', password='SecurePass123!')

    def test_balances_are_per_cafe(self):
        payments.add_credit(self.customer, self.cafe, Decimal('10.00'))
        payments.add_credit(self.customer, self.other_cafe, Decimal('3.00'))

        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('10.00'))
        self.assertEqual(payments.credit_balance(self.customer, self.other_cafe), Decimal('3.00'))

    def test_ledger_keeps_running_balance(self):
        payments.add_credit(self.customer, self.cafe, Decimal('10.00'))
        payments.use_credit(self.customer, self.cafe, Decimal('4.00'))
        entry = payments.adjust_credit(self.customer, self.cafe, Decimal('-1.00'), description='Correction')

        self.assertEqual(entry.balance, Decimal('5.00'))
        self.assertEqual(
            [e.transaction_type for e in payments.credit_history(self.customer, self.cafe)],
            ['ADJUSTMENT', 'DEBIT', 'CREDIT']
        )

    def test_overdraw_is_rejected(self):
        payments.add_credit(self.customer, self.cafe, Decimal('2.00'))
        with self.assertRaises(PaymentError):
            payments.use_credit(self.customer, self.cafe, Decimal('3.00'))
        with self.assertRaises(ValidationError):
            payments.adjust_credit(self.customer, self.cafe, Decimal('-3.00'))

    def test_expired_credit_is_debited(self):
        payments.add_credit(
            self.customer, self.cafe, Decimal('7.50'), expires_at=timezone.now() - timedelta(days=1)
        )
        payments.add_credit(self.customer, self.cafe, Decimal('2.50'))

        self.assertEqual(payments.expire_credits(), 1)
        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('2.50'))
        self.assertEqual(payments.expire_credits(), 0)

    def _debit_while_waiting_for_lock(self, amount):
        lock = payments._lock_ledger

        def competing_debit(customer):
            # another checkout commits its debit just before this one gets the lock
            CustomerCredit.objects.create(
                cafe=self.cafe, customer=customer, transaction_type='DEBIT', amount=-amount,
                balance=payments.credit_balance(customer, self.cafe) - amount
            )
            lock(customer)
        return mock.patch('orders.payments._lock_ledger', side_effect=competing_debit)

    def test_debit_checks_balance_after_taking_lock(self):
        payments.add_credit(self.customer, self.cafe, Decimal('5.00'))

        with self._debit_while_waiting_for_lock(Decimal('4.00')):
            with self.assertRaises(PaymentError):
                payments.use_credit(self.customer, self.cafe, Decimal('4.00'))
        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('1.00'))

    def test_adjustment_checks_balance_after_taking_lock(self):
        payments.add_credit(self.customer, self.cafe, Decimal('5.00'))

        with self._debit_while_waiting_for_lock(Decimal('4.00')):
            with self.assertRaises(ValidationError):
                payments.adjust_credit(self.customer, self.cafe, Decimal('-3.00'))
        self.assertEqual(payments.credit_balance(self.customer, self.cafe), Decimal('1.00'))


class PaymentApiTests(APITestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Api Pay Cafe', slug='api-pay-cafe')
        self.latte = build_menu(self.cafe)[0]
        self.cashier = CustomUser.objects.create_user(email='cashier@pay.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.cashier, role=CASHIER)
        self.order = services.create_order(self.cafe, [{'menu_item_id': self.latte.id, 'quantity': 2}])

        self.client = APIClient()
        self.client.force_authenticate(user=self.cashier)

    def test_payment_is_created(self):
        response = self.client.post(
            reverse('order-payments', args=[self.order.id]), {'method': 'CARD', 'amount': '8.88'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['payment']['status'], 'COMPLETED')
        self.assertEqual(response.data['summary']['remaining_balance'], Decimal('0.00'))

    def test_declined_payment_returns_402(self):
        response = self.client.post(
            reverse('order-payments', args=[self.order.id]), {'method': 'GIFT_CARD', 'amount': '8.88'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertEqual(response.data['payment']['status'], 'FAILED')

    def test_cashier_cannot_refund(self):
        payment = payments.process_payment(self.order, 'CASH', Decimal('8.88'))
        response = self.client.post(reverse('payment-refund', args=[payment.id]), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
