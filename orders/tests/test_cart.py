from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import PermissionDenied
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal
import json

from authentication.exceptions import CartValidationError
from authentication.models import Cafe, CustomUser
from authentication.roles import BARISTA, CASHIER
from employees.models import Employee
from orders.cart import CartService
from orders.models import Order
from .test_orders import build_menu


class CartServiceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.cafe = Cafe.objects.create(name='Cart Cafe', slug='cart-cafe')
        self.latte, self.size, self.large, self.milk = build_menu(self.cafe)
        self.service = CartService(self.cafe, 'user:test')

    def test_same_item_and_options_merge_into_one_line(self):
        self.service.add_item(self.latte.id, 2)
        cart = self.service.add_item(self.latte.id, 1)
        self.assertEqual(len(cart['items']), 1)
        self.assertEqual(cart['items'][0]['quantity'], 3)

        large = [{'customization_id': self.size.id, 'option_ids': [self.large.id]}]
        cart = self.service.add_item(self.latte.id, 1, customizations=large)
        self.assertEqual(len(cart['items']), 2)

    def test_totals_follow_current_menu(self):
        self.service.add_item(self.latte.id, 3)
        totals = self.service.totals()
        self.assertEqual(totals['subtotal'], Decimal('12.00'))
        self.assertEqual(totals['total'], Decimal('13.32'))
        self.assertEqual(totals['item_count'], 3)

        self.latte.price = Decimal('5.00')
        self.latte.save()
        self.assertEqual(self.service.totals()['subtotal'], Decimal('15.00'))

    def test_quantity_limit_per_item(self):
        self.service.add_item(self.latte.id, 8)
        with self.assertRaises(CartValidationError) as ctx:
            self.service.add_item(self.latte.id, 3)
        self.assertEqual(ctx.exception.errors[0]['code'], 'QUANTITY_TOO_HIGH')
        self.assertEqual(self.service.load()['items'][0]['quantity'], 8)

    def test_fixed_discount(self):
        self.service.add_item(self.latte.id, 3)
        self.service.apply_discount('FIXED', '2.00', allow_manual=True)
        totals = self.service.totals()
        self.assertEqual(totals['discount'], Decimal('2.00'))
        self.assertEqual(totals['total'], Decimal('11.32'))

    def test_manual_discount_needs_staff_permission(self):
        self.service.add_item(self.latte.id, 3)
        with self.assertRaises(PermissionDenied):
            self.service.apply_discount('PERCENTAGE', '100')
        self.assertIsNone(self.service.load()['discount'])

    def test_checkout_drops_discount_requester_may_not_give(self):
        self.service.add_item(self.latte.id, 3)
        self.service.apply_discount('FIXED', '2.00', allow_manual=True)

        order = self.service.checkout()
        self.assertEqual(order.discount, Decimal('0.00'))
        self.assertEqual(order.total, Decimal('13.32'))

    def test_minimum_order_blocks_checkout(self):
        self.service.add_item(self.latte.id, 1)
        errors = self.service.validate(for_checkout=True)
        self.assertEqual([e['code'] for e in errors], ['MINIMUM_ORDER_NOT_MET'])

    def test_checkout_creates_order_and_empties_cart(self):
        self.service.add_item(self.latte.id, 3)
        self.service.set_order_type('DINE_IN', table_number='7')
        self.service.set_tip('1.00')

        order = self.service.checkout(customer_name='Alex')

        self.assertEqual(order.table_number, '7')
        self.assertEqual(order.tip, Decimal('1.00'))
        self.assertEqual(order.items.get().quantity, 3)
        self.assertEqual(self.service.load()['items'], [])

    def test_expired_cart_cannot_be_checked_out(self):
        cart = self.service.add_item(self.latte.id, 3)
        cart['expires_at'] = (timezone.now() - timedelta(minutes=1)).isoformat()
        cache.set(self.service.key, cart)

        with self.assertRaises(CartValidationError) as ctx:
            self.service.checkout()
        self.assertEqual(ctx.exception.errors[0]['code'], 'CART_EXPIRED')
        self.assertFalse(Order.objects.exists())
        self.assertEqual(self.service.load()['items'], [])

    def test_corrupted_cart_recovers_from_backup(self):
        self.service.add_item(self.latte.id, 1)
        self.service.add_item(self.latte.id, 1)
        cache.set(self.service.key, 'garbage')

        cart = self.service.load()
        self.assertEqual(cart['items'][0]['quantity'], 1)

    def test_import_skips_lines_no_longer_on_menu(self):
        self.service.add_item(self.latte.id, 2)
        exported = self.service.export_cart()
        self.latte.status = 'DISCONTINUED'
        self.latte.save()

        other = CartService(self.cafe, 'anon:device-2')
        cart, skipped = other.import_cart(exported)
        self.assertEqual(cart['items'], [])
        self.assertEqual(skipped[0]['code'], 'MENU_ITEM_UNAVAILABLE')

    def _exported(self, **changes):
        self.service.add_item(self.latte.id, 3)
        payload = json.loads(self.service.export_cart())
        payload.update(changes)
        return payload

    def test_import_rejects_negative_tip(self):
        payload = self._exported(tip='-12.00')
        other = CartService(self.cafe, 'anon:device-2')
        with self.assertRaises(CartValidationError) as ctx:
            other.import_cart(payload)
        self.assertEqual(ctx.exception.errors[0]['code'], 'INVALID_TIP')
        self.assertEqual(other.load()['items'], [])

    def test_import_rejects_long_notes(self):
        payload = self._exported(notes='x' * 501)
        with self.assertRaises(CartValidationError) as ctx:
            CartService(self.cafe, 'anon:device-2').import_cart(payload)
        self.assertEqual(ctx.exception.errors[0]['code'], 'NOTES_TOO_LONG')

    def test_import_keeps_manual_discount_only_when_allowed(self):
        payload = self._exported(discount={'type': 'FIXED', 'value': '2.00', 'code': ''})
        other = CartService(self.cafe, 'anon:device-2')

        cart, _ = other.import_cart(payload)
        self.assertIsNone(cart['discount'])

        cart, _ = other.import_cart(payload, allow_manual_discount=True)
        self.assertEqual(cart['discount']['value'], '2.00')

    def test_import_validates_discount_range(self):
        payload = self._exported(discount={'type': 'PERCENTAGE', 'value': '150', 'code': ''})
        with self.assertRaises(CartValidationError) as ctx:
            CartService(self.cafe, 'anon:device-2').import_cart(payload, allow_manual_discount=True)
        self.assertEqual(ctx.exception.errors[0]['code'], 'INVALID_DISCOUNT')

    def test_malformed_import_is_rejected(self):
        with self.assertRaises(CartValidationError):
            self.service.import_cart('{not json')


class CartApiTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.cafe = Cafe.objects.create(name='Api Cart Cafe', slug='api-cart-cafe')
        self.latte = build_menu(self.cafe)[0]
        self.client = APIClient(HTTP_X_CAFE_SLUG='api-cart-cafe', HTTP_X_CART_ID='kiosk-1')

    def test_anonymous_cart_checkout(self):
        response = self.client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['totals']['subtotal'], Decimal('4.00'))

        response = self.client.post(reverse('cart-checkout'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['details'][0]['code'], 'MINIMUM_ORDER_NOT_MET')

        self.client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 2}, format='json')
        response = self.client.post(reverse('cart-checkout'), {'customer_name': 'Kiosk'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['customer'])
        self.assertEqual(response.data['items'][0]['quantity'], 3)

    def test_cart_needs_an_owner(self):
        client = APIClient(HTTP_X_CAFE_SLUG='api-cart-cafe')
        response = client.get(reverse('cart-detail'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_validate_reports_problems(self):
        self.client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 1}, format='json')
        self.latte.status = 'UNAVAILABLE'
        self.latte.save()

        response = self.client.get(reverse('cart-validate'))
        self.assertFalse(response.data['valid'])
        self.assertEqual(response.data['errors'][0]['code'], 'MENU_ITEM_UNAVAILABLE')

    def test_anonymous_cart_cannot_take_manual_discount(self):
        self.client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 3}, format='json')
        response = self.client.post(reverse('cart-discount'), {'type': 'PERCENTAGE', 'value': '100'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post(reverse('cart-discount'), {'code': 'NOSUCHCODE'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['details'][0]['code'], 'INVALID_DISCOUNT')

    def test_staff_discount_follows_apply_discounts_permission(self):
        cashier = CustomUser.objects.create_user(email='cashier@cart.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=cashier, role=CASHIER)
        barista = CustomUser.objects.create_user(email='barista@cart.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=barista, role=BARISTA)
        client = APIClient(HTTP_X_CAFE_SLUG='api-cart-cafe')

        client.force_authenticate(user=barista)
        client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 3}, format='json')
        response = client.post(reverse('cart-discount'), {'type': 'FIXED', 'value': '2.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        client.force_authenticate(user=cashier)
        client.post(reverse('cart-add-item'), {'menu_item_id': self.latte.id, 'quantity': 3}, format='json')
        response = client.post(reverse('cart-discount'), {'type': 'FIXED', 'value': '2.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totals']['discount'], Decimal('2.00'))

        response = client.post(reverse('cart-checkout'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['discount']), Decimal('2.00'))
