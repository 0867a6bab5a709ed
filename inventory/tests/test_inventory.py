from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from authentication.exceptions import InsufficientStock
from authentication.models import CustomUser, Cafe
from authentication.roles import MANAGER, CLEANER
from employees.models import Employee
from inventory import services
from inventory.models import InventoryItem, InventoryAlert, RecipeIngredient, StockMovement
from menu.models import MenuCategory, MenuItem
from orders.models import Order, OrderItem


class StockServiceTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Stock Cafe', slug='stock-cafe')
        self.milk = InventoryItem.objects.create(
            cafe=self.cafe, sku='MILK', name='Milk', unit='l',
            current_stock=Decimal('10'), minimum_stock=Decimal('2'), reorder_level=Decimal('5'),
            unit_cost=Decimal('1.20'),
        )

    def test_adjust_stock_records_movement(self):
        services.adjust_stock(self.milk, Decimal('-3'), 'WASTE', note='Spilled')

        self.milk.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('7'))
        movement = StockMovement.objects.get(inventory_item=self.milk)
        self.assertEqual(movement.quantity, Decimal('-3'))
        self.assertEqual(movement.stock_after, Decimal('7'))

    def test_stock_cannot_go_negative(self):
        with self.assertRaises(InsufficientStock):
            services.adjust_stock(self.milk, Decimal('-11'), 'ADJUSTMENT')

        self.milk.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('10'))
        self.assertFalse(StockMovement.objects.exists())

    def test_restock_updates_cost_and_timestamp(self):
        services.restock(self.milk, Decimal('5'), unit_cost=Decimal('1.50'))

        self.milk.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('15'))
        self.assertEqual(self.milk.unit_cost, Decimal('1.50'))
        self.assertIsNotNone(self.milk.last_restocked_at)

    def test_low_stock_alert_is_raised_once_and_resolved_by_restock(self):
        services.adjust_stock(self.milk, Decimal('-8.5'), 'SALE')
        services.evaluate_alerts(self.milk)

        alerts = InventoryAlert.objects.filter(inventory_item=self.milk, is_resolved=False)
        self.assertEqual(alerts.count(), 1)
        self.assertEqual(alerts[0].alert_type, 'LOW_STOCK')
        self.assertEqual(alerts[0].severity, 'MEDIUM')

        services.restock(self.milk, Decimal('10'))
        self.assertFalse(InventoryAlert.objects.filter(inventory_item=self.milk, is_resolved=False).exists())

    def test_critical_low_stock_and_out_of_stock_severity(self):
        # below reorder_level * 0.2 = 1
        services.adjust_stock(self.milk, Decimal('-9.5'), 'SALE')
        alert = InventoryAlert.objects.get(inventory_item=self.milk, is_resolved=False)
        self.assertEqual(alert.severity, 'HIGH')

        services.adjust_stock(self.milk, Decimal('-0.5'), 'SALE')
        alert = InventoryAlert.objects.get(inventory_item=self.milk, is_resolved=False)
        self.assertEqual(alert.alert_type, 'OUT_OF_STOCK')
        self.assertEqual(alert.severity, 'CRITICAL')

    def test_expiring_soon_alert(self):
        self.milk.expiry_date = timezone.localdate() + timedelta(days=3)
        self.milk.save()

        raised = services.evaluate_alerts(self.milk)
        self.assertEqual([alert.alert_type for alert in raised], ['EXPIRING_SOON'])

    def test_alert_summary_counts(self):
        InventoryItem.objects.create(cafe=self.cafe, sku='BEANS', name='Beans', current_stock=Decimal('0'))
        services.evaluate_cafe_alerts(self.cafe)

        summary = services.alerts_summary(self.cafe)
        self.assertEqual(summary['total_items'], 2)
        self.assertEqual(summary['out_of_stock'], 1)
        self.assertEqual(summary['critical_alerts'], 1)
        self.assertEqual(summary['total_stock_value'], Decimal('12.00'))

    def test_check_alerts_command(self):
        InventoryItem.objects.create(cafe=self.cafe, sku='CUPS', name='Cups', current_stock=Decimal('0'))
        out = StringIO()
        call_command('check_inventory_alerts', '--cafe', 'stock-cafe', stdout=out)
        self.assertIn('1 new alert', out.getvalue())


class RecipeDeductionTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Recipe Cafe', slug='recipe-cafe')
        category = MenuCategory.objects.create(cafe=self.cafe, name='Coffee')
        self.latte = MenuItem.objects.create(cafe=self.cafe, category=category, name='Latte', price=Decimal('4.00'))
        self.milk = InventoryItem.objects.create(cafe=self.cafe, sku='MILK', name='Milk', current_stock=Decimal('1'))
        self.beans = InventoryItem.objects.create(cafe=self.cafe, sku='BEANS', name='Beans', current_stock=Decimal('0.05'))
        RecipeIngredient.objects.create(menu_item=self.latte, inventory_item=self.milk, quantity=Decimal('0.25'))
        RecipeIngredient.objects.create(menu_item=self.latte, inventory_item=self.beans, quantity=Decimal('0.018'))

    def _order(self, quantity):
        order = Order.objects.create(cafe=self.cafe)
        OrderItem.objects.create(
            order=order, menu_item=self.latte, menu_item_name='Latte', quantity=quantity,
            unit_price=Decimal('4.00'), total_price=Decimal('4.00') * quantity
        )
        return order

    def test_check_availability_reports_shortfalls(self):
        shortfalls = services.check_availability(self.cafe, [(self.latte, 6)])
        self.assertEqual({s['inventory_item'].sku for s in shortfalls}, {'MILK', 'BEANS'})
        self.assertEqual(services.check_availability(self.cafe, [(self.latte, 2)]), [])

    def test_deduction_is_all_or_nothing(self):
        # milk covers three lattes, beans only two
        order = self._order(3)
        with self.assertRaises(InsufficientStock):
            services.deduct_for_order(order)

        self.milk.refresh_from_db()
        self.beans.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('1'))
        self.assertEqual(self.beans.current_stock, Decimal('0.05'))

    def test_deduct_and_restore(self):
        order = self._order(2)
        services.deduct_for_order(order)
        self.milk.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('0.5'))

        services.restore_for_order(order)
        self.milk.refresh_from_db()
        self.beans.refresh_from_db()
        self.assertEqual(self.milk.current_stock, Decimal('1'))
        self.assertEqual(self.beans.current_stock, Decimal('0.05'))
        self.assertEqual(StockMovement.objects.filter(movement_type='RETURN').count(), 2)


class InventoryApiTests(APITestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Api Stock Cafe', slug='api-stock-cafe')
        self.manager = CustomUser.objects.create_user(email='manager@stock.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.manager, role=MANAGER)
        self.cleaner = CustomUser.objects.create_user(email='cleaner@stock.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.cleaner, role=CLEANER)

        self.item = InventoryItem.objects.create(
            cafe=self.cafe, sku='SUGAR', name='Sugar', current_stock=Decimal('4'), minimum_stock=Decimal('1')
        )
        self.client = APIClient()
        self.client.force_authenticate(user=self.manager)

    def test_create_item_raises_alerts_immediately(self):
        data = {'sku': 'OAT', 'name': 'Oat milk', 'current_stock': '0', 'minimum_stock': '2'}
        response = self.client.post(reverse('inventory-item-list-create'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(InventoryAlert.objects.filter(inventory_item__sku='OAT', alert_type='OUT_OF_STOCK').exists())

    def test_adjust_beyond_stock_returns_conflict(self):
        response = self.client.post(
            reverse('inventory-adjust', args=[self.item.id]),
            {'quantity': '-5', 'movement_type': 'ADJUSTMENT'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(response.data['error'])
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal('4'))

    def test_restock_endpoint(self):
        response = self.client.post(
            reverse('inventory-restock', args=[self.item.id]), {'quantity': '6'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.item.refresh_from_db()
        self.assertEqual(self.item.current_stock, Decimal('10'))

    def test_staff_without_inventory_permission_is_refused(self):
        self.client.force_authenticate(user=self.cleaner)
        response = self.client.get(reverse('inventory-item-list-create'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
