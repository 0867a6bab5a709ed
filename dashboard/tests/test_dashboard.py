from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal

from authentication.models import CustomUser, Cafe, Counter
from authentication.roles import MANAGER, BARISTA
from dashboard import analytics
from employees.models import Employee
from inventory.models import InventoryItem
from orders import services as order_services
from orders.models import Order
from orders.tests.test_orders import build_menu


class OverviewTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Numbers Cafe', slug='numbers-cafe')

    def test_today_against_yesterday(self):
        Order.objects.create(cafe=self.cafe, status='COMPLETED', total=Decimal('10.00'))
        Order.objects.create(cafe=self.cafe, status='PENDING', total=Decimal('3.00'))
        Order.objects.create(cafe=self.cafe, status='CANCELLED', total=Decimal('5.00'))
        earlier = Order.objects.create(cafe=self.cafe, status='COMPLETED', total=Decimal('6.50'))
        Order.objects.filter(pk=earlier.pk).update(created_at=timezone.now() - timedelta(days=1))

        data = analytics.overview(self.cafe)

        self.assertEqual(data['today']['revenue'], Decimal('13.00'))
        self.assertEqual(data['today']['orders_count'], 2)
        self.assertEqual(data['today']['avg_order_value'], Decimal('6.50'))
        self.assertEqual(data['yesterday']['revenue'], Decimal('6.50'))
        self.assertEqual(data['comparison']['revenue_change'], 100.0)
        self.assertEqual(data['orders'], {'pending': 1, 'preparing': 0, 'ready': 0})
        self.assertEqual(data['staff_on_shift'], [])

    def test_no_history_means_no_change(self):
        data = analytics.overview(self.cafe)
        self.assertEqual(data['today']['revenue'], Decimal('0.00'))
        self.assertEqual(data['comparison']['orders_change'], 0.0)


class SalesAnalyticsTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Sales Cafe', slug='sales-cafe')
        self.latte = build_menu(self.cafe)[0]

    def test_summary_daily_and_top_items(self):
        order_services.create_order(self.cafe, [{'menu_item_id': self.latte.id, 'quantity': 2}])
        cancelled = order_services.create_order(self.cafe, [{'menu_item_id': self.latte.id, 'quantity': 1}])
        order_services.cancel_order(cancelled)

        today = timezone.localdate()
        report = analytics.sales_analytics(self.cafe, today - timedelta(days=2), today)

        self.assertEqual(report['summary']['orders_count'], 1)
        self.assertEqual(report['summary']['cancelled_count'], 1)
        self.assertEqual(report['summary']['revenue'], Decimal('8.88'))
        self.assertEqual([day['date'] for day in report['daily']], [today - timedelta(days=2), today - timedelta(days=1), today])
        self.assertEqual(report['daily'][0]['revenue'], Decimal('0.00'))
        self.assertEqual(report['daily'][2]['orders_count'], 1)
        self.assertEqual(report['top_items']['by_quantity'][0]['total_quantity'], 2)
        self.assertEqual(len(report['hourly']), 24)
        self.assertEqual(len(report['peak_hours']), 1)


class KitchenTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Kitchen Cafe', slug='kitchen-cafe')
        self.counter = Counter.objects.create(cafe=self.cafe, number=1, name='Bar')

    def test_queues(self):
        now = timezone.now()
        Order.objects.create(
            cafe=self.cafe, counter=self.counter, status='PENDING', estimated_ready_time=now - timedelta(minutes=10)
        )
        Order.objects.create(cafe=self.cafe, status='PREPARING', estimated_ready_time=now + timedelta(minutes=10))
        Order.objects.create(cafe=self.cafe, counter=self.counter, status='READY')

        data = analytics.kitchen_dashboard(self.cafe)

        self.assertEqual(data['counters'][0]['count'], 1)
        self.assertEqual(len(data['unassigned']), 1)
        self.assertEqual(data['ready_for_pickup'], 1)
        self.assertEqual(len(data['overdue']), 1)
        self.assertTrue(data['counters'][0]['orders'][0]['is_overdue'])
        self.assertIsNone(data['average_preparation_minutes'])


class DashboardApiTests(APITestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Report Cafe', slug='report-cafe')
        self.manager_user = CustomUser.objects.create_user(email='manager@report.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.manager_user, role=MANAGER)
        self.barista_user = CustomUser.objects.create_user(email='barista@report.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.barista_user, role=BARISTA)
        self.client = APIClient()
        self.client.force_authenticate(user=self.manager_user)

        latte = build_menu(self.cafe)[0]
        order_services.create_order(self.cafe, [{'menu_item_id': latte.id, 'quantity': 1}])

    def test_overview(self):
        response = self.client.get(reverse('dashboard-overview'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['today']['orders_count'], 1)
        self.assertEqual(response.data['orders']['pending'], 1)

    def test_barista_cannot_see_analytics(self):
        self.client.force_authenticate(user=self.barista_user)
        response = self.client.get(reverse('dashboard-sales'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reversed_date_range_rejected(self):
        response = self.client.get(reverse('dashboard-sales'), {'start_date': '2026-03-10', 'end_date': '2026-03-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sales_defaults_to_last_week(self):
        response = self.client.get(reverse('dashboard-sales'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['daily']), 7)
        self.assertEqual(response.data['end_date'], timezone.localdate())

    def test_daybook_excel(self):
        today = timezone.localdate().isoformat()
        response = self.client.get(reverse('export-daybook'), {'start_date': today, 'end_date': today})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response['Content-Type'], 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        )
        self.assertIn(f'daybook_report-cafe_{today}_{today}.xlsx', response['Content-Disposition'])

    def test_daybook_pdf(self):
        response = self.client.get(reverse('export-daybook'), {'file_type': 'pdf'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_sales_report_pdf(self):
        response = self.client.get(reverse('export-sales-report'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')

    def test_inventory_export_skips_discontinued(self):
        InventoryItem.objects.create(cafe=self.cafe, sku='OLD', name='Old syrup', status='DISCONTINUED')
        response = self.client.get(reverse('export-inventory'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('inventory_report-cafe.xlsx', response['Content-Disposition'])
