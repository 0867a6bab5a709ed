from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal

from authentication.exceptions import TimeTrackingError
from authentication.models import CustomUser, Cafe
from authentication.roles import MANAGER, BARISTA, Permissions
from employees import services
from employees.models import Employee, TimeSheet


class EmployeeModelTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Staff Cafe', slug='staff-cafe')

    def test_codes_and_default_permissions(self):
        first = Employee.objects.create(
            cafe=self.cafe, user=CustomUser.objects.create_user(email='a@staff.com', password='SecurePass123!'),
            role=MANAGER
        )
        second = Employee.objects.create(
            cafe=self.cafe, user=CustomUser.objects.create_user(email='b@staff.com', password='SecurePass123!'),
            role=BARISTA
        )

        self.assertEqual(first.employee_code, 'EMP0001')
        self.assertEqual(second.employee_code, 'EMP0002')
        self.assertTrue(first.has_permission(Permissions.VIEW_ANALYTICS))
        self.assertFalse(second.has_permission(Permissions.VIEW_ANALYTICS))
        self.assertTrue(second.has_permission(Permissions.UPDATE_ORDER_STATUS))


class TimeTrackingTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Shift Cafe', slug='shift-cafe')
        user = CustomUser.objects.create_user(
            email='barista@shift.com', password='SecurePass123!', first_name='Jo', last_name='Bean'
        )
        self.employee = Employee.objects.create(
            cafe=self.cafe, user=user, role=BARISTA, hourly_rate=Decimal('10.00')
        )
        self.manager = CustomUser.objects.create_user(email='manager@shift.com', password='SecurePass123!')
        self.start = timezone.now() - timedelta(hours=12)

    def _full_shift(self):
        """9.5 hours worked: 10 hours with a 30 minute break"""
        services.clock_in(self.employee, at=self.start)
        services.start_break(self.employee, at=self.start + timedelta(hours=2))
        services.end_break(self.employee, at=self.start + timedelta(hours=2, minutes=30))
        return services.clock_out(self.employee, at=self.start + timedelta(hours=10))

    def test_cannot_clock_in_twice(self):
        services.clock_in(self.employee, at=self.start)
        with self.assertRaises(TimeTrackingError):
            services.clock_in(self.employee)

    def test_inactive_employee_cannot_clock_in(self):
        self.employee.status = 'ON_LEAVE'
        self.employee.save()
        with self.assertRaises(TimeTrackingError):
            services.clock_in(self.employee)

    def test_break_rules(self):
        with self.assertRaises(TimeTrackingError):
            services.start_break(self.employee)
        services.clock_in(self.employee, at=self.start)
        with self.assertRaises(TimeTrackingError):
            services.end_break(self.employee)
        services.start_break(self.employee, at=self.start + timedelta(hours=1))
        with self.assertRaises(TimeTrackingError):
            services.start_break(self.employee)

    def test_overtime_split(self):
        sheet = self._full_shift()

        self.assertEqual(sheet.break_minutes, 30)
        self.assertEqual(sheet.total_hours, Decimal('9.50'))
        self.assertEqual(sheet.regular_hours, Decimal('8'))
        self.assertEqual(sheet.overtime_hours, Decimal('1.50'))

    def test_clock_out_ends_running_break(self):
        services.clock_in(self.employee, at=self.start)
        services.start_break(self.employee, at=self.start + timedelta(hours=3))
        sheet = services.clock_out(self.employee, at=self.start + timedelta(hours=4))

        self.assertFalse(sheet.on_break)
        self.assertEqual(sheet.break_minutes, 60)
        self.assertEqual(sheet.total_hours, Decimal('3.00'))

    def test_shift_status(self):
        self.assertFalse(services.shift_status(self.employee)['clocked_in'])

        services.clock_in(self.employee, at=self.start)
        status_now = services.shift_status(self.employee, at=self.start + timedelta(hours=1, minutes=30))
        self.assertTrue(status_now['clocked_in'])
        self.assertEqual(status_now['hours_so_far'], Decimal('1.50'))
        self.assertIn(self.employee, services.staff_on_shift(self.cafe))

    def test_approval_rules(self):
        services.clock_in(self.employee, at=self.start)
        with self.assertRaises(TimeTrackingError):
            services.approve_timesheet(self.employee.open_timesheet, self.manager)

        sheet = services.clock_out(self.employee, at=self.start + timedelta(hours=1))
        services.approve_timesheet(sheet, self.manager)
        self.assertEqual(sheet.approved_by, self.manager)
        with self.assertRaises(TimeTrackingError):
            services.approve_timesheet(sheet, self.manager)

    def test_payroll_counts_approved_sheets(self):
        sheet = self._full_shift()
        start_date = sheet.work_date - timedelta(days=1)
        end_date = timezone.localdate() + timedelta(days=1)

        self.assertEqual(services.payroll_summary(self.cafe, start_date, end_date)['employees'], [])

        services.approve_timesheet(sheet, self.manager)
        payroll = services.payroll_summary(self.cafe, start_date, end_date)
        row = payroll['employees'][0]
        self.assertEqual(row['employee_code'], self.employee.employee_code)
        self.assertEqual(row['regular_pay'], Decimal('80.00'))
        # 1.5h at 10.00 x 1.5
        self.assertEqual(row['overtime_pay'], Decimal('22.50'))
        self.assertEqual(payroll['total_gross_pay'], Decimal('102.50'))

    def test_deactivation_closes_open_shift(self):
        services.clock_in(self.employee, at=self.start)
        services.deactivate_employee(self.employee, self.manager)

        self.assertEqual(self.employee.status, 'INACTIVE')
        self.assertIsNone(self.employee.open_timesheet)
        self.assertIn('Closed on deactivation', TimeSheet.objects.get().notes)


class EmployeeApiTests(APITestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Api Staff Cafe', slug='api-staff-cafe')
        self.manager_user = CustomUser.objects.create_user(email='manager@apistaff.com', password='SecurePass123!')
        self.manager = Employee.objects.create(cafe=self.cafe, user=self.manager_user, role=MANAGER)
        self.barista_user = CustomUser.objects.create_user(email='barista@apistaff.com', password='SecurePass123!')
        self.barista = Employee.objects.create(cafe=self.cafe, user=self.barista_user, role=BARISTA)
        self.client = APIClient()

    def test_manager_adds_staff_with_new_account(self):
        self.client.force_authenticate(user=self.manager_user)
        data = {
            'email': 'new.server@apistaff.com',
            'first_name': 'Nia',
            'password': 'SecurePass123!',
            'role': 'SERVER',
            'hourly_rate': '12.50',
        }
        response = self.client.post(reverse('employee-list-create'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['employee_code'], 'EMP0003')
        self.assertIn(Permissions.CREATE_ORDERS, response.data['permissions'])
        self.assertTrue(CustomUser.objects.filter(email='new.server@apistaff.com').exists())

    def test_clock_in_twice_returns_conflict(self):
        self.client.force_authenticate(user=self.barista_user)
        response = self.client.post(reverse('clock-in'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post(reverse('clock-in'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_staff_only_see_their_own_timesheets(self):
        services.clock_in(self.manager)
        services.clock_in(self.barista)

        self.client.force_authenticate(user=self.barista_user)
        response = self.client.get(reverse('timesheet-list'))
        self.assertEqual(response.data['count'], 1)

        self.client.force_authenticate(user=self.manager_user)
        response = self.client.get(reverse('timesheet-list'))
        self.assertEqual(response.data['count'], 2)

    def test_manager_cannot_approve_own_timesheet(self):
        start = timezone.now() - timedelta(hours=3)
        services.clock_in(self.manager, at=start)
        own = services.clock_out(self.manager, at=start + timedelta(hours=1))
        services.clock_in(self.barista, at=start)
        other = services.clock_out(self.barista, at=start + timedelta(hours=1))

        self.client.force_authenticate(user=self.manager_user)
        response = self.client.post(reverse('timesheet-approve', args=[own.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post(reverse('timesheet-approve', args=[other.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_approved'])

    def test_barista_cannot_approve_or_see_payroll(self):
        self.client.force_authenticate(user=self.barista_user)
        response = self.client.get(reverse('payroll-summary'), {'start_date': '2026-01-01', 'end_date': '2026-01-31'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_deactivates_membership(self):
        self.client.force_authenticate(user=self.manager_user)
        response = self.client.delete(reverse('employee-detail', args=[self.barista.id]))

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.barista.refresh_from_db()
        self.assertEqual(self.barista.status, 'INACTIVE')
