from django.test import RequestFactory
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from datetime import datetime, time, timezone as dt_timezone
from decimal import Decimal

from authentication.middleware import CafeMiddleware
from authentication.models import CustomUser, Cafe, Counter
from authentication.roles import OWNER, BARISTA
from employees.models import Employee
from loyalty.models import LoyaltyTier


def make_cafe(name, owner_email):
    owner = CustomUser.objects.create_user(
        email=owner_email, password='SecurePass123!', first_name='Owner', last_name=name
    )
    cafe = Cafe.objects.create(name=name, slug=name.lower().replace(' ', '-'), owner=owner)
    Employee.objects.create(cafe=cafe, user=owner, role=OWNER, permissions=['all'])
    Counter.objects.create(cafe=cafe, number=1, name='Main Counter')
    return cafe, owner


class CafeRegistrationTests(APITestCase):
    def test_register_cafe_creates_owner_membership_and_counter(self):
        data = {
            'cafe_name': 'Corner Beans',
            'location': 'Downtown',
            'owner_first_name': 'Ada',
            'owner_last_name': 'Lovelace',
            'owner_email': 'ada@cornerbeans.com',
            'owner_password': 'SecurePass123!',
        }
        response = self.client.post(reverse('register_cafe'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        cafe = Cafe.objects.get(slug='corner-beans')
        owner = CustomUser.objects.get(email='ada@cornerbeans.com')
        self.assertEqual(cafe.owner, owner)
        self.assertTrue(Employee.objects.filter(cafe=cafe, user=owner, role=OWNER).exists())
        self.assertEqual(cafe.counters.count(), 1)

    def test_new_cafe_gets_default_loyalty_tiers(self):
        cafe, _ = make_cafe('Tier Cafe', 'tier@example.com')
        names = list(LoyaltyTier.objects.filter(cafe=cafe).order_by('level').values_list('name', flat=True))
        self.assertEqual(names, ['Bronze', 'Silver', 'Gold', 'Platinum'])

    def test_duplicate_cafe_name_is_rejected(self):
        make_cafe('Corner Beans', 'first@example.com')
        data = {
            'cafe_name': 'corner beans',
            'owner_first_name': 'Bob',
            'owner_email': 'bob@example.com',
            'owner_password': 'SecurePass123!',
        }
        response = self.client.post(reverse('register_cafe'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(response.data['error'])
        self.assertIn('cafe_name', response.data['details'])

    def test_unknown_timezone_is_rejected(self):
        data = {
            'cafe_name': 'Nowhere Beans',
            'timezone': 'Mars/Olympus_Mons',
            'owner_first_name': 'Bob',
            'owner_email': 'bob@nowhere.com',
            'owner_password': 'SecurePass123!',
        }
        response = self.client.post(reverse('register_cafe'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timezone', response.data['details'])


class LoginTests(APITestCase):
    def setUp(self):
        self.cafe, self.owner = make_cafe('Login Cafe', 'owner@login.com')

    def test_login_returns_tokens_and_memberships(self):
        response = self.client.post(
            reverse('token_obtain_pair'),
            {'email': 'owner@login.com', 'password': 'SecurePass123!'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['memberships'][0]['cafe_slug'], 'login-cafe')
        self.assertEqual(response.data['memberships'][0]['role'], OWNER)

    def test_wrong_password_is_rejected(self):
        response = self.client.post(
            reverse('token_obtain_pair'),
            {'email': 'owner@login.com', 'password': 'nope'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_pin_is_required_when_set(self):
        self.owner.pin = '123456'
        self.owner.save()

        response = self.client.post(
            reverse('token_obtain_pair'),
            {'email': 'owner@login.com', 'password': 'SecurePass123!', 'pin': '000000'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            reverse('token_obtain_pair'),
            {'email': 'owner@login.com', 'password': 'SecurePass123!', 'pin': '123456'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class CafeSettingsTests(APITestCase):
    def setUp(self):
        self.cafe, self.owner = make_cafe('Settings Cafe', 'owner@settings.com')
        self.client = APIClient()
        self.client.force_authenticate(user=self.owner)

    def test_defaults_come_from_project_settings(self):
        self.assertEqual(self.cafe.get_setting('tax_rate'), Decimal('0.08'))
        self.assertEqual(self.cafe.get_setting('max_cart_items'), 50)

    def test_override_is_returned_as_decimal(self):
        response = self.client.patch(reverse('cafe_settings'), {'tax_rate': '0.1000'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.cafe.refresh_from_db()
        self.assertEqual(self.cafe.get_setting('tax_rate'), Decimal('0.1000'))
        self.assertIsInstance(self.cafe.get_setting('tax_rate'), Decimal)
        # untouched keys still fall back
        self.assertEqual(self.cafe.get_setting('service_fee_rate'), Decimal('0.03'))

    def test_opening_hours_use_cafe_timezone(self):
        self.cafe.timezone = 'America/New_York'
        self.cafe.open_time = time(9, 0)
        self.cafe.close_time = time(17, 0)
        self.cafe.save()

        # 20:00 UTC is 16:00 in New York during daylight saving time
        self.assertTrue(self.cafe.is_open(datetime(2024, 7, 1, 20, 0, tzinfo=dt_timezone.utc)))
        self.assertFalse(self.cafe.is_open(datetime(2024, 7, 1, 22, 0, tzinfo=dt_timezone.utc)))
        self.assertFalse(self.cafe.is_open(datetime(2024, 7, 1, 12, 0, tzinfo=dt_timezone.utc)))

    def test_overnight_hours_wrap_past_midnight(self):
        self.cafe.open_time = time(18, 0)
        self.cafe.close_time = time(2, 0)
        self.cafe.save()
        self.assertTrue(self.cafe.is_open(datetime(2024, 7, 1, 1, 0, tzinfo=dt_timezone.utc)))
        self.assertFalse(self.cafe.is_open(datetime(2024, 7, 1, 12, 0, tzinfo=dt_timezone.utc)))

    def test_barista_cannot_change_settings(self):
        barista = CustomUser.objects.create_user(email='b@settings.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=barista, role=BARISTA)
        self.client.force_authenticate(user=barista)

        response = self.client.patch(reverse('cafe_settings'), {'tax_rate': '0.5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class CafeContextTests(APITestCase):
    def setUp(self):
        self.cafe_a, self.owner_a = make_cafe('Alpha', 'a@example.com')
        self.cafe_b, self.owner_b = make_cafe('Beta', 'b@example.com')
        Counter.objects.create(cafe=self.cafe_b, number=2, name='Bar')
        self.client = APIClient()

    def test_middleware_resolves_slug_header(self):
        request = RequestFactory().get('/', HTTP_X_CAFE_SLUG='beta')
        self.assertEqual(CafeMiddleware(lambda r: None).resolve_cafe(request), self.cafe_b)

    def test_middleware_resolves_query_parameter_and_unknown_slug(self):
        middleware = CafeMiddleware(lambda r: None)
        self.assertEqual(middleware.resolve_cafe(RequestFactory().get('/?cafe=alpha')), self.cafe_a)
        self.assertIsNone(middleware.resolve_cafe(RequestFactory().get('/?cafe=missing')))

    def test_counters_are_scoped_to_the_members_cafe(self):
        self.client.force_authenticate(user=self.owner_a)
        response = self.client.get(reverse('counter_list_create'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        self.client.force_authenticate(user=self.owner_b)
        response = self.client.get(reverse('counter_list_create'))
        self.assertEqual(response.data['count'], 2)

    def test_non_member_is_refused_for_other_cafe(self):
        self.client.force_authenticate(user=self.owner_a)
        response = self.client.get(reverse('counter_list_create'), HTTP_X_CAFE_SLUG='beta')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_owner_creates_counter(self):
        self.client.force_authenticate(user=self.owner_a)
        response = self.client.post(reverse('counter_list_create'), {'number': 2, 'name': 'Patio'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Counter.objects.filter(cafe=self.cafe_a).count(), 2)

        response = self.client.post(reverse('counter_list_create'), {'number': 2, 'name': 'Again'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class HealthCheckTests(APITestCase):
    def test_health_check(self):
        response = self.client.get(reverse('health_check'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'healthy')

    def test_unauthenticated_request_is_wrapped(self):
        response = self.client.get(reverse('counter_list_create'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertTrue(response.data['error'])
        self.assertEqual(response.data['message'], 'Authentication required')
