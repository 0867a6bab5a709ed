from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from decimal import Decimal

from authentication.models import CustomUser, Cafe
from authentication.roles import OWNER, MANAGER, BARISTA
from employees.models import Employee
from menu.models import MenuCategory, MenuItem, Customization, CustomizationOption


class MenuModelTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Model Cafe', slug='model-cafe')
        self.category = MenuCategory.objects.create(cafe=self.cafe, name='Coffee')
        self.item = MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Latte', price=Decimal('4.00'))

        self.size = Customization.objects.create(
            cafe=self.cafe, name='Size', customization_type='SIZE', is_required=True
        )
        self.small = CustomizationOption.objects.create(customization=self.size, name='Small')
        self.large = CustomizationOption.objects.create(
            customization=self.size, name='Large', price_modifier=Decimal('0.75')
        )
        self.extras = Customization.objects.create(
            cafe=self.cafe, name='Extras', customization_type='ADDON', max_selections=2
        )
        self.shot = CustomizationOption.objects.create(
            customization=self.extras, name='Extra shot', price_modifier=Decimal('0.50')
        )
        self.syrup = CustomizationOption.objects.create(
            customization=self.extras, name='Vanilla', price_modifier=Decimal('0.40'), is_available=False
        )
        self.item.customizations.set([self.size, self.extras])

    def test_valid_selection_prices_options(self):
        snapshot, delta, errors = self.item.resolve_customizations([
            {'customization_id': self.size.id, 'option_ids': [self.large.id]},
            {'customization_id': self.extras.id, 'option_ids': [self.shot.id]},
        ])
        self.assertEqual(errors, [])
        self.assertEqual(delta, Decimal('1.25'))
        self.assertEqual([entry['name'] for entry in snapshot], ['Size', 'Extras'])

    def test_missing_required_customization(self):
        _, _, errors = self.item.resolve_customizations([])
        self.assertEqual([code for code, _ in errors], ['REQUIRED_CUSTOMIZATION_MISSING'])

    def test_unavailable_option_and_too_many_selections(self):
        _, _, errors = self.item.resolve_customizations([
            {'customization_id': self.size.id, 'option_ids': [self.small.id, self.large.id]},
            {'customization_id': self.extras.id, 'option_ids': [self.syrup.id]},
        ])
        codes = [code for code, _ in errors]
        self.assertIn('INVALID_CUSTOMIZATION', codes)
        # the size group was rejected, so it also counts as missing
        self.assertIn('REQUIRED_CUSTOMIZATION_MISSING', codes)

    def test_repeated_customization_is_rejected(self):
        no_foam = CustomizationOption.objects.create(
            customization=self.extras, name='No foam', price_modifier=Decimal('-0.50')
        )
        selection = {'customization_id': self.extras.id, 'option_ids': [no_foam.id]}
        _, delta, errors = self.item.resolve_customizations(
            [{'customization_id': self.size.id, 'option_ids': [self.small.id]}] + [selection] * 4
        )

        self.assertEqual([code for code, _ in errors], ['INVALID_CUSTOMIZATION'] * 3)
        self.assertEqual(delta, Decimal('-0.50'))

    def test_repeated_option_is_rejected(self):
        _, delta, errors = self.item.resolve_customizations([
            {'customization_id': self.size.id, 'option_ids': [self.small.id]},
            {'customization_id': self.extras.id, 'option_ids': [self.shot.id, self.shot.id]},
        ])
        self.assertEqual([code for code, _ in errors], ['INVALID_CUSTOMIZATION'])
        self.assertEqual(delta, Decimal('0.00'))

    def test_orderable_follows_status_and_category(self):
        self.assertTrue(self.item.is_orderable)
        self.category.is_active = False
        self.category.save()
        self.item.refresh_from_db()
        self.assertFalse(self.item.is_orderable)


class MenuApiTests(APITestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user(email='owner@menu.com', password='SecurePass123!')
        self.cafe = Cafe.objects.create(name='Menu Cafe', slug='menu-cafe', owner=self.owner)
        Employee.objects.create(cafe=self.cafe, user=self.owner, role=OWNER)

        self.manager = CustomUser.objects.create_user(email='manager@menu.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.manager, role=MANAGER)
        self.barista = CustomUser.objects.create_user(email='barista@menu.com', password='SecurePass123!')
        Employee.objects.create(cafe=self.cafe, user=self.barista, role=BARISTA)

        self.category = MenuCategory.objects.create(cafe=self.cafe, name='Coffee')
        self.client = APIClient()

    def test_manager_creates_menu_item(self):
        self.client.force_authenticate(user=self.manager)
        data = {'category': self.category.id, 'name': 'Flat White', 'price': '3.80', 'preparation_time': 4}
        response = self.client.post(reverse('menu-item-list-create'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        item = MenuItem.objects.get(name='Flat White')
        self.assertEqual(item.cafe, self.cafe)
        self.assertEqual(item.price, Decimal('3.80'))

    def test_duplicate_item_name_in_cafe_is_rejected(self):
        MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Mocha', price=Decimal('4.20'))
        self.client.force_authenticate(user=self.manager)
        data = {'category': self.category.id, 'name': 'Mocha', 'price': '4.20'}
        response = self.client.post(reverse('menu-item-list-create'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_barista_can_read_but_not_write(self):
        self.client.force_authenticate(user=self.barista)
        response = self.client.get(reverse('menu-item-list-create'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        data = {'category': self.category.id, 'name': 'Cortado', 'price': '3.20'}
        response = self.client.post(reverse('menu-item-list-create'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_public_menu_lists_only_available_items(self):
        MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Espresso', price=Decimal('2.50'))
        MenuItem.objects.create(
            cafe=self.cafe, category=self.category, name='Pumpkin Latte', price=Decimal('5.00'), status='UNAVAILABLE'
        )
        response = self.client.get(reverse('public-menu'), {'cafe': 'menu-cafe'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [item['name'] for item in response.data['categories'][0]['items']]
        self.assertEqual(names, ['Espresso'])

    def test_public_menu_requires_cafe(self):
        response = self.client.get(reverse('public-menu'))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_bulk_status_update(self):
        first = MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Tea', price=Decimal('2.00'))
        second = MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Chai', price=Decimal('3.00'))
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(
            reverse('menu-bulk-update-status'),
            {'menu_ids': [first.id, second.id], 'status': 'UNAVAILABLE'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['updated_count'], 2)
        self.assertEqual(MenuItem.objects.filter(status='UNAVAILABLE').count(), 2)

    def test_search_finds_items_by_name(self):
        MenuItem.objects.create(cafe=self.cafe, category=self.category, name='Iced Latte', price=Decimal('4.50'))
        response = self.client.get(reverse('menu-search'), {'cafe': 'menu-cafe', 'q': 'latte'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['results_count'], 1)
