from django.core.management import call_command
from django.db.models import Sum
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from authentication.exceptions import TableTapError, InsufficientPoints, RedemptionError
from authentication.models import CustomUser, Cafe
from loyalty import services
from loyalty.models import (
    LoyaltyAccount, LoyaltyTier, LoyaltyTransaction, LoyaltyReward, LoyaltyPromotion, LoyaltyChallenge,
    ChallengeProgress, RewardRedemption
)
from loyalty.serializers import LoyaltyChallengeSerializer
from orders import services as order_services
from orders.models import Order
from orders.tests.test_orders import build_menu


class EnrollmentTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Loyal Cafe', slug='loyal-cafe')
        self.user = CustomUser.objects.create_user(
            email='member@loyal.com', password='SecurePass123!', first_name='Mia', last_name='Roast'
        )

    def test_new_cafe_gets_default_tiers(self):
        self.assertEqual(
            list(LoyaltyTier.objects.filter(cafe=self.cafe).order_by('level').values_list('name', flat=True)),
            ['Bronze', 'Silver', 'Gold', 'Platinum']
        )

    def test_enroll_on_base_tier_with_welcome_bonus(self):
        account = services.enroll(self.user, self.cafe)

        self.assertEqual(account.tier.name, 'Bronze')
        self.assertEqual(account.current_points, 100)
        self.assertEqual(account.lifetime_points, 100)
        self.assertTrue(account.loyalty_number.startswith('LP'))
        self.assertEqual(len(account.referral_code), 8)

        with self.assertRaises(TableTapError):
            services.enroll(self.user, self.cafe)

    def test_referral_credits_the_referrer(self):
        referrer = services.enroll(self.user, self.cafe)
        friend = CustomUser.objects.create_user(email='friend@loyal.com', password='SecurePass123!')

        account = services.enroll(friend, self.cafe, referral_code=referrer.referral_code.lower())

        referrer.refresh_from_db()
        self.assertEqual(account.referred_by, referrer)
        self.assertEqual(referrer.referral_count, 1)
        self.assertEqual(referrer.current_points, 600)
        self.assertTrue(referrer.transactions.filter(transaction_type='REFERRAL', points=500).exists())

    def test_unknown_referral_code_is_ignored(self):
        account = services.enroll(self.user, self.cafe, referral_code='NOPE1234')
        self.assertIsNone(account.referred_by)
        self.assertEqual(account.current_points, 100)

    def test_manual_adjustment_cannot_go_negative(self):
        account = services.enroll(self.user, self.cafe)
        services.adjust_points(account, -40, 'Goodwill correction')
        account.refresh_from_db()
        self.assertEqual(account.current_points, 60)
        with self.assertRaises(InsufficientPoints):
            services.adjust_points(account, -61)


class EarningTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Earn Cafe', slug='earn-cafe')
        self.user = CustomUser.objects.create_user(email='earner@loyal.com', password='SecurePass123!')
        self.account = services.enroll(self.user, self.cafe)

    def _completed_order(self, total='25.60'):
        return Order.objects.create(cafe=self.cafe, customer=self.user, status='COMPLETED', total=Decimal(total))

    def test_points_are_awarded_once(self):
        order = self._completed_order()

        entry = services.award_points_for_order(order)
        self.assertEqual(entry.points, 25)
        self.assertIsNone(services.award_points_for_order(order))

        self.account.refresh_from_db()
        self.assertEqual(self.account.current_points, 125)
        self.assertEqual(self.account.total_orders, 1)
        self.assertEqual(self.account.total_spent, Decimal('25.60'))

    def test_guest_orders_earn_nothing(self):
        order = Order.objects.create(cafe=self.cafe, status='COMPLETED', total=Decimal('10.00'))
        self.assertIsNone(services.award_points_for_order(order))

    def test_tier_multiplier(self):
        self.account.tier = LoyaltyTier.objects.get(cafe=self.cafe, name='Gold')
        self.account.save()
        # floor(25) * 1.5
        self.assertEqual(services.calculate_points(self.account, Decimal('25.60')), 37)

    def test_bonus_promotion_limited_per_account(self):
        now = timezone.now()
        LoyaltyPromotion.objects.create(
            cafe=self.cafe, name='Double up', promotion_type='BONUS_POINTS', bonus_points=50,
            starts_at=now - timedelta(days=1), ends_at=now + timedelta(days=1), max_uses_per_account=1
        )

        first = services.award_points_for_order(self._completed_order())
        second = services.award_points_for_order(self._completed_order())

        self.assertEqual(first.points, 75)
        self.assertEqual(second.points, 25)

    def test_tier_upgrade_pays_bonus(self):
        self.account.lifetime_points = 1000
        self.account.total_spent = Decimal('500.00')
        self.account.save()

        tier = services.check_tier_upgrade(self.account)

        self.assertEqual(tier.name, 'Silver')
        self.assertIsNotNone(self.account.tier_expires_at)
        # 100 per level
        self.assertEqual(self.account.current_points, 300)
        self.assertIsNone(services.check_tier_upgrade(self.account))

    def test_tier_progress(self):
        progress = services.tier_progress(self.account)
        self.assertEqual(progress['next_tier'], 'Silver')
        self.assertEqual(progress['points_needed'], 900)
        self.assertEqual(progress['points_percent'], Decimal('10.00'))
        self.assertEqual(progress['overall_percent'], Decimal('0.00'))

    def test_order_count_challenge_pays_once(self):
        now = timezone.now()
        challenge = LoyaltyChallenge.objects.create(
            cafe=self.cafe, name='Three visits', challenge_type='ORDER_COUNT', target_value=Decimal('2'),
            completion_points=40, starts_at=now - timedelta(days=1), ends_at=now + timedelta(days=7),
            status='ACTIVE'
        )

        for _ in range(3):
            services.award_points_for_order(self._completed_order())

        progress = challenge.progress.get(account=self.account)
        self.assertIsNotNone(progress.completed_at)
        self.assertEqual(progress.current_value, Decimal('2'))
        self.assertEqual(self.account.transactions.filter(transaction_type='CHALLENGE').count(), 1)

    def test_completion_through_order_lifecycle(self):
        latte = build_menu(self.cafe)[0]
        order = order_services.create_order(self.cafe, [{'menu_item_id': latte.id, 'quantity': 2}], customer=self.user)
        for next_status in ['PREPARING', 'READY', 'COMPLETED']:
            order = order_services.update_status(order, next_status)

        order.refresh_from_db()
        self.assertTrue(order.loyalty_points_awarded)
        self.account.refresh_from_db()
        # total 8.88 earns 8 points
        self.assertEqual(self.account.current_points, 108)

    def test_earned_points_expire(self):
        entry = services.award_points_for_order(self._completed_order())
        entry.expires_at = timezone.now() - timedelta(minutes=1)
        entry.save()

        out = StringIO()
        call_command('expire_loyalty_points', stdout=out)

        self.account.refresh_from_db()
        self.assertEqual(self.account.current_points, 100)
        self.assertIn('Expired 1 points transaction(s)', out.getvalue())
        self.assertEqual(services.expire_points(), 0)

    def test_birthday_bonus_once_a_year(self):
        self.user.date_of_birth = timezone.localdate().replace(year=1992)
        self.user.save()

        self.assertEqual(services.process_birthday_rewards(), 1)
        self.assertEqual(services.process_birthday_rewards(), 0)
        self.assertTrue(LoyaltyTransaction.objects.filter(account=self.account, transaction_type='BIRTHDAY').exists())


class RedemptionTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Reward Cafe', slug='reward-cafe')
        self.user = CustomUser.objects.create_user(email='redeemer@loyal.com', password='SecurePass123!')
        self.account = services.enroll(self.user, self.cafe)
        self.reward = LoyaltyReward.objects.create(
            cafe=self.cafe, name='Five off', reward_type='DISCOUNT_FIXED', points_cost=100,
            discount_amount=Decimal('5.00')
        )

    def test_redeem_and_cancel_refunds_points(self):
        redemption = services.redeem_reward(self.account, self.reward)

        self.assertEqual(redemption.status, 'APPROVED')
        self.assertEqual(len(redemption.redemption_code), 8)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_points, 0)
        self.assertEqual(self.account.points_redeemed, 100)

        with self.assertRaises(InsufficientPoints):
            services.redeem_reward(self.account, self.reward)

        services.cancel_redemption(redemption, reason='Changed mind')
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_points, 100)
        self.assertEqual(self.account.points_redeemed, 0)

    def test_code_preview_does_not_consume(self):
        redemption = services.redeem_reward(self.account, self.reward)

        _, discount = services.apply_redemption_to_order(self.cafe, redemption.redemption_code.lower(), Decimal('3.00'))
        self.assertEqual(discount, Decimal('3.00'))
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, 'APPROVED')

    def test_pending_redemption_needs_approval(self):
        self.reward.requires_approval = True
        self.reward.save()
        redemption = services.redeem_reward(self.account, self.reward)

        with self.assertRaises(RedemptionError):
            services.apply_redemption_to_order(self.cafe, redemption.redemption_code, Decimal('10.00'))
        services.approve_redemption(redemption)
        _, discount = services.apply_redemption_to_order(self.cafe, redemption.redemption_code, Decimal('10.00'))
        self.assertEqual(discount, Decimal('5.00'))

    def test_tier_restricted_reward(self):
        self.reward.required_tier_levels = [3, 4]
        self.reward.save()
        self.assertEqual(services.available_rewards(self.account), [])
        with self.assertRaises(RedemptionError):
            services.redeem_reward(self.account, self.reward)

    def test_used_code_is_refunded_when_order_is_cancelled(self):
        latte = build_menu(self.cafe)[0]
        redemption = services.redeem_reward(self.account, self.reward)
        order = order_services.create_order(
            self.cafe, [{'menu_item_id': latte.id, 'quantity': 3}], customer=self.user,
            redemption_code=redemption.redemption_code
        )

        self.assertEqual(order.discount, Decimal('5.00'))
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, 'USED')
        self.assertEqual(redemption.order, order)

        order_services.cancel_order(order, reason='Wrong order')
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, 'CANCELLED')
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_points, 100)

    def test_expired_redemptions(self):
        redemption = services.redeem_reward(self.account, self.reward)
        RewardRedemption.objects.filter(pk=redemption.pk).update(expires_at=timezone.now() - timedelta(days=1))

        self.assertEqual(services.expire_redemptions(), 1)
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, 'EXPIRED')


class ChallengeProgressTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Challenge Cafe', slug='challenge-cafe')
        now = timezone.now()
        self.challenge = LoyaltyChallenge.objects.create(
            cafe=self.cafe, name='Big spender', challenge_type='SPEND_AMOUNT', target_value=Decimal('100'),
            milestones=[25, 50, 75], starts_at=now - timedelta(days=1), ends_at=now + timedelta(days=7),
            status='ACTIVE'
        )

    def test_milestones_step_toward_target(self):
        progress = ChallengeProgress(challenge=self.challenge)
        steps = []
        for value in ['0', '30', '50', '80']:
            progress.current_value = Decimal(value)
            steps.append((progress.percent_complete, progress.next_milestone))

        self.assertEqual(steps, [
            (Decimal('0.00'), Decimal('25')),
            (Decimal('30.00'), Decimal('50')),
            (Decimal('50.00'), Decimal('75')),
            (Decimal('80.00'), Decimal('100')),
        ])

    def test_percent_is_capped_once_complete(self):
        progress = ChallengeProgress(
            challenge=self.challenge, current_value=Decimal('140'), completed_at=timezone.now()
        )
        self.assertEqual(progress.percent_complete, Decimal('100.00'))
        self.assertIsNone(progress.next_milestone)

    def test_zero_target_does_not_divide(self):
        LoyaltyChallenge.objects.filter(pk=self.challenge.pk).update(target_value=Decimal('0'), milestones=[])
        self.challenge.refresh_from_db()
        progress = ChallengeProgress(challenge=self.challenge, current_value=Decimal('5'))

        self.assertEqual(progress.percent_complete, Decimal('0.00'))
        progress.completed_at = timezone.now()
        self.assertEqual(progress.percent_complete, Decimal('100.00'))

    def test_challenge_target_must_be_positive(self):
        now = timezone.now()
        serializer = LoyaltyChallengeSerializer(data={
            'name': 'Nothing to do', 'challenge_type': 'ORDER_COUNT', 'target_value': '0',
            'starts_at': now.isoformat(), 'ends_at': (now + timedelta(days=7)).isoformat(),
        })
        self.assertFalse(serializer.is_valid())
        self.assertIn('target_value', serializer.errors)


class LoyaltyReportingTests(TestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Stats Cafe', slug='stats-cafe')
        self.accounts = [
            services.enroll(
                CustomUser.objects.create_user(email=f'member{n}@stats.com', password='SecurePass123!'), self.cafe
            )
            for n in range(3)
        ]
        self.reward = LoyaltyReward.objects.create(
            cafe=self.cafe, name='Free cookie', reward_type='DISCOUNT_FIXED', points_cost=100,
            discount_amount=Decimal('2.50')
        )

    def test_loyalty_stats(self):
        first, second, third = self.accounts
        services.redeem_reward(first, self.reward)
        LoyaltyAccount.objects.filter(pk=second.pk).update(tier=LoyaltyTier.objects.get(cafe=self.cafe, level=3))
        LoyaltyAccount.objects.filter(pk=third.pk).update(last_activity_at=timezone.now() - timedelta(days=120))

        stats = services.loyalty_stats(self.cafe)

        self.assertEqual(stats['total_members'], 3)
        self.assertEqual(stats['active_members'], 2)
        self.assertEqual(stats['points_issued'], 300)
        self.assertEqual(stats['points_redeemed'], 100)
        self.assertEqual(stats['redemption_rate'], 33.33)
        self.assertEqual(stats['engagement_rate'], 66.67)
        self.assertEqual(
            [(entry['tier'], entry['members']) for entry in stats['members_per_tier']],
            [('Bronze', 2), ('Silver', 0), ('Gold', 1), ('Platinum', 0)]
        )
        self.assertEqual(stats['top_tier_members'], 1)

    def test_empty_cafe_has_zero_rates(self):
        cafe = Cafe.objects.create(name='Quiet Cafe', slug='quiet-cafe')
        stats = services.loyalty_stats(cafe)
        self.assertEqual(stats['total_members'], 0)
        self.assertEqual(stats['redemption_rate'], 0)
        self.assertEqual(stats['engagement_rate'], 0)

    def test_transactions_sum_to_balance(self):
        account = self.accounts[0]
        user = account.user

        first = services.award_points_for_order(
            Order.objects.create(cafe=self.cafe, customer=user, status='COMPLETED', total=Decimal('40.00'))
        )
        redemption = services.redeem_reward(account, self.reward)
        services.cancel_redemption(redemption, reason='Changed mind')
        services.redeem_reward(account, self.reward)
        services.award_points_for_order(
            Order.objects.create(cafe=self.cafe, customer=user, status='COMPLETED', total=Decimal('12.00'))
        )
        LoyaltyTransaction.objects.filter(pk=first.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        services.expire_points()
        services.adjust_points(account, -5, 'Correction')

        account.refresh_from_db()
        transactions = account.transactions.order_by('id')
        self.assertEqual(
            sorted(set(transactions.values_list('transaction_type', flat=True))),
            ['ADJUSTMENT', 'BONUS', 'EARNED', 'EXPIRED', 'REDEEMED']
        )
        self.assertEqual(transactions.aggregate(total=Sum('points'))['total'], account.current_points)
        self.assertEqual(transactions.last().balance_after, account.current_points)
        # 100 welcome + 40 + 12 earned, one 100 point reward kept, 40 expired, 5 corrected
        self.assertEqual(account.current_points, 7)


class LoyaltyApiTests(APITestCase):
    def setUp(self):
        self.cafe = Cafe.objects.create(name='Api Loyal Cafe', slug='api-loyal-cafe')
        self.user = CustomUser.objects.create_user(email='app@loyal.com', password='SecurePass123!')
        self.client = APIClient(HTTP_X_CAFE_SLUG='api-loyal-cafe')
        self.client.force_authenticate(user=self.user)

    def test_enroll_and_view_account(self):
        response = self.client.post(reverse('loyalty-enroll'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['tier_name'], 'Bronze')

        response = self.client.get(reverse('loyalty-my-account'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['account']['current_points'], 100)
        self.assertEqual(response.data['tier_progress']['next_tier'], 'Silver')

    def test_not_enrolled_returns_404(self):
        response = self.client.get(reverse('loyalty-my-account'))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_redeem_without_enough_points(self):
        services.enroll(self.user, self.cafe)
        reward = LoyaltyReward.objects.create(
            cafe=self.cafe, name='Free cake', reward_type='DISCOUNT_FIXED', points_cost=500,
            discount_amount=Decimal('4.00')
        )
        response = self.client.post(reverse('loyalty-redeem'), {'reward_id': reward.id}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'insufficient_points')
