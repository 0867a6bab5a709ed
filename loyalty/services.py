from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal
import logging
import math
import secrets
import string
import time

from authentication.exceptions import TableTapError, InsufficientPoints, RedemptionError
from orders.models import Order
from orders.pricing import round2
from .models import (
    LoyaltyTier, LoyaltyAccount, LoyaltyTransaction, LoyaltyReward, RewardRedemption,
    LoyaltyPromotion, PromotionUse, LoyaltyChallenge, ChallengeProgress
)

logger = logging.getLogger(__name__)

# Transaction types that count toward lifetime points
EARNING_TYPES = ['EARNED', 'BONUS', 'BIRTHDAY', 'REFERRAL', 'CHALLENGE']

CODE_ALPHABET = string.ascii_uppercase + string.digits

DEFAULT_TIERS = [
    {
        'name': 'Bronze', 'level': 1, 'points_required': 0, 'spend_required': Decimal('0'),
        'orders_required': 0, 'points_multiplier': Decimal('1.00'), 'birthday_bonus': 100,
        'validity_days': None, 'color': '#cd7f32',
        'benefits': ['1 point per unit spent', 'Birthday reward', 'Member-only offers'],
    },
    {
        'name': 'Silver', 'level': 2, 'points_required': 1000, 'spend_required': Decimal('500'),
        'orders_required': 0, 'points_multiplier': Decimal('1.25'), 'birthday_bonus': 150,
        'validity_days': 365, 'color': '#c0c0c0',
        'benefits': ['1.25 points per unit spent', 'Free drink on birthday', 'Priority support'],
    },
    {
        'name': 'Gold', 'level': 3, 'points_required': 2500, 'spend_required': Decimal('1200'),
        'orders_required': 24, 'points_multiplier': Decimal('1.50'), 'birthday_bonus': 200,
        'validity_days': 365, 'color': '#ffd700',
        'benefits': ['1.5 points per unit spent', 'Free food and drink on birthday', 'Exclusive events'],
    },
    {
        'name': 'Platinum', 'level': 4, 'points_required': 5000, 'spend_required': Decimal('2500'),
        'orders_required': 50, 'points_multiplier': Decimal('2.00'), 'birthday_bonus': 300,
        'validity_days': 365, 'color': '#e5e4e2',
        'benefits': ['2 points per unit spent', 'Monthly free item', 'Personal concierge'],
    },
]


def seed_default_tiers(cafe):
    created = 0
    for tier in DEFAULT_TIERS:
        _, was_created = LoyaltyTier.objects.get_or_create(cafe=cafe, level=tier['level'], defaults=tier)
        created += int(was_created)
    return created


# =============== CODES ===============

def _random_code(length):
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_loyalty_number():
    while True:
        number = f"LP{str(int(time.time() * 1000))[-8:]}{secrets.randbelow(1000):03d}"
        if not LoyaltyAccount.objects.filter(loyalty_number=number).exists():
            return number


def generate_referral_code():
    while True:
        code = _random_code(8)
        if not LoyaltyAccount.objects.filter(referral_code=code).exists():
            return code


def generate_redemption_code():
    while True:
        code = _random_code(8)
        if not RewardRedemption.objects.filter(redemption_code=code).exists():
            return code


# =============== POINTS LEDGER ===============

def _post_points(account, points, transaction_type, description='', order=None, expires_at=None):
    """Apply a signed points change to a locked account and record it"""
    account.current_points += points
    if points > 0 and transaction_type in EARNING_TYPES:
        account.lifetime_points += points
    account.last_activity_at = timezone.now()
    account.save()
    return LoyaltyTransaction.objects.create(
        account=account,
        transaction_type=transaction_type,
        points=points,
        balance_after=account.current_points,
        order=order,
        description=description,
        expires_at=expires_at,
    )


def get_account(user, cafe):
    return LoyaltyAccount.objects.select_related('tier', 'cafe', 'user').filter(user=user, cafe=cafe).first()


def enroll(user, cafe, referral_code=None):
    """
    Open a loyalty account on the cafe's base tier with the welcome bonus.

    A valid referral code credits the referring member; an unknown one
    is ignored.
    """
    with transaction.atomic():
        if LoyaltyAccount.objects.filter(user=user, cafe=cafe).exists():
            raise TableTapError(f"{user.email} is already enrolled at {cafe.name}.")

        base_tier = cafe.loyalty_tiers.filter(is_active=True).order_by('level').first()
        account = LoyaltyAccount.objects.create(
            cafe=cafe,
            user=user,
            loyalty_number=generate_loyalty_number(),
            referral_code=generate_referral_code(),
            tier=base_tier,
            tier_achieved_at=timezone.now() if base_tier else None,
            last_activity_at=timezone.now(),
        )

        welcome_bonus = cafe.get_setting('welcome_bonus_points')
        if welcome_bonus:
            _post_points(account, welcome_bonus, 'BONUS', description=f"Welcome to {cafe.name}")

        if referral_code:
            referrer = LoyaltyAccount.objects.select_for_update().filter(
                cafe=cafe, referral_code=referral_code.strip().upper(), is_active=True
            ).exclude(user=user).first()
            if referrer is None:
                logger.warning(f"Unknown referral code {referral_code} used at {cafe.slug}")
            else:
                account.referred_by = referrer
                account.save(update_fields=['referred_by', 'updated_at'])
                referrer.referral_count += 1
                _post_points(
                    referrer, cafe.get_setting('referral_bonus_points'), 'REFERRAL',
                    description=f"Referral bonus for inviting {user.full_name}"
                )

    logger.info(f"Enrolled {user.email} at {cafe.slug} as {account.loyalty_number}")
    return account


def adjust_points(account, points, description=''):
    """Manual signed correction by staff; the balance cannot go negative"""
    with transaction.atomic():
        locked = LoyaltyAccount.objects.select_for_update().get(pk=account.pk)
        if locked.current_points + points < 0:
            raise InsufficientPoints(f"Account only has {locked.current_points} points.")
        entry = _post_points(locked, points, 'ADJUSTMENT', description=description or 'Manual adjustment')
    logger.info(f"Points adjusted for {locked.loyalty_number}: {points:+d}")
    return entry


# =============== EARNING ===============

def _points_breakdown(account, order_total, at=None):
    """Base points after the tier multiplier, plus (promotion, extra points) pairs"""
    at = at or timezone.now()
    order_total = Decimal(str(order_total))
    per_unit = Decimal(str(account.cafe.get_setting('points_per_currency_unit')))
    base = math.floor(order_total * per_unit)
    multiplier = account.tier.points_multiplier if account.tier else Decimal('1')
    base = math.floor(base * multiplier)

    extras = []
    tier_level = account.tier.level if account.tier else None
    promotions = LoyaltyPromotion.objects.filter(
        cafe_id=account.cafe_id, is_active=True, starts_at__lte=at, ends_at__gte=at
    )
    for promotion in promotions:
        if order_total < promotion.minimum_spend:
            continue
        if promotion.eligible_tier_levels and tier_level not in promotion.eligible_tier_levels:
            continue
        if promotion.max_uses_per_account is not None and \
                promotion.uses.filter(account=account).count() >= promotion.max_uses_per_account:
            continue
        if promotion.promotion_type == 'POINTS_MULTIPLIER':
            extra = math.floor(base * (promotion.multiplier - 1))
        else:
            extra = promotion.bonus_points
        if extra > 0:
            extras.append((promotion, extra))
    return base, extras


def calculate_points(account, order_total, at=None):
    base, extras = _points_breakdown(account, order_total, at)
    return base + sum(extra for _, extra in extras)


def award_points_for_order(order):
    """
    Credit points for a completed order, exactly once.

    Also counts the order toward spend and order totals, then checks the
    tier and challenge progress. Returns the EARNED transaction or None.
    """
    if order.customer_id is None or order.status != 'COMPLETED':
        return None

    with transaction.atomic():
        locked_order = Order.objects.select_for_update().get(pk=order.pk)
        if locked_order.loyalty_points_awarded:
            return None
        account = LoyaltyAccount.objects.select_for_update().select_related('tier', 'cafe').filter(
            cafe_id=order.cafe_id, user_id=order.customer_id, is_active=True
        ).first()
        if account is None:
            return None

        base, extras = _points_breakdown(account, locked_order.total)
        points = base + sum(extra for _, extra in extras)

        account.total_spent += locked_order.total
        account.total_orders += 1
        entry = None
        if points > 0:
            expiry_days = account.cafe.get_setting('points_expiry_days')
            entry = _post_points(
                account, points, 'EARNED', description=f"Order {locked_order.order_number}",
                order=locked_order, expires_at=timezone.now() + timedelta(days=expiry_days)
            )
        else:
            account.last_activity_at = timezone.now()
            account.save()
        for promotion, extra in extras:
            PromotionUse.objects.create(promotion=promotion, account=account, order=locked_order, points_awarded=extra)

        locked_order.loyalty_points_awarded = True
        locked_order.save(update_fields=['loyalty_points_awarded', 'updated_at'])
        order.loyalty_points_awarded = True

        check_tier_upgrade(account)
        update_challenge_progress(account, order=locked_order, points_earned=points)

    logger.info(f"Awarded {points} points to {account.loyalty_number} for order {locked_order.order_number}")
    return entry


# =============== TIERS ===============

def check_tier_upgrade(account):
    """Move the account to the highest tier it fully qualifies for; never down"""
    current_level = account.tier.level if account.tier else 0
    tiers = LoyaltyTier.objects.filter(cafe_id=account.cafe_id, is_active=True, level__gt=current_level)
    for tier in tiers.order_by('-level'):
        if (account.lifetime_points >= tier.points_required
                and account.total_spent >= tier.spend_required
                and account.total_orders >= tier.orders_required):
            now = timezone.now()
            account.tier = tier
            account.tier_achieved_at = now
            account.tier_expires_at = now + timedelta(days=tier.validity_days) if tier.validity_days else None
            bonus = account.cafe.get_setting('tier_upgrade_bonus_per_level') * tier.level
            _post_points(account, bonus, 'BONUS', description=f"Upgrade bonus for reaching {tier.name}")
            logger.info(f"Tier upgrade: {account.loyalty_number} reached {tier.name}")
            return tier
    return None


def _percent(have, need):
    if need <= 0:
        return Decimal('100.00')
    return min(Decimal(str(have)) / Decimal(str(need)) * 100, Decimal('100')).quantize(Decimal('0.01'))


def tier_progress(account):
    current_level = account.tier.level if account.tier else 0
    next_tier = LoyaltyTier.objects.filter(
        cafe_id=account.cafe_id, is_active=True, level__gt=current_level
    ).order_by('level').first()

    progress = {
        'current_tier': account.tier.name if account.tier else None,
        'current_level': current_level,
        'next_tier': None,
        'points_percent': Decimal('100.00'),
        'spend_percent': Decimal('100.00'),
        'orders_percent': Decimal('100.00'),
        'overall_percent': Decimal('100.00'),
        'points_needed': 0,
        'spend_needed': Decimal('0.00'),
        'orders_needed': 0,
    }
    if next_tier is None:
        return progress

    progress.update({
        'next_tier': next_tier.name,
        'next_level': next_tier.level,
        'points_percent': _percent(account.lifetime_points, next_tier.points_required),
        'spend_percent': _percent(account.total_spent, next_tier.spend_required),
        'orders_percent': _percent(account.total_orders, next_tier.orders_required),
        'points_needed': max(next_tier.points_required - account.lifetime_points, 0),
        'spend_needed': max(next_tier.spend_required - account.total_spent, Decimal('0.00')),
        'orders_needed': max(next_tier.orders_required - account.total_orders, 0),
    })
    progress['overall_percent'] = min(
        progress['points_percent'], progress['spend_percent'], progress['orders_percent']
    )
    return progress


# =============== REWARDS ===============

def _redemptions_by(account, reward):
    return RewardRedemption.objects.filter(account=account, reward=reward).exclude(status='CANCELLED').count()


def available_rewards(account, at=None):
    rewards = LoyaltyReward.objects.filter(
        cafe_id=account.cafe_id, is_active=True, is_visible=True, points_cost__lte=account.current_points
    )
    eligible = []
    for reward in rewards:
        if not (reward.is_in_window(at) and reward.in_stock and reward.allows_tier(account.tier)):
            continue
        if reward.max_redemptions_per_user is not None and \
                _redemptions_by(account, reward) >= reward.max_redemptions_per_user:
            continue
        eligible.append(reward)
    return sorted(eligible, key=lambda reward: (-reward.priority, reward.points_cost))


def redeem_reward(account, reward):
    with transaction.atomic():
        account = LoyaltyAccount.objects.select_for_update().select_related('tier', 'cafe').get(pk=account.pk)
        reward = LoyaltyReward.objects.select_for_update().get(pk=reward.pk)

        if reward.cafe_id != account.cafe_id or not reward.is_available:
            raise RedemptionError("Reward is not available for redemption.")
        if not reward.allows_tier(account.tier):
            raise RedemptionError("Your tier is not eligible for this reward.")
        if reward.max_redemptions_per_user is not None and \
                _redemptions_by(account, reward) >= reward.max_redemptions_per_user:
            raise RedemptionError("You have reached the redemption limit for this reward.")
        if account.current_points < reward.points_cost:
            logger.warning(f"Redemption rejected for {account.loyalty_number}: {account.current_points} points")
            raise InsufficientPoints(
                f"This reward costs {reward.points_cost} points; you have {account.current_points}."
            )

        account.points_redeemed += reward.points_cost
        _post_points(account, -reward.points_cost, 'REDEEMED', description=f"Redeemed {reward.name}")
        reward.redeemed_quantity += 1
        reward.save(update_fields=['redeemed_quantity', 'updated_at'])

        now = timezone.now()
        status = 'PENDING' if reward.requires_approval else 'APPROVED'
        redemption = RewardRedemption.objects.create(
            account=account,
            reward=reward,
            redemption_code=generate_redemption_code(),
            status=status,
            points_used=reward.points_cost,
            approved_at=now if status == 'APPROVED' else None,
            expires_at=now + timedelta(days=account.cafe.get_setting('redemption_expiry_days')),
        )

    logger.info(f"{account.loyalty_number} redeemed {reward.name} as {redemption.redemption_code} ({status})")
    return redemption


def approve_redemption(redemption, user=None):
    if redemption.status != 'PENDING':
        raise RedemptionError(f"Only pending redemptions can be approved; this one is {redemption.status.lower()}.")
    redemption.status = 'APPROVED'
    redemption.approved_by = user
    redemption.approved_at = timezone.now()
    redemption.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])
    logger.info(f"Redemption {redemption.redemption_code} approved")
    return redemption


def reward_discount(reward, order_subtotal):
    subtotal = Decimal(str(order_subtotal))
    if reward.reward_type == 'DISCOUNT_FIXED':
        discount = reward.discount_amount or Decimal('0')
    elif reward.reward_type == 'DISCOUNT_PERCENTAGE':
        discount = subtotal * (reward.discount_percentage or Decimal('0')) / 100
    else:
        discount = reward.free_menu_item.price if reward.free_menu_item else Decimal('0')
    return min(round2(discount), round2(subtotal))


def apply_redemption_to_order(cafe, code, order_subtotal, order=None):
    """
    Resolve a redemption code to a discount amount.

    Without ``order`` this is a dry run (cart preview). With it the
    redemption is marked USED and linked to the order.
    Returns ``(redemption, discount)``.
    """
    redemption = RewardRedemption.objects.select_related('reward', 'reward__free_menu_item', 'account').filter(
        redemption_code=(code or '').strip().upper(), reward__cafe=cafe
    ).first()
    if redemption is None:
        raise RedemptionError("Invalid redemption code.")
    if redemption.status == 'PENDING':
        raise RedemptionError("This redemption is awaiting approval.")
    if redemption.status != 'APPROVED':
        raise RedemptionError(f"This redemption is {redemption.status.lower()}.")
    if redemption.is_expired:
        raise RedemptionError("This redemption code has expired.")

    reward = redemption.reward
    if Decimal(str(order_subtotal)) < reward.minimum_spend:
        raise RedemptionError(f"A minimum spend of {reward.minimum_spend} is required for this reward.")
    discount = reward_discount(reward, order_subtotal)

    if order is not None:
        if order.customer_id and order.customer_id != redemption.account.user_id:
            raise RedemptionError("This redemption code belongs to another member.")
        redemption.status = 'USED'
        redemption.used_at = timezone.now()
        redemption.order = order
        redemption.discount_applied = discount
        redemption.save(update_fields=['status', 'used_at', 'order', 'discount_applied', 'updated_at'])
        logger.info(f"Redemption {redemption.redemption_code} used on order {order.order_number}: -{discount}")
    return redemption, discount


def cancel_redemption(redemption, reason='', allow_used=False):
    """Cancel a redemption and give the points back"""
    allowed = ['PENDING', 'APPROVED'] + (['USED'] if allow_used else [])
    with transaction.atomic():
        locked = RewardRedemption.objects.select_for_update().select_related('reward').get(pk=redemption.pk)
        if locked.status not in allowed:
            raise RedemptionError(f"Cannot cancel a {locked.status.lower()} redemption.")

        account = LoyaltyAccount.objects.select_for_update().get(pk=locked.account_id)
        account.points_redeemed = max(account.points_redeemed - locked.points_used, 0)
        _post_points(
            account, locked.points_used, 'ADJUSTMENT',
            description=f"Refund for cancelled redemption {locked.redemption_code}"
        )

        reward = locked.reward
        reward.redeemed_quantity = max(reward.redeemed_quantity - 1, 0)
        reward.save(update_fields=['redeemed_quantity', 'updated_at'])

        locked.status = 'CANCELLED'
        locked.cancelled_at = timezone.now()
        locked.cancellation_reason = reason or ''
        locked.save(update_fields=['status', 'cancelled_at', 'cancellation_reason', 'updated_at'])

    logger.info(f"Redemption {locked.redemption_code} cancelled, {locked.points_used} points refunded")
    return locked


def cancel_order_redemptions(order, reason=''):
    cancelled = []
    for redemption in RewardRedemption.objects.filter(order=order, status='USED'):
        cancelled.append(cancel_redemption(redemption, reason=reason or 'Order cancelled', allow_used=True))
    return cancelled


def expire_redemptions(now=None):
    """Mark unused redemptions past their expiry as EXPIRED; points are not returned"""
    now = now or timezone.now()
    return RewardRedemption.objects.filter(
        status__in=['PENDING', 'APPROVED'], expires_at__lt=now
    ).update(status='EXPIRED', updated_at=now)


# =============== CHALLENGES ===============

def update_challenge_progress(account, order=None, points_earned=0, at=None):
    """Advance every running challenge of the cafe; completion points are paid once"""
    at = at or timezone.now()
    challenges = LoyaltyChallenge.objects.filter(
        cafe_id=account.cafe_id, status='ACTIVE', starts_at__lte=at, ends_at__gte=at
    )
    updated = []
    for challenge in challenges:
        if challenge.challenge_type == 'ORDER_COUNT':
            increment = Decimal('1') if order is not None else Decimal('0')
        elif challenge.challenge_type == 'SPEND_AMOUNT':
            increment = order.total if order is not None else Decimal('0')
        else:
            increment = Decimal(points_earned)
        if increment <= 0:
            continue

        progress, _ = ChallengeProgress.objects.get_or_create(account=account, challenge=challenge)
        if progress.completed_at:
            continue
        progress.current_value += increment
        if progress.current_value >= challenge.target_value:
            progress.completed_at = at
            if not progress.reward_awarded:
                if challenge.completion_points:
                    _post_points(
                        account, challenge.completion_points, 'CHALLENGE',
                        description=f"Completed challenge {challenge.name}"
                    )
                progress.reward_awarded = True
            logger.info(f"{account.loyalty_number} completed challenge {challenge.name}")
        progress.save()
        updated.append(progress)
    return updated


# =============== SCHEDULED JOBS ===============

def process_birthday_rewards(date=None):
    """Birthday bonus for members born on ``date``, at most once per year"""
    date = date or timezone.localdate()
    accounts = LoyaltyAccount.objects.filter(
        is_active=True,
        user__date_of_birth__month=date.month,
        user__date_of_birth__day=date.day,
    ).exclude(last_birthday_reward_year=date.year)

    rewarded = 0
    for account_id in accounts.values_list('pk', flat=True):
        with transaction.atomic():
            account = LoyaltyAccount.objects.select_for_update().select_related('tier', 'cafe').get(pk=account_id)
            if account.last_birthday_reward_year == date.year:
                continue
            bonus = account.tier.birthday_bonus if account.tier and account.tier.birthday_bonus \
                else account.cafe.get_setting('default_birthday_bonus')
            account.last_birthday_reward_year = date.year
            _post_points(account, bonus, 'BIRTHDAY', description=f"Happy birthday from {account.cafe.name}")
        rewarded += 1
    if rewarded:
        logger.info(f"Birthday rewards granted to {rewarded} member(s)")
    return rewarded


def expire_points(now=None):
    """
    Expire EARNED points past their expiry date.

    Each expired transaction posts an EXPIRED debit capped at the
    member's current balance. Returns how many transactions expired.
    """
    now = now or timezone.now()
    due = LoyaltyTransaction.objects.filter(
        transaction_type='EARNED', is_expired=False, expires_at__lte=now
    ).order_by('id')

    expired = 0
    for entry in due:
        with transaction.atomic():
            account = LoyaltyAccount.objects.select_for_update().get(pk=entry.account_id)
            amount = min(entry.points, max(account.current_points, 0))
            entry.is_expired = True
            entry.save(update_fields=['is_expired'])
            if amount > 0:
                _post_points(
                    account, -amount, 'EXPIRED',
                    description=f"Points earned {entry.created_at:%Y-%m-%d} expired"
                )
        expired += 1
    if expired:
        logger.info(f"Expired points on {expired} transaction(s)")
    return expired


# =============== REPORTING ===============

def loyalty_stats(cafe):
    accounts = LoyaltyAccount.objects.filter(cafe=cafe)
    members = accounts.count()
    active_since = timezone.now() - timedelta(days=cafe.get_setting('active_member_days'))
    active_members = accounts.filter(last_activity_at__gte=active_since).count()

    issued = LoyaltyTransaction.objects.filter(
        account__cafe=cafe, transaction_type__in=EARNING_TYPES
    ).aggregate(total=Sum('points'))['total'] or 0
    redeemed = accounts.aggregate(total=Sum('points_redeemed'))['total'] or 0

    tiers = LoyaltyTier.objects.filter(cafe=cafe).annotate(members=Count('accounts')).order_by('level')
    return {
        'total_members': members,
        'active_members': active_members,
        'points_issued': issued,
        'points_redeemed': redeemed,
        'redemption_rate': round(redeemed / issued * 100, 2) if issued else 0,
        'engagement_rate': round(active_members / members * 100, 2) if members else 0,
        'members_per_tier': [
            {'tier': tier.name, 'level': tier.level, 'members': tier.members} for tier in tiers
        ],
        'top_tier_members': accounts.filter(tier__level__gte=3).count(),
    }
