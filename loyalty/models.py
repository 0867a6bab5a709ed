from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from decimal import Decimal

from authentication.models import Cafe, CustomUser, TimeStampedModel
from menu.models import MenuItem
from orders.models import Order


class LoyaltyTier(TimeStampedModel):
    """Threshold-based membership level; a member needs all three thresholds"""
    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='loyalty_tiers')
    name = models.CharField(max_length=50)
    description = models.TextField(blank=True)
    level = models.PositiveIntegerField()

    points_required = models.PositiveIntegerField(default=0)
    spend_required = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    orders_required = models.PositiveIntegerField(default=0)

    points_multiplier = models.DecimalField(
        max_digits=4, decimal_places=2, default=Decimal('1.00'), validators=[MinValueValidator(Decimal('1.00'))]
    )
    discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    birthday_bonus = models.PositiveIntegerField(default=0)
    validity_days = models.PositiveIntegerField(null=True, blank=True)  # None = never expires
    benefits = models.JSONField(default=list, blank=True)
    color = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'loyalty_tiers'
        unique_together = [['cafe', 'level'], ['cafe', 'name']]
        ordering = ['level']

    def __str__(self):
        return f"{self.name} (level {self.level})"


class LoyaltyAccount(TimeStampedModel):
    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='loyalty_accounts')
    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='loyalty_accounts')
    loyalty_number = models.CharField(max_length=20, unique=True)
    tier = models.ForeignKey(LoyaltyTier, on_delete=models.SET_NULL, null=True, blank=True, related_name='accounts')

    current_points = models.IntegerField(default=0)
    lifetime_points = models.PositiveIntegerField(default=0)
    points_redeemed = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_orders = models.PositiveIntegerField(default=0)

    tier_achieved_at = models.DateTimeField(null=True, blank=True)
    tier_expires_at = models.DateTimeField(null=True, blank=True)
    last_activity_at = models.DateTimeField(null=True, blank=True)

    referral_code = models.CharField(max_length=12, unique=True)
    referred_by = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True, related_name='referrals'
    )
    referral_count = models.PositiveIntegerField(default=0)
    last_birthday_reward_year = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'loyalty_accounts'
        unique_together = ['cafe', 'user']
        ordering = ['-lifetime_points']

    def __str__(self):
        return f"{self.loyalty_number} ({self.user.email})"


class LoyaltyTransaction(models.Model):
    TRANSACTION_TYPES = [
        ('EARNED', 'Earned'),
        ('REDEEMED', 'Redeemed'),
        ('BONUS', 'Bonus'),
        ('BIRTHDAY', 'Birthday'),
        ('REFERRAL', 'Referral'),
        ('CHALLENGE', 'Challenge'),
        ('ADJUSTMENT', 'Adjustment'),
        ('EXPIRED', 'Expired'),
    ]

    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPES)
    points = models.IntegerField()  # signed
    balance_after = models.IntegerField()
    order = models.ForeignKey(
        Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='loyalty_transactions'
    )
    description = models.CharField(max_length=255, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_expired = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'loyalty_transactions'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.transaction_type} {self.points:+d} -> {self.balance_after}"


class LoyaltyReward(TimeStampedModel):
    REWARD_TYPES = [
        ('DISCOUNT_FIXED', 'Fixed Discount'),
        ('DISCOUNT_PERCENTAGE', 'Percentage Discount'),
        ('FREE_ITEM', 'Free Item'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='loyalty_rewards')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    reward_type = models.CharField(max_length=30, choices=REWARD_TYPES)
    points_cost = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    free_menu_item = models.ForeignKey(
        MenuItem, on_delete=models.SET_NULL, null=True, blank=True, related_name='loyalty_rewards'
    )

    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    total_quantity = models.IntegerField(default=-1)  # -1 = unlimited
    redeemed_quantity = models.PositiveIntegerField(default=0)
    max_redemptions_per_user = models.PositiveIntegerField(null=True, blank=True)
    required_tier_levels = models.JSONField(default=list, blank=True)  # empty = every tier
    minimum_spend = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    requires_approval = models.BooleanField(default=False)
    priority = models.IntegerField(default=0)
    is_visible = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'loyalty_rewards'
        ordering = ['-priority', 'points_cost']

    def __str__(self):
        return f"{self.name} ({self.points_cost} pts)"

    @property
    def in_stock(self):
        return self.total_quantity < 0 or self.redeemed_quantity < self.total_quantity

    def is_in_window(self, at=None):
        at = at or timezone.now()
        if self.valid_from and at < self.valid_from:
            return False
        if self.valid_until and at > self.valid_until:
            return False
        return True

    @property
    def is_available(self):
        return self.is_active and self.in_stock and self.is_in_window()

    def allows_tier(self, tier):
        if not self.required_tier_levels:
            return True
        return tier is not None and tier.level in self.required_tier_levels


class RewardRedemption(TimeStampedModel):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('USED', 'Used'),
        ('EXPIRED', 'Expired'),
        ('CANCELLED', 'Cancelled'),
    ]

    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name='redemptions')
    reward = models.ForeignKey(LoyaltyReward, on_delete=models.PROTECT, related_name='redemptions')
    redemption_code = models.CharField(max_length=8, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    points_used = models.PositiveIntegerField()
    order = models.ForeignKey(
        Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='reward_redemptions'
    )
    discount_applied = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    expires_at = models.DateTimeField()
    approved_by = models.ForeignKey(
        CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_redemptions'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    used_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = 'reward_redemptions'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.redemption_code} - {self.reward.name} ({self.status})"

    @property
    def is_expired(self):
        return self.expires_at < timezone.now()


class LoyaltyPromotion(TimeStampedModel):
    PROMOTION_TYPES = [
        ('BONUS_POINTS', 'Bonus Points'),
        ('POINTS_MULTIPLIER', 'Points Multiplier'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='loyalty_promotions')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    promotion_type = models.CharField(max_length=20, choices=PROMOTION_TYPES)
    bonus_points = models.PositiveIntegerField(default=0)
    multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('1.00'))
    minimum_spend = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    eligible_tier_levels = models.JSONField(default=list, blank=True)  # empty = every tier
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    max_uses_per_account = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'loyalty_promotions'
        ordering = ['-starts_at']

    def __str__(self):
        return self.name

    def is_running(self, at=None):
        at = at or timezone.now()
        return self.is_active and self.starts_at <= at <= self.ends_at


class PromotionUse(models.Model):
    promotion = models.ForeignKey(LoyaltyPromotion, on_delete=models.CASCADE, related_name='uses')
    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name='promotion_uses')
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    points_awarded = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'loyalty_promotion_uses'


class LoyaltyChallenge(TimeStampedModel):
    CHALLENGE_TYPES = [
        ('ORDER_COUNT', 'Order Count'),
        ('SPEND_AMOUNT', 'Spend Amount'),
        ('POINTS_EARNED', 'Points Earned'),
    ]
    STATUS_CHOICES = [
        ('DRAFT', 'Draft'),
        ('ACTIVE', 'Active'),
        ('ENDED', 'Ended'),
    ]

    cafe = models.ForeignKey(Cafe, on_delete=models.CASCADE, related_name='loyalty_challenges')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    challenge_type = models.CharField(max_length=20, choices=CHALLENGE_TYPES)
    target_value = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    completion_points = models.PositiveIntegerField(default=0)
    milestones = models.JSONField(default=list, blank=True)  # ascending values below target
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='DRAFT')

    class Meta:
        db_table = 'loyalty_challenges'
        ordering = ['-starts_at']

    def __str__(self):
        return self.name

    def is_running(self, at=None):
        at = at or timezone.now()
        return self.status == 'ACTIVE' and self.starts_at <= at <= self.ends_at


class ChallengeProgress(TimeStampedModel):
    account = models.ForeignKey(LoyaltyAccount, on_delete=models.CASCADE, related_name='challenge_progress')
    challenge = models.ForeignKey(LoyaltyChallenge, on_delete=models.CASCADE, related_name='progress')
    current_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    completed_at = models.DateTimeField(null=True, blank=True)
    reward_awarded = models.BooleanField(default=False)

    class Meta:
        db_table = 'loyalty_challenge_progress'
        unique_together = ['account', 'challenge']

    def __str__(self):
        return f"{self.account.loyalty_number} {self.challenge.name}: {self.current_value}"

    @property
    def percent_complete(self):
        target = self.challenge.target_value
        if target <= 0:
            return Decimal('100.00') if self.completed_at else Decimal('0.00')
        percent = (self.current_value / target) * 100
        return min(percent, Decimal('100')).quantize(Decimal('0.01'))

    @property
    def next_milestone(self):
        for milestone in sorted(Decimal(str(m)) for m in self.challenge.milestones):
            if milestone > self.current_value:
                return milestone
        return None if self.completed_at else self.challenge.target_value
