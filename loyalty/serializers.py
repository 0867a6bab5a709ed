from rest_framework import serializers

from .models import (
    LoyaltyTier, LoyaltyAccount, LoyaltyTransaction, LoyaltyReward, RewardRedemption,
    LoyaltyPromotion, LoyaltyChallenge, ChallengeProgress
)


class LoyaltyTierSerializer(serializers.ModelSerializer):
    member_count = serializers.SerializerMethodField()

    class Meta:
        model = LoyaltyTier
        fields = [
            'id', 'name', 'description', 'level', 'points_required', 'spend_required', 'orders_required',
            'points_multiplier', 'discount_percentage', 'birthday_bonus', 'validity_days', 'benefits',
            'color', 'is_active', 'member_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_member_count(self, obj):
        return obj.accounts.filter(is_active=True).count()

    def validate_level(self, value):
        cafe = self.context.get('cafe')
        queryset = LoyaltyTier.objects.filter(cafe=cafe, level=value)
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if cafe and queryset.exists():
            raise serializers.ValidationError('A tier with this level already exists')
        return value

    def validate_benefits(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Benefits must be a list')
        return value


class LoyaltyAccountSerializer(serializers.ModelSerializer):
    tier_name = serializers.CharField(source='tier.name', read_only=True, default=None)
    tier_level = serializers.IntegerField(source='tier.level', read_only=True, default=None)
    user_email = serializers.EmailField(source='user.email', read_only=True)
    user_name = serializers.CharField(source='user.full_name', read_only=True)

    class Meta:
        model = LoyaltyAccount
        fields = [
            'id', 'loyalty_number', 'user', 'user_email', 'user_name', 'tier', 'tier_name', 'tier_level',
            'current_points', 'lifetime_points', 'points_redeemed', 'total_spent', 'total_orders',
            'tier_achieved_at', 'tier_expires_at', 'last_activity_at', 'referral_code', 'referral_count',
            'is_active', 'created_at'
        ]
        read_only_fields = fields


class EnrollSerializer(serializers.Serializer):
    referral_code = serializers.CharField(max_length=12, required=False, allow_blank=True)


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)

    class Meta:
        model = LoyaltyTransaction
        fields = [
            'id', 'transaction_type', 'points', 'balance_after', 'order', 'order_number',
            'description', 'expires_at', 'is_expired', 'created_at'
        ]
        read_only_fields = fields


class PointsAdjustmentSerializer(serializers.Serializer):
    points = serializers.IntegerField()
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate_points(self, value):
        if value == 0:
            raise serializers.ValidationError('Points must not be zero')
        return value


class LoyaltyRewardSerializer(serializers.ModelSerializer):
    is_available = serializers.ReadOnlyField()
    free_menu_item_name = serializers.CharField(source='free_menu_item.name', read_only=True, default=None)

    class Meta:
        model = LoyaltyReward
        fields = [
            'id', 'name', 'description', 'reward_type', 'points_cost', 'discount_amount',
            'discount_percentage', 'free_menu_item', 'free_menu_item_name', 'valid_from', 'valid_until',
            'total_quantity', 'redeemed_quantity', 'max_redemptions_per_user', 'required_tier_levels',
            'minimum_spend', 'requires_approval', 'priority', 'is_visible', 'is_active', 'is_available',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'redeemed_quantity', 'created_at', 'updated_at']

    def validate_free_menu_item(self, value):
        cafe = self.context.get('cafe')
        if value is not None and cafe is not None and value.cafe_id != cafe.id:
            raise serializers.ValidationError('Menu item belongs to a different cafe')
        return value

    def validate(self, attrs):
        reward_type = attrs.get('reward_type', getattr(self.instance, 'reward_type', None))
        value = lambda field: attrs.get(field, getattr(self.instance, field, None))

        if reward_type == 'DISCOUNT_FIXED' and not value('discount_amount'):
            raise serializers.ValidationError({'discount_amount': 'Required for a fixed discount reward'})
        if reward_type == 'DISCOUNT_PERCENTAGE' and not value('discount_percentage'):
            raise serializers.ValidationError({'discount_percentage': 'Required for a percentage reward'})
        if reward_type == 'FREE_ITEM' and not value('free_menu_item'):
            raise serializers.ValidationError({'free_menu_item': 'Required for a free item reward'})

        valid_from, valid_until = value('valid_from'), value('valid_until')
        if valid_from and valid_until and valid_until <= valid_from:
            raise serializers.ValidationError({'valid_until': 'Must be after valid_from'})
        return attrs


class RewardRedemptionSerializer(serializers.ModelSerializer):
    reward_name = serializers.CharField(source='reward.name', read_only=True)
    reward_type = serializers.CharField(source='reward.reward_type', read_only=True)
    loyalty_number = serializers.CharField(source='account.loyalty_number', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)
    is_expired = serializers.ReadOnlyField()

    class Meta:
        model = RewardRedemption
        fields = [
            'id', 'redemption_code', 'reward', 'reward_name', 'reward_type', 'loyalty_number', 'status',
            'points_used', 'order', 'order_number', 'discount_applied', 'expires_at', 'is_expired',
            'approved_at', 'used_at', 'cancelled_at', 'cancellation_reason', 'created_at'
        ]
        read_only_fields = fields


class RedeemSerializer(serializers.Serializer):
    reward_id = serializers.IntegerField()


class CancelRedemptionSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class LoyaltyPromotionSerializer(serializers.ModelSerializer):
    is_running = serializers.SerializerMethodField()

    class Meta:
        model = LoyaltyPromotion
        fields = [
            'id', 'name', 'description', 'promotion_type', 'bonus_points', 'multiplier', 'minimum_spend',
            'eligible_tier_levels', 'starts_at', 'ends_at', 'max_uses_per_account', 'is_active',
            'is_running', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_is_running(self, obj):
        return obj.is_running()

    def validate(self, attrs):
        starts_at = attrs.get('starts_at', getattr(self.instance, 'starts_at', None))
        ends_at = attrs.get('ends_at', getattr(self.instance, 'ends_at', None))
        if starts_at and ends_at and ends_at <= starts_at:
            raise serializers.ValidationError({'ends_at': 'Must be after starts_at'})

        promotion_type = attrs.get('promotion_type', getattr(self.instance, 'promotion_type', None))
        multiplier = attrs.get('multiplier', getattr(self.instance, 'multiplier', None))
        if promotion_type == 'POINTS_MULTIPLIER' and (multiplier is None or multiplier <= 1):
            raise serializers.ValidationError({'multiplier': 'A multiplier promotion needs a multiplier above 1'})
        return attrs


class LoyaltyChallengeSerializer(serializers.ModelSerializer):
    participants = serializers.SerializerMethodField()

    class Meta:
        model = LoyaltyChallenge
        fields = [
            'id', 'name', 'description', 'challenge_type', 'target_value', 'completion_points',
            'milestones', 'starts_at', 'ends_at', 'status', 'participants', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_participants(self, obj):
        return obj.progress.count()

    def validate_target_value(self, value):
        if value <= 0:
            raise serializers.ValidationError('Target must be greater than zero')
        return value

    def validate(self, attrs):
        starts_at = attrs.get('starts_at', getattr(self.instance, 'starts_at', None))
        ends_at = attrs.get('ends_at', getattr(self.instance, 'ends_at', None))
        if starts_at and ends_at and ends_at <= starts_at:
            raise serializers.ValidationError({'ends_at': 'Must be after starts_at'})

        target = attrs.get('target_value', getattr(self.instance, 'target_value', None))
        milestones = attrs.get('milestones', getattr(self.instance, 'milestones', []) or [])
        if milestones:
            if sorted(milestones) != list(milestones):
                raise serializers.ValidationError({'milestones': 'Milestones must be in ascending order'})
            if target is not None and any(float(m) >= float(target) for m in milestones):
                raise serializers.ValidationError({'milestones': 'Milestones must be below the target'})
        return attrs


class ChallengeProgressSerializer(serializers.ModelSerializer):
    challenge_name = serializers.CharField(source='challenge.name', read_only=True)
    challenge_type = serializers.CharField(source='challenge.challenge_type', read_only=True)
    target_value = serializers.DecimalField(
        source='challenge.target_value', max_digits=12, decimal_places=2, read_only=True
    )
    percent_complete = serializers.ReadOnlyField()
    next_milestone = serializers.ReadOnlyField()

    class Meta:
        model = ChallengeProgress
        fields = [
            'id', 'challenge', 'challenge_name', 'challenge_type', 'target_value', 'current_value',
            'percent_complete', 'next_milestone', 'completed_at', 'reward_awarded'
        ]
        read_only_fields = fields
