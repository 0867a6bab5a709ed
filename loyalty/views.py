from rest_framework import generics, status, filters, permissions
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes
from decimal import Decimal, InvalidOperation
import logging

from authentication.permissions import CafeContextMixin, HasCafeAccess, HasCafePermission, require_permission, \
    get_request_cafe
from authentication.roles import Permissions
from .models import (
    LoyaltyTier, LoyaltyAccount, LoyaltyTransaction, LoyaltyReward, RewardRedemption, LoyaltyPromotion,
    LoyaltyChallenge
)
from .serializers import (
    LoyaltyTierSerializer, LoyaltyAccountSerializer, EnrollSerializer, LoyaltyTransactionSerializer,
    PointsAdjustmentSerializer, LoyaltyRewardSerializer, RewardRedemptionSerializer, RedeemSerializer,
    CancelRedemptionSerializer, LoyaltyPromotionSerializer, LoyaltyChallengeSerializer,
    ChallengeProgressSerializer
)
from . import services

logger = logging.getLogger(__name__)


class LoyaltyPermissionMixin:
    """Any staff member may read the programme, changing it needs manage_loyalty"""

    def get_permissions(self):
        if self.request.method in ['POST', 'PUT', 'PATCH', 'DELETE']:
            return [HasCafePermission(Permissions.MANAGE_LOYALTY)]
        return [HasCafeAccess()]


def _my_account(request):
    cafe = get_request_cafe(request)
    account = services.get_account(request.user, cafe)
    if account is None:
        raise NotFound(f"You are not enrolled in the {cafe.name} loyalty programme.")
    return account


# =============== PROGRAMME SETUP (staff) ===============

class LoyaltyTierListCreateView(LoyaltyPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    """
    get: Tiers of the cafe's programme, lowest level first
    post: Create a tier
    """
    queryset = LoyaltyTier.objects.all()
    serializer_class = LoyaltyTierSerializer
    pagination_class = None

    def get_queryset(self):
        return super().get_queryset().order_by('level')


class LoyaltyTierDetailView(LoyaltyPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = LoyaltyTier.objects.all()
    serializer_class = LoyaltyTierSerializer

    def perform_destroy(self, instance):
        # Members keep their history; the tier is only switched off
        if instance.accounts.exists():
            instance.is_active = False
            instance.save(update_fields=['is_active', 'updated_at'])
        else:
            instance.delete()


class LoyaltyRewardListCreateView(LoyaltyPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    queryset = LoyaltyReward.objects.select_related('free_menu_item')
    serializer_class = LoyaltyRewardSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['reward_type', 'is_active', 'is_visible', 'requires_approval']
    search_fields = ['name', 'description']


class LoyaltyRewardDetailView(LoyaltyPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = LoyaltyReward.objects.select_related('free_menu_item')
    serializer_class = LoyaltyRewardSerializer

    def perform_destroy(self, instance):
        if instance.redemptions.exists():
            instance.is_active = False
            instance.save(update_fields=['is_active', 'updated_at'])
        else:
            instance.delete()


class LoyaltyPromotionListCreateView(LoyaltyPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    queryset = LoyaltyPromotion.objects.all()
    serializer_class = LoyaltyPromotionSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['promotion_type', 'is_active']


class LoyaltyPromotionDetailView(LoyaltyPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = LoyaltyPromotion.objects.all()
    serializer_class = LoyaltyPromotionSerializer


class LoyaltyChallengeListCreateView(LoyaltyPermissionMixin, CafeContextMixin, generics.ListCreateAPIView):
    queryset = LoyaltyChallenge.objects.all()
    serializer_class = LoyaltyChallengeSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['challenge_type', 'status']


class LoyaltyChallengeDetailView(LoyaltyPermissionMixin, CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = LoyaltyChallenge.objects.all()
    serializer_class = LoyaltyChallengeSerializer


# =============== MEMBERS (staff) ===============

class LoyaltyAccountListView(CafeContextMixin, generics.ListAPIView):
    queryset = LoyaltyAccount.objects.select_related('user', 'tier')
    serializer_class = LoyaltyAccountSerializer
    permission_classes = [HasCafeAccess]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['tier', 'is_active']
    search_fields = ['loyalty_number', 'user__email', 'user__first_name', 'user__last_name', 'user__phone']
    ordering_fields = ['lifetime_points', 'current_points', 'total_spent', 'created_at']
    ordering = ['-created_at']


class LoyaltyAccountDetailView(CafeContextMixin, generics.RetrieveAPIView):
    queryset = LoyaltyAccount.objects.select_related('user', 'tier')
    serializer_class = LoyaltyAccountSerializer
    permission_classes = [HasCafeAccess]

    def retrieve(self, request, *args, **kwargs):
        account = self.get_object()
        return Response({
            'account': self.get_serializer(account).data,
            'tier_progress': services.tier_progress(account),
            'recent_transactions': LoyaltyTransactionSerializer(account.transactions.all()[:20], many=True).data,
        })


@extend_schema(
    summary="Adjust Member Points",
    description="Signed manual correction. The balance cannot go below zero.",
    request=PointsAdjustmentSerializer,
    responses={201: LoyaltyTransactionSerializer},
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_LOYALTY)])
def adjust_points(request, pk):
    account = get_object_or_404(LoyaltyAccount, pk=pk, cafe=request.user_cafe)
    serializer = PointsAdjustmentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    description = serializer.validated_data['description'] or f"Adjusted by {request.user.email}"
    entry = services.adjust_points(account, serializer.validated_data['points'], description)
    return Response(LoyaltyTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)


class RedemptionListView(CafeContextMixin, generics.ListAPIView):
    queryset = RewardRedemption.objects.select_related('reward', 'account', 'order')
    serializer_class = RewardRedemptionSerializer
    permission_classes = [HasCafeAccess]
    cafe_field = 'reward__cafe'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['status', 'reward']
    search_fields = ['redemption_code', 'account__loyalty_number']


@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_LOYALTY)])
def approve_redemption(request, pk):
    redemption = get_object_or_404(RewardRedemption, pk=pk, reward__cafe=request.user_cafe)
    services.approve_redemption(redemption, request.user)
    return Response(RewardRedemptionSerializer(redemption).data)


@extend_schema(request=CancelRedemptionSerializer, responses={200: RewardRedemptionSerializer})
@api_view(['POST'])
@permission_classes([require_permission(Permissions.MANAGE_LOYALTY)])
def cancel_redemption(request, pk):
    redemption = get_object_or_404(RewardRedemption, pk=pk, reward__cafe=request.user_cafe)
    serializer = CancelRedemptionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    redemption = services.cancel_redemption(redemption, reason=serializer.validated_data['reason'])
    return Response(RewardRedemptionSerializer(redemption).data)


@extend_schema(
    summary="Check Redemption Code",
    description="Preview the discount a redemption code gives on a subtotal without using it.",
    request={'type': 'object', 'properties': {'code': {'type': 'string'}, 'subtotal': {'type': 'string'}}},
    examples=[OpenApiExample('Check', value={'code': 'AB12CD34', 'subtotal': '18.50'})],
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.CREATE_ORDERS)])
def validate_redemption_code(request):
    code = request.data.get('code', '')
    try:
        subtotal = Decimal(str(request.data.get('subtotal', '0')))
    except InvalidOperation:
        return Response({'error': 'subtotal must be a number'}, status=status.HTTP_400_BAD_REQUEST)

    redemption, discount = services.apply_redemption_to_order(request.user_cafe, code, subtotal)
    return Response({
        'valid': True,
        'discount': discount,
        'redemption': RewardRedemptionSerializer(redemption).data,
    })


@extend_schema(summary="Loyalty Programme Statistics")
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ANALYTICS)])
def loyalty_stats(request):
    return Response(services.loyalty_stats(request.user_cafe))


# =============== MEMBER SELF SERVICE ===============

@extend_schema(
    summary="Join Loyalty Programme",
    description="Enroll the current user at the cafe named by X-Cafe-Slug, optionally with a referral code.",
    request=EnrollSerializer,
    responses={201: LoyaltyAccountSerializer},
    parameters=[OpenApiParameter('X-Cafe-Slug', OpenApiTypes.STR, OpenApiParameter.HEADER)],
)
@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def enroll(request):
    cafe = get_request_cafe(request)
    serializer = EnrollSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    account = services.enroll(request.user, cafe, referral_code=serializer.validated_data.get('referral_code'))
    return Response(LoyaltyAccountSerializer(account).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_account(request):
    account = _my_account(request)
    return Response({
        'account': LoyaltyAccountSerializer(account).data,
        'tier_progress': services.tier_progress(account),
    })


class MyTransactionListView(generics.ListAPIView):
    serializer_class = LoyaltyTransactionSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['transaction_type']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return LoyaltyTransaction.objects.none()
        return _my_account(self.request).transactions.select_related('order').order_by('-created_at', '-id')


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_available_rewards(request):
    account = _my_account(request)
    rewards = services.available_rewards(account)
    return Response({
        'current_points': account.current_points,
        'rewards': LoyaltyRewardSerializer(rewards, many=True).data,
    })


@extend_schema(request=RedeemSerializer, responses={201: RewardRedemptionSerializer})
@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def redeem_reward(request):
    account = _my_account(request)
    serializer = RedeemSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    reward = get_object_or_404(LoyaltyReward, pk=serializer.validated_data['reward_id'], cafe=account.cafe)
    redemption = services.redeem_reward(account, reward)
    return Response(RewardRedemptionSerializer(redemption).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_redemptions(request):
    account = _my_account(request)
    redemptions = account.redemptions.select_related('reward', 'order')
    status_filter = request.query_params.get('status')
    if status_filter:
        redemptions = redemptions.filter(status=status_filter.upper())
    return Response(RewardRedemptionSerializer(redemptions, many=True).data)


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def cancel_my_redemption(request, pk):
    account = _my_account(request)
    redemption = get_object_or_404(RewardRedemption, pk=pk, account=account)
    redemption = services.cancel_redemption(redemption, reason='Cancelled by member')
    return Response(RewardRedemptionSerializer(redemption).data)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_challenges(request):
    account = _my_account(request)
    progress = account.challenge_progress.select_related('challenge').order_by('-updated_at')
    running = LoyaltyChallenge.objects.filter(cafe=account.cafe, status='ACTIVE')
    joined = set(progress.values_list('challenge_id', flat=True))
    return Response({
        'progress': ChallengeProgressSerializer(progress, many=True).data,
        'not_started': LoyaltyChallengeSerializer(
            [challenge for challenge in running if challenge.is_running() and challenge.id not in joined],
            many=True
        ).data,
    })
