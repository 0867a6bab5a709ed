from django.urls import path

from . import views

urlpatterns = [
    # =============== PROGRAMME SETUP ===============
    path('tiers/', views.LoyaltyTierListCreateView.as_view(), name='loyalty-tier-list-create'),
    path('tiers/<int:pk>/', views.LoyaltyTierDetailView.as_view(), name='loyalty-tier-detail'),
    path('rewards/', views.LoyaltyRewardListCreateView.as_view(), name='loyalty-reward-list-create'),
    path('rewards/<int:pk>/', views.LoyaltyRewardDetailView.as_view(), name='loyalty-reward-detail'),
    path('promotions/', views.LoyaltyPromotionListCreateView.as_view(), name='loyalty-promotion-list-create'),
    path('promotions/<int:pk>/', views.LoyaltyPromotionDetailView.as_view(), name='loyalty-promotion-detail'),
    path('challenges/', views.LoyaltyChallengeListCreateView.as_view(), name='loyalty-challenge-list-create'),
    path('challenges/<int:pk>/', views.LoyaltyChallengeDetailView.as_view(), name='loyalty-challenge-detail'),

    # =============== MEMBERS ===============
    path('accounts/', views.LoyaltyAccountListView.as_view(), name='loyalty-account-list'),
    path('accounts/<int:pk>/', views.LoyaltyAccountDetailView.as_view(), name='loyalty-account-detail'),
    path('accounts/<int:pk>/adjust/', views.adjust_points, name='loyalty-adjust-points'),
    path('redemptions/', views.RedemptionListView.as_view(), name='loyalty-redemption-list'),
    path('redemptions/validate/', views.validate_redemption_code, name='loyalty-validate-code'),
    path('redemptions/<int:pk>/approve/', views.approve_redemption, name='loyalty-approve-redemption'),
    path('redemptions/<int:pk>/cancel/', views.cancel_redemption, name='loyalty-cancel-redemption'),
    path('stats/', views.loyalty_stats, name='loyalty-stats'),

    # =============== SELF SERVICE ===============
    path('enroll/', views.enroll, name='loyalty-enroll'),
    path('me/', views.my_account, name='loyalty-my-account'),
    path('me/transactions/', views.MyTransactionListView.as_view(), name='loyalty-my-transactions'),
    path('me/rewards/', views.my_available_rewards, name='loyalty-my-rewards'),
    path('me/redeem/', views.redeem_reward, name='loyalty-redeem'),
    path('me/redemptions/', views.my_redemptions, name='loyalty-my-redemptions'),
    path('me/redemptions/<int:pk>/cancel/', views.cancel_my_redemption, name='loyalty-cancel-my-redemption'),
    path('me/challenges/', views.my_challenges, name='loyalty-my-challenges'),
]
