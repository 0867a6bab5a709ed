from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from . import views

urlpatterns = [
    # =============== AUTHENTICATION ===============
    path('login/', views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('verify/', TokenVerifyView.as_view(), name='token_verify'),
    path('logout/', views.logout, name='logout'),
    path('register/', views.register_user, name='register_user'),
    path('register-cafe/', views.register_cafe, name='register_cafe'),

    # =============== USER PROFILE ===============
    path('profile/', views.MyProfileView.as_view(), name='my_profile'),
    path('profile/change-pin/', views.change_pin, name='change_pin'),
    path('profile/cafe-role/', views.my_cafe_role, name='my_cafe_role'),

    # =============== CAFE MANAGEMENT ===============
    path('cafes/', views.CafeListView.as_view(), name='cafe_list'),
    path('cafes/<slug:slug>/public/', views.public_cafe_detail, name='public_cafe_detail'),
    path('cafe/', views.MyCafeDetailView.as_view(), name='my_cafe_detail'),
    path('cafe/settings/', views.cafe_settings, name='cafe_settings'),

    # =============== COUNTERS ===============
    path('counters/', views.CounterListCreateView.as_view(), name='counter_list_create'),
    path('counters/<uuid:pk>/', views.CounterDetailView.as_view(), name='counter_detail'),

    # =============== PERMISSIONS ===============
    path('permissions/role/<str:role>/', views.get_role_permissions, name='role_permissions'),

    # =============== SYSTEM ===============
    path('health/', views.health_check, name='health_check'),
]
