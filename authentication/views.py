from rest_framework import generics, status, permissions
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.exceptions import TokenError
from django.db import connection
from django.utils import timezone
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes
import logging

from employees.models import Employee
from .models import Cafe, Counter
from .serializers import (
    UserSerializer, LoginSerializer, CafeSerializer, CafeRegistrationSerializer,
    CafeSettingsSerializer, CounterSerializer
)
from .permissions import (
    CafeContextMixin, HasCafeAccess, IsCafeManager, get_staff_membership
)
from .roles import DEFAULT_PERMISSIONS, ROLE_CHOICES

logger = logging.getLogger(__name__)


# =============== AUTHENTICATION VIEWS ===============

class CustomTokenObtainPairView(TokenObtainPairView):
    """
    JWT login with optional staff PIN.

    The token carries the user's active cafe memberships so clients can
    pick a cafe without another round trip.
    """
    serializer_class = LoginSerializer

    @extend_schema(
        summary="User Login with JWT Token",
        description="""
        Authenticate with email and password. Staff accounts that have a PIN
        must send it as well. Returns JWT tokens plus the cafes the user works at.
        """,
        request=LoginSerializer,
        responses={
            200: {
                'type': 'object',
                'properties': {
                    'refresh': {'type': 'string'},
                    'access': {'type': 'string'},
                    'user': {'type': 'object'},
                    'memberships': {'type': 'array', 'items': {'type': 'object'}},
                }
            },
            400: {'description': 'Invalid credentials'},
        },
        examples=[
            OpenApiExample(
                'Staff Login',
                value={"email": "barista@cafe.com", "password": "SecurePassword123!", "pin": "123456"}
            ),
            OpenApiExample(
                'Customer Login',
                value={"email": "guest@example.com", "password": "SecurePassword123!"}
            ),
        ]
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = serializer.validated_data['user']
        memberships = serializer.validated_data['memberships']

        user.last_login_at = timezone.now()
        user.save(update_fields=['last_login_at'])

        membership_data = [
            {
                'cafe_id': str(m.cafe_id),
                'cafe_slug': m.cafe.slug,
                'cafe_name': m.cafe.name,
                'role': m.role,
                'permissions': m.permissions,
            }
            for m in memberships
        ]

        refresh = RefreshToken.for_user(user)
        refresh['email'] = user.email
        refresh['is_super_admin'] = user.is_super_admin
        refresh['cafes'] = [
            {'slug': m['cafe_slug'], 'role': m['role']} for m in membership_data
        ]

        logger.info(f"User {user.email} logged in ({len(memberships)} cafe memberships)")

        return Response({
            'refresh': str(refresh),
            'access': str(refresh.access_token),
            'user': UserSerializer(user).data,
            'memberships': membership_data,
        }, status=status.HTTP_200_OK)


@extend_schema(
    summary="Register User",
    description="Create a customer account. Staff accounts are created by cafe managers.",
    request=UserSerializer,
    responses={201: UserSerializer},
)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def register_user(request):
    serializer = UserSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info(f"Registered user {user.email}")
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Register New Cafe",
    description="""
    Register a new cafe with its owner account. Creates:
    - Owner user account
    - Cafe
    - Owner employee membership
    - Main counter
    """,
    request=CafeRegistrationSerializer,
    responses={201: {'type': 'object'}, 400: {'description': 'Validation errors'}},
    examples=[
        OpenApiExample(
            'Cafe Registration',
            value={
                "cafe_name": "Corner Beans",
                "location": "Downtown",
                "owner_first_name": "Ada",
                "owner_last_name": "Lovelace",
                "owner_email": "ada@cornerbeans.com",
                "owner_password": "SecurePassword123!",
                "owner_pin": "123456",
            }
        )
    ]
)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def register_cafe(request):
    serializer = CafeRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = serializer.save()

    logger.info(f"Registered cafe {result['cafe'].slug} for {result['owner'].email}")
    return Response({
        'message': 'Cafe registered successfully',
        'cafe': CafeSerializer(result['cafe']).data,
        'owner': UserSerializer(result['owner']).data,
        'counter': CounterSerializer(result['counter']).data,
    }, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Logout",
    description="Blacklist the given refresh token.",
    request={'type': 'object', 'properties': {'refresh': {'type': 'string'}}},
)
@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def logout(request):
    refresh = request.data.get('refresh')
    if not refresh:
        return Response({'error': 'refresh token is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        RefreshToken(refresh).blacklist()
    except TokenError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'message': 'Logged out'})


# =============== USER PROFILE ===============

class MyProfileView(generics.RetrieveUpdateAPIView):
    """
    Get and update current user's profile information.
    """
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user

    def perform_update(self, serializer):
        # Email and PIN have their own flows
        serializer.validated_data.pop('email', None)
        serializer.validated_data.pop('pin', None)
        serializer.save()


@extend_schema(
    summary="Change PIN",
    description="Change user's PIN. Requires current PIN when one is set.",
    request={
        'type': 'object',
        'properties': {
            'current_pin': {'type': 'string', 'minLength': 6, 'maxLength': 6},
            'new_pin': {'type': 'string', 'minLength': 6, 'maxLength': 6},
        }
    },
)
@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def change_pin(request):
    current_pin = request.data.get('current_pin', '')
    new_pin = request.data.get('new_pin')

    if not new_pin:
        return Response({'error': 'new_pin is required'}, status=status.HTTP_400_BAD_REQUEST)

    if request.user.pin and request.user.pin != current_pin:
        return Response({'error': 'Current PIN is incorrect'}, status=status.HTTP_400_BAD_REQUEST)

    if not new_pin.isdigit() or len(new_pin) != 6:
        return Response({'error': 'New PIN must be exactly 6 digits'}, status=status.HTTP_400_BAD_REQUEST)

    request.user.pin = new_pin
    request.user.save(update_fields=['pin'])

    return Response({'message': 'PIN changed successfully'})


@extend_schema(summary="Get My Cafe Role", description="Role and permissions in the current cafe")
@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_cafe_role(request):
    employee = get_staff_membership(request)
    if employee is None:
        return Response({'error': 'No cafe assignment found'}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'cafe': CafeSerializer(employee.cafe).data,
        'employee_id': str(employee.id),
        'role': employee.role,
        'permissions': employee.permissions,
        'assigned_counter': str(employee.assigned_counter_id) if employee.assigned_counter_id else None,
    })


# =============== CAFE MANAGEMENT ===============

class CafeListView(generics.ListCreateAPIView):
    """
    get: cafes the user can see (all for super admins, memberships otherwise)
    post: create a cafe; the creator becomes its owner
    """
    serializer_class = CafeSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Cafe.objects.none()
        if self.request.user.is_super_admin:
            return Cafe.objects.all()
        return Cafe.objects.filter(
            employees__user=self.request.user,
            employees__status='ACTIVE'
        ).distinct()

    def perform_create(self, serializer):
        cafe = serializer.save()
        logger.info(f"Cafe {cafe.slug} created by {self.request.user.email}")


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def public_cafe_detail(request, slug):
    """Public cafe info (name, hours, open now) for customer apps"""
    try:
        cafe = Cafe.objects.get(slug=slug)
    except Cafe.DoesNotExist:
        return Response({'error': 'Cafe not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(CafeSerializer(cafe).data)


class MyCafeDetailView(generics.RetrieveUpdateAPIView):
    """
    Get or update the current cafe. Only owners and managers may update.
    """
    serializer_class = CafeSerializer

    def get_permissions(self):
        if self.request.method in ['PUT', 'PATCH']:
            return [IsCafeManager()]
        return [HasCafeAccess()]

    def get_object(self):
        return self.request.user_cafe


@extend_schema(
    summary="Cafe Settings",
    description="Read or override business defaults (tax, fees, limits, loyalty) for the current cafe.",
    request=CafeSettingsSerializer,
    responses={200: CafeSettingsSerializer},
)
@api_view(['GET', 'PATCH'])
@permission_classes([IsCafeManager])
def cafe_settings(request):
    cafe = request.user_cafe
    if request.method == 'GET':
        return Response(CafeSettingsSerializer(cafe).data)

    serializer = CafeSettingsSerializer(cafe, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    logger.info(f"Settings updated for cafe {cafe.slug}: {sorted(serializer.validated_data)}")
    return Response(CafeSettingsSerializer(cafe).data)


# =============== COUNTER MANAGEMENT ===============

class CounterListCreateView(CafeContextMixin, generics.ListCreateAPIView):
    """
    get: List counters for the current cafe
    post: Create a counter (owners/managers only)
    """
    queryset = Counter.objects.all()
    serializer_class = CounterSerializer

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsCafeManager()]
        return [HasCafeAccess()]


class CounterDetailView(CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = Counter.objects.all()
    serializer_class = CounterSerializer

    def get_permissions(self):
        if self.request.method in ['PUT', 'PATCH', 'DELETE']:
            return [IsCafeManager()]
        return [HasCafeAccess()]

    def perform_destroy(self, instance):
        instance.status = 'INACTIVE'
        instance.save(update_fields=['status', 'updated_at'])


# =============== PERMISSIONS ===============

@extend_schema(
    summary="Get Role Default Permissions",
    parameters=[
        OpenApiParameter(
            name='role',
            type=OpenApiTypes.STR,
            location=OpenApiParameter.PATH,
            enum=[choice[0] for choice in ROLE_CHOICES]
        )
    ],
)
@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def get_role_permissions(request, role):
    role = role.upper()
    if role not in DEFAULT_PERMISSIONS:
        return Response({'error': 'Unknown role'}, status=status.HTTP_404_NOT_FOUND)
    return Response({
        'role': role,
        'permissions': DEFAULT_PERMISSIONS[role],
    })


# =============== SYSTEM HEALTH & MONITORING ===============

@extend_schema(
    summary="System Health Check",
    description="Check system health and database connectivity",
)
@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def health_check(request):
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")

        return Response({
            'status': 'healthy',
            'timestamp': timezone.now().isoformat(),
            'database': 'connected',
            'version': '1.0.0'
        })
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return Response({
            'status': 'unhealthy',
            'timestamp': timezone.now().isoformat(),
            'database': 'disconnected',
            'error': str(e)
        }, status=status.HTTP_503_SERVICE_UNAVAILABLE)
