from rest_framework import permissions
from rest_framework.exceptions import PermissionDenied, NotFound

from employees.models import Employee
from .roles import MANAGEMENT_ROLES, OWNER


def get_staff_membership(request):
    """
    Find the active Employee record the user works under for this request.

    When the request names a cafe (header, query or host) the membership
    must be for that cafe; otherwise the user's owner membership wins,
    then any other active one. Results are cached on the request.
    """
    if hasattr(request, 'employee'):
        return request.employee

    user = request.user
    current_cafe = getattr(request, 'current_cafe', None)
    memberships = Employee.objects.select_related('cafe', 'user').filter(user=user, status='ACTIVE')

    if current_cafe is not None:
        employee = memberships.filter(cafe=current_cafe).first()
    else:
        employee = memberships.filter(role=OWNER).first() or memberships.first()

    request.employee = employee
    request.user_cafe = employee.cafe if employee else current_cafe
    return employee


def get_request_cafe(request):
    """Cafe for customer-facing endpoints: explicit context first, staff membership second"""
    cafe = getattr(request, 'current_cafe', None)
    if cafe is None and request.user.is_authenticated:
        employee = get_staff_membership(request)
        cafe = employee.cafe if employee else None
    if cafe is None:
        raise NotFound('Cafe not specified. Send the X-Cafe-Slug header or a cafe query parameter.')
    return cafe


class HasCafeAccess(permissions.BasePermission):
    """
    Permission to check the user works at the cafe the request targets
    """
    message = 'You are not associated with any active cafe.'

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False

        # Super admin has access to all cafes, but still needs one named
        if request.user.is_super_admin and getattr(request, 'current_cafe', None) is not None:
            request.employee = None
            request.user_cafe = request.current_cafe
            return True

        return get_staff_membership(request) is not None

    def has_object_permission(self, request, view, obj):
        cafe_id = getattr(obj, 'cafe_id', None)
        if cafe_id is None:
            return True
        return cafe_id == request.user_cafe.id


class HasCafePermission(HasCafeAccess):
    """
    Permission to check a specific permission code on the staff membership
    """
    def __init__(self, required_permission=None):
        self.required_permission = required_permission

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False

        employee = request.employee
        if employee is None:
            # super admin
            return True

        required = self.required_permission or getattr(view, 'required_permission', None)
        if required is None:
            return True
        if not employee.has_permission(required):
            raise PermissionDenied(f'Missing permission: {required}')
        return True


class IsCafeManager(HasCafeAccess):
    """
    Permission to only allow cafe owners or managers
    """
    message = 'Only cafe owners or managers can perform this action.'

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        employee = request.employee
        return employee is None or employee.role in MANAGEMENT_ROLES


class IsCafeOwner(HasCafeAccess):
    """
    Permission to only allow cafe owners
    """
    message = 'Only the cafe owner can perform this action.'

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        employee = request.employee
        return employee is None or employee.role == OWNER


def require_permission(permission_name):
    """Build a permission_classes entry for a specific permission code"""
    return lambda: HasCafePermission(permission_name)


class CafeContextMixin:
    """Mixin to resolve the staff member's cafe and filter the queryset by it"""

    cafe_field = 'cafe'

    def get_user_cafe(self):
        if getattr(self.request, 'user_cafe', None) is None:
            employee = get_staff_membership(self.request)
            if employee is None and not (
                self.request.user.is_super_admin and getattr(self.request, 'current_cafe', None)
            ):
                raise PermissionDenied("You are not associated with any active cafe.")
            if employee is None:
                self.request.user_cafe = self.request.current_cafe
        return self.request.user_cafe

    def get_queryset(self):
        """Filter queryset by the user's cafe"""
        if getattr(self, 'swagger_fake_view', False):
            return super().get_queryset().none()
        cafe = self.get_user_cafe()
        return super().get_queryset().filter(**{self.cafe_field: cafe})

    def perform_create(self, serializer):
        cafe = self.get_user_cafe()
        serializer.save(cafe=cafe)

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['request'] = self.request
        if self.request.user.is_authenticated:
            context['cafe'] = self.get_user_cafe()
        return context
