from rest_framework import generics, status, filters
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
import logging

from authentication.permissions import CafeContextMixin, HasCafeAccess, HasCafePermission, IsCafeManager, \
    require_permission
from authentication.roles import Permissions, OWNER
from .models import Employee, TimeSheet
from .serializers import (
    EmployeeSerializer, EmployeeCreateSerializer, TimeSheetSerializer, ClockSerializer, PayrollQuerySerializer
)
from . import services

logger = logging.getLogger(__name__)


def _current_employee(request):
    if request.employee is None:
        raise NotFound('No staff membership at this cafe.')
    return request.employee


# =============== STAFF MANAGEMENT ===============

class EmployeeListCreateView(CafeContextMixin, generics.ListCreateAPIView):
    """
    get: Staff of the cafe
    post: Add a staff member, creating their account when the email is new
    """
    queryset = Employee.objects.select_related('user', 'assigned_counter')
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['role', 'status', 'department', 'assigned_counter']
    search_fields = ['employee_code', 'user__email', 'user__first_name', 'user__last_name']
    ordering_fields = ['employee_code', 'hire_date', 'role']
    ordering = ['employee_code']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [HasCafePermission(Permissions.MANAGE_EMPLOYEES)]
        return [HasCafePermission(Permissions.VIEW_EMPLOYEES)]

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return EmployeeCreateSerializer
        return EmployeeSerializer

    @extend_schema(request=EmployeeCreateSerializer, responses={201: EmployeeSerializer})
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        employee = serializer.save()
        logger.info(f"Employee {employee.employee_code} ({employee.role}) added to {employee.cafe.slug}")
        return Response(EmployeeSerializer(employee).data, status=status.HTTP_201_CREATED)


class EmployeeDetailView(CafeContextMixin, generics.RetrieveUpdateDestroyAPIView):
    queryset = Employee.objects.select_related('user', 'assigned_counter')
    serializer_class = EmployeeSerializer

    def get_permissions(self):
        if self.request.method in ['PUT', 'PATCH', 'DELETE']:
            return [HasCafePermission(Permissions.MANAGE_EMPLOYEES)]
        return [HasCafePermission(Permissions.VIEW_EMPLOYEES)]

    def perform_destroy(self, instance):
        # Memberships are deactivated, never deleted; time sheets stay for payroll
        if instance.role == OWNER:
            raise PermissionDenied('The cafe owner cannot be deactivated.')
        services.deactivate_employee(instance, self.request.user)


@extend_schema(summary="Staff Currently On Shift")
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_EMPLOYEES)])
def staff_on_shift(request):
    employees = services.staff_on_shift(request.user_cafe)
    return Response({
        'count': len(employees),
        'employees': EmployeeSerializer(employees, many=True).data,
    })


# =============== TIME TRACKING (own shift) ===============

@extend_schema(request=ClockSerializer, responses={201: TimeSheetSerializer})
@api_view(['POST'])
@permission_classes([HasCafeAccess])
def clock_in(request):
    employee = _current_employee(request)
    serializer = ClockSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    sheet = services.clock_in(employee, notes=serializer.validated_data['notes'])
    return Response(TimeSheetSerializer(sheet).data, status=status.HTTP_201_CREATED)


@extend_schema(request=ClockSerializer, responses={200: TimeSheetSerializer})
@api_view(['POST'])
@permission_classes([HasCafeAccess])
def clock_out(request):
    employee = _current_employee(request)
    serializer = ClockSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    sheet = services.clock_out(employee, notes=serializer.validated_data['notes'])
    return Response(TimeSheetSerializer(sheet).data)


@api_view(['POST'])
@permission_classes([HasCafeAccess])
def start_break(request):
    sheet = services.start_break(_current_employee(request))
    return Response(TimeSheetSerializer(sheet).data)


@api_view(['POST'])
@permission_classes([HasCafeAccess])
def end_break(request):
    sheet = services.end_break(_current_employee(request))
    return Response(TimeSheetSerializer(sheet).data)


@extend_schema(summary="My Shift Status")
@api_view(['GET'])
@permission_classes([HasCafeAccess])
def shift_status(request):
    return Response(services.shift_status(_current_employee(request)))


# =============== TIME SHEETS ===============

class TimeSheetListView(CafeContextMixin, generics.ListAPIView):
    """
    Time sheets of the cafe. Staff without view_employees only see
    their own.
    """
    queryset = TimeSheet.objects.select_related('employee', 'employee__user', 'employee__cafe')
    serializer_class = TimeSheetSerializer
    permission_classes = [HasCafeAccess]
    cafe_field = 'employee__cafe'
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = {
        'employee': ['exact'],
        'is_approved': ['exact'],
        'work_date': ['exact', 'gte', 'lte'],
    }
    ordering = ['-clock_in']

    def get_queryset(self):
        queryset = super().get_queryset()
        if getattr(self, 'swagger_fake_view', False):
            return queryset
        employee = self.request.employee
        if employee is not None and not employee.has_permission(Permissions.VIEW_EMPLOYEES):
            queryset = queryset.filter(employee=employee)
        return queryset


@api_view(['POST'])
@permission_classes([require_permission(Permissions.APPROVE_TIMESHEETS)])
def approve_timesheet(request, pk):
    sheet = get_object_or_404(TimeSheet, pk=pk, employee__cafe=request.user_cafe)
    if request.employee is not None and sheet.employee_id == request.employee.id and request.employee.role != OWNER:
        raise PermissionDenied('You cannot approve your own time sheet.')
    services.approve_timesheet(sheet, request.user)
    return Response(TimeSheetSerializer(sheet).data)


@extend_schema(
    summary="Payroll Summary",
    description="Gross pay per employee for closed shifts between two dates. Approved sheets only by default.",
    parameters=[
        OpenApiParameter('start_date', OpenApiTypes.DATE, required=True),
        OpenApiParameter('end_date', OpenApiTypes.DATE, required=True),
        OpenApiParameter('include_unapproved', OpenApiTypes.BOOL),
    ],
)
@api_view(['GET'])
@permission_classes([IsCafeManager])
def payroll_summary(request):
    serializer = PayrollQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return Response(services.payroll_summary(
        request.user_cafe, data['start_date'], data['end_date'], include_unapproved=data['include_unapproved']
    ))
