from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from authentication.permissions import require_permission
from authentication.roles import Permissions
from inventory.models import InventoryItem
from orders.models import Order
from .serializers import DateRangeSerializer, SalesQuerySerializer, DaybookQuerySerializer
from . import analytics, exports

logger = logging.getLogger(__name__)

DATE_RANGE_PARAMETERS = [
    openapi.Parameter('start_date', openapi.IN_QUERY, description="First day (YYYY-MM-DD), defaults to 6 days before end_date", type=openapi.TYPE_STRING),
    openapi.Parameter('end_date', openapi.IN_QUERY, description="Last day (YYYY-MM-DD), defaults to today", type=openapi.TYPE_STRING),
]


# =============== ANALYTICS ===============

@swagger_auto_schema(
    method='get',
    operation_description="Today's revenue, orders and average order value against yesterday, live order "
                          "counts, open inventory alerts and staff on shift",
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ANALYTICS)])
def dashboard_overview(request):
    return Response(analytics.overview(request.user_cafe))


@swagger_auto_schema(
    method='get',
    manual_parameters=DATE_RANGE_PARAMETERS + [
        openapi.Parameter('top', openapi.IN_QUERY, description="Number of top items (1-50)", type=openapi.TYPE_INTEGER),
    ]
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ANALYTICS)])
def sales_analytics(request):
    serializer = SalesQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return Response(analytics.sales_analytics(
        request.user_cafe, data['start_date'], data['end_date'], top_limit=data['top']
    ))


@swagger_auto_schema(
    method='get',
    operation_description="Active queue per counter, average preparation time today and overdue orders",
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ANALYTICS)])
def kitchen_dashboard(request):
    return Response(analytics.kitchen_dashboard(request.user_cafe))


# =============== EXPORTS ===============

@swagger_auto_schema(
    method='get',
    manual_parameters=DATE_RANGE_PARAMETERS + [
        openapi.Parameter('file_type', openapi.IN_QUERY, description="excel (default) or pdf", type=openapi.TYPE_STRING),
        openapi.Parameter('include_cancelled', openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN),
    ],
    responses={200: openapi.Response(description="Spreadsheet or PDF attachment")}
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.EXPORT_REPORTS)])
def export_daybook(request):
    serializer = DaybookQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    cafe = request.user_cafe

    orders = Order.objects.filter(
        cafe=cafe,
        created_at__date__gte=data['start_date'],
        created_at__date__lte=data['end_date'],
    ).prefetch_related('items').order_by('created_at')
    if not data['include_cancelled']:
        orders = orders.exclude(status='CANCELLED')

    logger.info(f"Day book {data['start_date']}..{data['end_date']} ({data['file_type']}) exported for {cafe.slug} by {request.user.email}")
    if data['file_type'] == 'pdf':
        return exports.daybook_pdf(cafe, orders, data['start_date'], data['end_date'])
    return exports.daybook_excel(cafe, orders, data['start_date'], data['end_date'])


@swagger_auto_schema(
    method='get',
    manual_parameters=DATE_RANGE_PARAMETERS,
    responses={200: openapi.Response(description="PDF attachment")}
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.EXPORT_REPORTS)])
def export_sales_report(request):
    serializer = DateRangeSerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    cafe = request.user_cafe

    report = analytics.sales_analytics(cafe, data['start_date'], data['end_date'])
    logger.info(f"Sales report {data['start_date']}..{data['end_date']} exported for {cafe.slug} by {request.user.email}")
    return exports.sales_report_pdf(cafe, report)


@swagger_auto_schema(method='get', responses={200: openapi.Response(description="Spreadsheet attachment")})
@api_view(['GET'])
@permission_classes([require_permission(Permissions.EXPORT_REPORTS)])
def export_inventory(request):
    cafe = request.user_cafe
    items = list(InventoryItem.objects.filter(cafe=cafe).exclude(status='DISCONTINUED').select_related('cafe'))
    logger.info(f"Inventory exported for {cafe.slug} by {request.user.email}")
    return exports.inventory_excel(cafe, items)
