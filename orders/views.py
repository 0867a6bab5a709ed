from rest_framework import status, generics, filters, permissions
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from authentication.models import CustomUser, Counter
from authentication.permissions import (
    CafeContextMixin, HasCafePermission, require_permission, get_request_cafe, get_staff_membership
)
from authentication.roles import Permissions
from .cart import CartService, cart_owner
from .filters import OrderFilter
from .models import Order, Payment
from .serializers import (
    OrderSerializer, OrderListSerializer, OrderCreateSerializer, OrderStatusSerializer, CancelOrderSerializer,
    AssignCounterSerializer, PaymentSerializer, ProcessPaymentSerializer, RefundSerializer,
    CustomerCreditSerializer, CreditChangeSerializer, OrderLineSerializer, CartItemUpdateSerializer,
    CartDiscountSerializer, CartTipSerializer, CartOrderTypeSerializer, CartNotesSerializer, CheckoutSerializer
)
from . import payments, services

logger = logging.getLogger(__name__)


# =============== STAFF ORDER MANAGEMENT ===============

class OrderListCreateView(CafeContextMixin, generics.ListCreateAPIView):
    """
    get: Order history for the cafe, newest first
    post: Take a new order at the till
    """
    queryset = Order.objects.select_related('counter', 'customer', 'created_by').prefetch_related('items')
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = OrderFilter
    search_fields = ['order_number', 'customer_name', 'customer_phone', 'table_number']
    ordering_fields = ['created_at', 'total', 'status']
    ordering = ['-created_at']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [HasCafePermission(Permissions.CREATE_ORDERS)]
        return [HasCafePermission(Permissions.VIEW_ORDERS)]

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return OrderCreateSerializer
        return OrderListSerializer

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, description="Filter by order status, repeatable", type=openapi.TYPE_STRING),
            openapi.Parameter('order_type', openapi.IN_QUERY, description="DINE_IN, TAKEAWAY or DELIVERY", type=openapi.TYPE_STRING),
            openapi.Parameter('date_from', openapi.IN_QUERY, description="Created on or after (YYYY-MM-DD)", type=openapi.TYPE_STRING),
            openapi.Parameter('date_to', openapi.IN_QUERY, description="Created on or before (YYYY-MM-DD)", type=openapi.TYPE_STRING),
            openapi.Parameter('customer_email', openapi.IN_QUERY, description="Filter by customer email", type=openapi.TYPE_STRING),
        ]
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_description="Create an order. Stock is consumed and a counter assigned.",
        request_body=OrderCreateSerializer,
        responses={
            201: OrderSerializer,
            400: openapi.Response(description="Invalid lines, with field/message/code details"),
            409: openapi.Response(description="Not enough stock"),
        }
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        employee = request.employee
        if (data.get('discount_type') or data.get('redemption_code')) and employee is not None \
                and not employee.has_permission(Permissions.APPLY_DISCOUNTS):
            raise PermissionDenied(f'Missing permission: {Permissions.APPLY_DISCOUNTS}')

        order = services.create_order(
            self.get_user_cafe(),
            data['items'],
            created_by=request.user,
            customer=data.get('customer_id'),
            order_type=data['order_type'],
            table_number=data['table_number'],
            customer_name=data['customer_name'],
            customer_phone=data['customer_phone'],
            delivery_address=data['delivery_address'],
            notes=data['notes'],
            tip=data['tip'],
            discount_type=data.get('discount_type'),
            discount_value=data['discount_value'],
            redemption_code=data.get('redemption_code') or None,
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailView(CafeContextMixin, generics.RetrieveAPIView):
    queryset = Order.objects.select_related('counter', 'customer', 'created_by').prefetch_related('items')
    serializer_class = OrderSerializer
    permission_classes = [require_permission(Permissions.VIEW_ORDERS)]


@swagger_auto_schema(
    method='post',
    operation_description="Move an order to its next status",
    request_body=OrderStatusSerializer,
    responses={
        200: OrderSerializer,
        409: openapi.Response(description="Transition not allowed from the current status"),
    }
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.UPDATE_ORDER_STATUS)])
def update_order_status(request, pk):
    order = get_object_or_404(Order, pk=pk, cafe=request.user_cafe)
    serializer = OrderStatusSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    new_status = serializer.validated_data['status']

    if new_status == 'CANCELLED' and request.employee is not None \
            and not request.employee.has_permission(Permissions.CANCEL_ORDERS):
        raise PermissionDenied(f'Missing permission: {Permissions.CANCEL_ORDERS}')

    order = services.update_status(
        order, new_status, user=request.user, reason=serializer.validated_data['reason']
    )
    return Response(OrderSerializer(order).data)


@swagger_auto_schema(
    method='post',
    operation_description="Cancel an order, restoring stock and refunding reward points",
    request_body=CancelOrderSerializer,
    responses={200: OrderSerializer}
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.CANCEL_ORDERS)])
def cancel_order(request, pk):
    order = get_object_or_404(Order, pk=pk, cafe=request.user_cafe)
    serializer = CancelOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    order = services.cancel_order(order, reason=serializer.validated_data['reason'], user=request.user)
    return Response(OrderSerializer(order).data)


@swagger_auto_schema(
    method='post',
    operation_description="Route an order to a counter; without counter_id the least busy one is picked",
    request_body=AssignCounterSerializer,
    responses={200: OrderSerializer}
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.UPDATE_ORDER_STATUS)])
def assign_counter(request, pk):
    order = get_object_or_404(Order, pk=pk, cafe=request.user_cafe)
    serializer = AssignCounterSerializer(data=request.data, context={'cafe': request.user_cafe})
    serializer.is_valid(raise_exception=True)
    order = services.assign_counter(order, serializer.validated_data.get('counter_id'))
    return Response(OrderSerializer(order).data)


@swagger_auto_schema(
    method='get',
    operation_description="Kitchen queue: pending and preparing orders, oldest first",
    manual_parameters=[
        openapi.Parameter('counter', openapi.IN_QUERY, description="Only this counter (uuid)", type=openapi.TYPE_STRING),
    ],
    responses={200: OrderSerializer(many=True)}
)
@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ORDERS)])
def order_queue(request):
    counter = None
    counter_id = request.query_params.get('counter')
    if counter_id:
        counter = get_object_or_404(Counter, pk=counter_id, cafe=request.user_cafe)
    orders = services.get_queue(request.user_cafe, counter)
    return Response({
        'count': len(orders),
        'orders': OrderSerializer(orders, many=True).data,
    })


# =============== PAYMENTS ===============

@swagger_auto_schema(
    method='post',
    operation_description="Take a payment. A declined payment is stored as FAILED and answered with 402.",
    request_body=ProcessPaymentSerializer,
    responses={
        201: PaymentSerializer,
        402: openapi.Response(description="Declined or not allowed"),
    }
)
@swagger_auto_schema(method='get', responses={200: PaymentSerializer(many=True)})
@api_view(['GET', 'POST'])
@permission_classes([require_permission(Permissions.VIEW_ORDERS)])
def order_payments(request, pk):
    order = get_object_or_404(Order, pk=pk, cafe=request.user_cafe)

    if request.method == 'GET':
        return Response({
            'summary': payments.payment_summary(order),
            'payments': PaymentSerializer(order.payments.order_by('created_at'), many=True).data,
        })

    if request.employee is not None and not request.employee.has_permission(Permissions.PROCESS_PAYMENTS):
        raise PermissionDenied(f'Missing permission: {Permissions.PROCESS_PAYMENTS}')
    serializer = ProcessPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    payment = payments.process_payment(
        order, data['method'], data['amount'], user=request.user, reference=data['reference']
    )
    response_status = status.HTTP_201_CREATED if payment.status == 'COMPLETED' else status.HTTP_402_PAYMENT_REQUIRED
    return Response({
        'payment': PaymentSerializer(payment).data,
        'summary': payments.payment_summary(order),
    }, status=response_status)


@api_view(['GET'])
@permission_classes([require_permission(Permissions.VIEW_ORDERS)])
def payment_summary(request, pk):
    order = get_object_or_404(Order, pk=pk, cafe=request.user_cafe)
    summary = payments.payment_summary(order)
    summary['payment_status'] = order.payment_status
    return Response(summary)


@swagger_auto_schema(
    method='post',
    operation_description="Refund all or part of a completed payment",
    request_body=RefundSerializer,
    responses={200: PaymentSerializer}
)
@api_view(['POST'])
@permission_classes([require_permission(Permissions.REFUND_PAYMENTS)])
def refund_payment(request, pk):
    payment = get_object_or_404(Payment, pk=pk, order__cafe=request.user_cafe)
    serializer = RefundSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    payment = payments.refund_payment(
        payment, amount=serializer.validated_data.get('amount'),
        reason=serializer.validated_data['reason'], user=request.user
    )
    return Response({
        'payment': PaymentSerializer(payment).data,
        'summary': payments.payment_summary(payment.order),
    })


# =============== CUSTOMER CREDIT ===============

@swagger_auto_schema(
    method='post',
    operation_description="Add, use or adjust a customer's store credit",
    request_body=CreditChangeSerializer,
    responses={201: CustomerCreditSerializer}
)
@api_view(['GET', 'POST'])
@permission_classes([require_permission(Permissions.MANAGE_CREDIT)])
def customer_credit(request, customer_id):
    cafe = request.user_cafe
    customer = get_object_or_404(CustomUser, pk=customer_id)

    if request.method == 'POST':
        serializer = CreditChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if data['action'] == 'add':
            entry = payments.add_credit(
                customer, cafe, data['amount'], description=data['description'],
                expires_at=data.get('expires_at'), user=request.user
            )
        elif data['action'] == 'use':
            entry = payments.use_credit(customer, cafe, data['amount'], description=data['description'], user=request.user)
        else:
            entry = payments.adjust_credit(customer, cafe, data['amount'], description=data['description'], user=request.user)
        return Response(CustomerCreditSerializer(entry).data, status=status.HTTP_201_CREATED)

    history = payments.credit_history(customer, cafe)[:100]
    return Response({
        'customer': str(customer.pk),
        'balance': payments.credit_balance(customer, cafe),
        'history': CustomerCreditSerializer(history, many=True).data,
    })


# =============== CUSTOMER SELF SERVICE ===============

class MyOrderListView(generics.ListAPIView):
    """Orders the signed-in customer placed, optionally only at the requested cafe"""
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['status']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Order.objects.none()
        queryset = Order.objects.filter(customer=self.request.user).prefetch_related('items')
        cafe = getattr(self.request, 'current_cafe', None)
        if cafe is not None:
            queryset = queryset.filter(cafe=cafe)
        return queryset.order_by('-created_at')


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_order_detail(request, pk):
    order = get_object_or_404(Order, pk=pk, customer=request.user)
    return Response(OrderSerializer(order).data)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def my_credit(request):
    cafe = get_request_cafe(request)
    return Response({
        'balance': payments.credit_balance(request.user, cafe),
        'history': CustomerCreditSerializer(payments.credit_history(request.user, cafe)[:50], many=True).data,
    })


# =============== CART ===============

def _cart_service(request):
    cafe = get_request_cafe(request)
    owner = cart_owner(request)
    if owner is None:
        raise ValidationError({'cart': 'Log in or send an X-Cart-Id header to use a cart.'})
    return CartService(cafe, owner)


def _may_discount(request, cafe):
    """Manual discounts are for staff of this cafe holding APPLY_DISCOUNTS"""
    if not request.user.is_authenticated:
        return False
    employee = get_staff_membership(request)
    return bool(
        employee and employee.cafe_id == cafe.pk and employee.has_permission(Permissions.APPLY_DISCOUNTS)
    )


def _cart_response(service, cart, response_status=status.HTTP_200_OK, **extra):
    data = {'cart': cart, 'totals': service.totals(cart)}
    data.update(extra)
    return Response(data, status=response_status)


@swagger_auto_schema(
    method='get',
    operation_description="Current cart with live totals",
    manual_parameters=[
        openapi.Parameter('X-Cafe-Slug', openapi.IN_HEADER, type=openapi.TYPE_STRING, required=True),
        openapi.Parameter('X-Cart-Id', openapi.IN_HEADER, description="Anonymous cart id", type=openapi.TYPE_STRING),
    ]
)
@api_view(['GET', 'DELETE'])
@permission_classes([permissions.AllowAny])
def cart_detail(request):
    service = _cart_service(request)
    if request.method == 'DELETE':
        return _cart_response(service, service.clear())
    return _cart_response(service, service.load())


@swagger_auto_schema(method='post', request_body=OrderLineSerializer)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_add_item(request):
    service = _cart_service(request)
    serializer = OrderLineSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    cart = service.add_item(
        data['menu_item_id'], data['quantity'], data['customizations'], data['special_instructions']
    )
    return _cart_response(service, cart, status.HTTP_201_CREATED)


@swagger_auto_schema(method='patch', request_body=CartItemUpdateSerializer)
@api_view(['PATCH', 'DELETE'])
@permission_classes([permissions.AllowAny])
def cart_item(request, line_id):
    service = _cart_service(request)
    if request.method == 'DELETE':
        return _cart_response(service, service.remove_item(line_id))

    serializer = CartItemUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    cart = service.update_item(
        line_id,
        quantity=data.get('quantity'),
        customizations=data.get('customizations'),
        special_instructions=data.get('special_instructions'),
    )
    return _cart_response(service, cart)


@swagger_auto_schema(method='post', request_body=CartDiscountSerializer)
@api_view(['POST', 'DELETE'])
@permission_classes([permissions.AllowAny])
def cart_discount(request):
    service = _cart_service(request)
    if request.method == 'DELETE':
        return _cart_response(service, service.remove_discount())

    serializer = CartDiscountSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    cart = service.apply_discount(
        data.get('type'), data.get('value'), data.get('code', ''),
        allow_manual=_may_discount(request, service.cafe),
    )
    return _cart_response(service, cart)


@swagger_auto_schema(method='post', request_body=CartTipSerializer)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_tip(request):
    service = _cart_service(request)
    serializer = CartTipSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return _cart_response(service, service.set_tip(serializer.validated_data['tip']))


@swagger_auto_schema(method='post', request_body=CartOrderTypeSerializer)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_order_type(request):
    service = _cart_service(request)
    serializer = CartOrderTypeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return _cart_response(service, service.set_order_type(data['order_type'], data['table_number']))


@swagger_auto_schema(method='post', request_body=CartNotesSerializer)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_notes(request):
    service = _cart_service(request)
    serializer = CartNotesSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return _cart_response(service, service.set_notes(serializer.validated_data['notes']))


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def cart_totals(request):
    service = _cart_service(request)
    return Response(service.totals())


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def cart_validate(request):
    """Problems that would block checkout, as field/message/code entries"""
    service = _cart_service(request)
    errors = service.validate(for_checkout=request.query_params.get('checkout', 'true').lower() != 'false')
    return Response({'valid': not errors, 'errors': errors})


@swagger_auto_schema(
    method='post',
    operation_description="Place the cart as an order and empty it",
    request_body=CheckoutSerializer,
    responses={201: OrderSerializer}
)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_checkout(request):
    service = _cart_service(request)
    serializer = CheckoutSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    customer = request.user if request.user.is_authenticated else None
    order = service.checkout(
        customer=customer,
        allow_manual_discount=_may_discount(request, service.cafe),
        **serializer.validated_data
    )
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def cart_export(request):
    service = _cart_service(request)
    return Response({'data': service.export_cart()})


@swagger_auto_schema(
    method='post',
    request_body=openapi.Schema(
        type=openapi.TYPE_OBJECT,
        required=['data'],
        properties={'data': openapi.Schema(type=openapi.TYPE_STRING, description="Exported cart JSON")}
    )
)
@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cart_import(request):
    service = _cart_service(request)
    payload = request.data.get('data')
    if payload is None:
        return Response({'error': 'data is required'}, status=status.HTTP_400_BAD_REQUEST)
    cart, skipped = service.import_cart(payload, allow_manual_discount=_may_discount(request, service.cafe))
    return _cart_response(service, cart, skipped=skipped)
