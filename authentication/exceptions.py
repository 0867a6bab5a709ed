# exceptions.py
from rest_framework.views import exception_handler
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework import status
from django.core.exceptions import ValidationError
from django.db import IntegrityError
import logging
from django.conf import settings

logger = logging.getLogger(__name__)


class TableTapError(APIException):
    """Base class for business rule violations raised by the service layer"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request violates a business rule.'
    default_code = 'business_rule_violation'


class InvalidStatusTransition(TableTapError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This status change is not allowed.'
    default_code = 'invalid_status_transition'


class InsufficientStock(TableTapError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Not enough stock.'
    default_code = 'insufficient_stock'


class InsufficientPoints(TableTapError):
    default_detail = 'Not enough loyalty points.'
    default_code = 'insufficient_points'


class PaymentError(TableTapError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = 'Payment could not be processed.'
    default_code = 'payment_error'


class RedemptionError(TableTapError):
    default_detail = 'Reward cannot be redeemed.'
    default_code = 'redemption_error'


class TimeTrackingError(TableTapError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Time sheet operation not allowed.'
    default_code = 'time_tracking_error'


class CartValidationError(TableTapError):
    """Carries a list of {field, message, code} problems"""
    default_detail = 'Cart validation failed.'
    default_code = 'cart_invalid'

    def __init__(self, errors, detail=None):
        self.errors = errors
        if detail is None:
            detail = errors[0]['message'] if errors else self.default_detail
        super().__init__(detail=detail, code=self.default_code)


def custom_exception_handler(exc, context):
    """
    Custom exception handler for the cafe API
    """
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        custom_response_data = {
            'error': True,
            'message': 'An error occurred',
            'details': response.data,
            'status_code': response.status_code
        }

        if isinstance(exc, TableTapError):
            custom_response_data['message'] = str(exc.detail)
            custom_response_data['code'] = exc.get_codes()
            if isinstance(exc, CartValidationError):
                custom_response_data['details'] = exc.errors
            logger.warning(f"Business rule violation ({exc.default_code}): {exc.detail}")
        elif response.status_code == 400:
            custom_response_data['message'] = 'Validation error'
        elif response.status_code == 401:
            custom_response_data['message'] = 'Authentication required'
        elif response.status_code == 403:
            custom_response_data['message'] = 'Permission denied'
        elif response.status_code == 404:
            custom_response_data['message'] = 'Resource not found'
        elif response.status_code == 500:
            custom_response_data['message'] = 'Internal server error'

        response.data = custom_response_data

    # Handle Django ValidationError
    elif isinstance(exc, ValidationError):
        logger.error(f"Validation Error: {exc}")
        response = Response({
            'error': True,
            'message': 'Validation error',
            'details': {'non_field_errors': exc.messages},
            'status_code': 400
        }, status=status.HTTP_400_BAD_REQUEST)

    # Handle Django IntegrityError
    elif isinstance(exc, IntegrityError):
        logger.error(f"Integrity Error: {exc}")
        response = Response({
            'error': True,
            'message': 'Database integrity error',
            'details': {'error': 'This operation violates database constraints'},
            'status_code': 400
        }, status=status.HTTP_400_BAD_REQUEST)

    # Handle unexpected errors
    else:
        logger.exception(f"Unexpected Error: {exc}")
        response = Response({
            'error': True,
            'message': 'An unexpected error occurred',
            'details': {'error': str(exc)} if settings.DEBUG else {},
            'status_code': 500
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return response
