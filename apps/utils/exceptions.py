from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework import exceptions as drf_exceptions
from django.http import Http404
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Stock not available').
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"

    def __init__(self, message, code=None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


class InvalidOrder(BusinessLogicException):
    """Malformed or empty cart, non-positive quantity, inconsistent total."""
    default_code = "validation_error"


class ResourceNotFound(InvalidOrder):
    """Referenced product or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class InsufficientStock(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    default_code = "insufficient_stock"

    def __init__(self, message, product_id=None, requested=None, available=None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(message)


class ConflictError(BusinessLogicException):
    """Concurrent modification or stale submission detected."""
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"


class StorageUnavailable(BusinessLogicException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "storage_unavailable"


def _first_message(data):
    if isinstance(data, dict):
        for value in data.values():
            return _first_message(value)
    if isinstance(data, list) and data:
        return _first_message(data[0])
    return str(data)


def custom_exception_handler(exc, context):
    # Handle domain errors before DRF sees them
    if isinstance(exc, BusinessLogicException):
        payload = {"error": exc.message, "code": exc.code}
        if isinstance(exc, InsufficientStock) and exc.product_id is not None:
            payload["details"] = {
                "product_id": exc.product_id,
                "requested": exc.requested,
                "available": exc.available,
            }
        return Response(payload, status=exc.status_code)

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if isinstance(exc, drf_exceptions.ValidationError):
        response.data = {
            "error": _first_message(response.data),
            "code": "validation_error",
            "details": response.data,
        }
    elif isinstance(exc, (Http404, drf_exceptions.NotFound)):
        response.data = {"error": "Not found.", "code": "not_found"}
    elif isinstance(exc, drf_exceptions.APIException):
        response.data = {
            "error": _first_message(response.data),
            "code": exc.default_code,
        }

    return response
