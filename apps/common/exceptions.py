import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class DomainError(APIException):
    """Base for errors raised by the order/payment services.

    ``fields`` carries structured context (per-field messages, expected vs.
    actual amounts) and is merged into the error envelope as-is.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "error"

    def __init__(self, detail=None, code=None, fields=None):
        super().__init__(detail, code)
        self.fields = fields or {}


class DomainValidationError(DomainError):
    default_detail = "Invalid input."
    default_code = "invalid"


class InvalidDepositRateError(DomainValidationError):
    default_detail = "Deposit rate must be one of 30, 50 or 100."
    default_code = "invalid_deposit_rate"


class AmountMismatchError(DomainValidationError):
    default_detail = "Amount Mismatch."
    default_code = "amount_mismatch"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class OrderNotFoundError(NotFoundError):
    default_detail = "Order not found."


class VerificationNotFoundError(NotFoundError):
    default_detail = "Payment verification not found."


class StateConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "state_conflict"


class PaymentIncompleteError(StateConflictError):
    default_detail = "Order cannot be completed while it still has a balance."
    default_code = "payment_incomplete"


class PersistenceError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to process request."
    default_code = "persistence_error"


class ServiceUnavailableError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable. Please retry."
    default_code = "service_unavailable"


def _first_message(value):
    if isinstance(value, (list, tuple)):
        return _first_message(value[0]) if value else None
    if isinstance(value, dict):
        for item in value.values():
            message = _first_message(item)
            if message:
                return message
        return None
    return str(value)


def api_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.exception(
            "Database failure while handling request",
            extra={"view": view.__class__.__name__ if view else None},
        )
        exc = PersistenceError()

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        fields = {k: v for k, v in response.data.items() if k != "detail"}
        detail = response.data.get("detail") or _first_message(fields) or "Request failed"
    elif isinstance(response.data, list):
        detail = _first_message(response.data) or "Request failed"
        fields = {}
    else:
        detail = "Request failed"
        fields = {}

    fields.update(getattr(exc, "fields", {}))

    code = getattr(getattr(exc, "detail", None), "code", None) or getattr(exc, "default_code", "error")
    response.data = {
        "success": False,
        "code": code,
        "message": str(detail),
        "fields": fields,
    }
    return response
