"""
DRF exception handler for the stock domain errors.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.activity.models import ImmutableRecordError
from apps.inventory.exceptions import StockError

logger = logging.getLogger("apps")


def stock_exception_handler(exc, context):
    if isinstance(exc, StockError):
        body = {"error": exc.code, "detail": exc.message}
        body.update(exc.context)
        if exc.retryable:
            body["retryable"] = True
        return Response(body, status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, "message_dict"):
            errors = exc.message_dict
        else:
            errors = {"detail": exc.messages}
        body = {"error": "validation_error", "detail": "Invalid input.", "errors": errors}
        return Response(body, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, ImmutableRecordError):
        logger.error("Attempt to modify an append-only record: %s", exc)
        return Response(
            {"error": "immutable_record", "detail": str(exc)},
            status=status.HTTP_405_METHOD_NOT_ALLOWED,
        )

    return exception_handler(exc, context)
