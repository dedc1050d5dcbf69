import logging

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ChatError(APIException):
    """Base for errors raised by the chat core. DRF renders them as {"detail": ...}."""


class NotFound(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class Unauthorized(ChatError):
    # not a participant / member, or not an admin for a privileged operation
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You don't have access to this conversation."
    default_code = "unauthorized"


class Conflict(ChatError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists."
    default_code = "conflict"


class ValidationFailed(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."
    default_code = "invalid"


class StoreFailure(ChatError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "A storage error occurred."
    default_code = "store_failure"


def api_exception_handler(exc, context):
    """
    DRF exception handler: database errors become StoreFailure. The
    underlying message is only exposed with DEBUG on.
    """
    if isinstance(exc, DatabaseError):
        view = context.get("view")
        logger.exception("Store failure in %s", view.__class__.__name__ if view else "unknown view")
        exc = StoreFailure(detail=str(exc) if settings.DEBUG else None)
    return exception_handler(exc, context)
