import logging

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


logger = logging.getLogger("banks.api")


def _error_code(exc) -> str:
    codes = getattr(exc, "get_codes", None)
    if callable(codes):
        value = codes()
        if isinstance(value, str):
            return value
    return getattr(exc, "default_code", "error")


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    request = context.get("request")
    path = getattr(request, "path", "")

    if response is not None:
        if isinstance(response.data, dict):
            response.data.setdefault("code", _error_code(exc))
        else:
            response.data = {"detail": response.data, "code": _error_code(exc)}
        return response

    if isinstance(exc, DatabaseError):
        logger.error("Bank registry unavailable while serving %s: %s", path, exc)
        return Response(
            {"detail": "Bank registry is unavailable.", "code": "registry_unavailable"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.exception("Unhandled error while serving %s", path)
    if settings.DEBUG:
        return None
    return Response(
        {"detail": "Internal server error.", "code": "server_error"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
