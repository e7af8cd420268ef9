"""DRF exception handler that renders engine errors consistently."""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.errors import EngineError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, EngineError):
        return Response(exc.as_payload(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get("view")
    request = context.get("request")
    logger.exception(
        "Unhandled API error",
        extra={
            "view": view.__class__.__name__ if view is not None else "",
            "path": getattr(request, "path", ""),
            "user_id": getattr(getattr(request, "user", None), "id", None),
        },
    )
    return Response(
        {"detail": "Internal server error.", "code": "server_error"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
