# hc_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.db import InterfaceError, OperationalError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope for the scheduling API.
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
        }
    }


class ConflictError(APIException):
    """
    409 Conflict that still flows through the global exception handler.
    Use when business rules block an action.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


class InvalidTransition(ConflictError):
    """
    Requested state change is not reachable from the current state.
    The entity is left unchanged.
    """
    default_detail = "Transition is not allowed from the current state."
    default_code = "invalid_transition"

    def __init__(self, detail=None, *, current_status: str | None = None, action: str | None = None):
        super().__init__(detail=detail)
        self.current_status = current_status
        self.action = action


class ConcurrentModification(ConflictError):
    """
    Optimistic concurrency conflict: the row changed since the caller read it.
    Caller must reload and retry.
    """
    default_detail = "The record was modified by someone else. Reload and retry."
    default_code = "concurrent_modification"


class StorageUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage is temporarily unavailable. Retry the request."
    default_code = "storage_unavailable"


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    from hc_core.authorizations.services import LedgerError

    request = context.get("request")

    if isinstance(exc, LedgerError):
        return Response(
            build_error_envelope(
                request=request,
                code=exc.code,
                message=exc.message,
                details={
                    "authorization_id": str(exc.authorization_id),
                    "requested_units": exc.requested,
                    "available_units": exc.available,
                },
            ),
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, (OperationalError, InterfaceError)):
        logger.error("Database unavailable while handling request: %s", exc)
        exc = StorageUnavailable()

    response = drf_exception_handler(exc, context)

    # Truly unhandled error
    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)

    data = response.data

    # Message + details rules:
    # 1) If {"detail": "..."} only -> message=detail, details=None
    # 2) If {"detail": "...", ...} -> message=detail, details={...without detail}
    # 3) Otherwise -> message="Request failed.", details=data
    message = "Request failed."
    details = data

    if isinstance(data, dict) and "detail" in data:
        maybe_msg = data.get("detail")
        if isinstance(maybe_msg, list) and len(maybe_msg) == 1:
            maybe_msg = maybe_msg[0]
        message = str(maybe_msg)
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    if isinstance(exc, InvalidTransition):
        details = {"current_status": exc.current_status, "action": exc.action}

    return Response(
        build_error_envelope(
            request=request,
            code=code,
            message=message,
            details=details,
        ),
        status=http_status,
        headers=response.headers,
    )
