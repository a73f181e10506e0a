from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleetcomply.apps.api.response import error_response, is_versioned_request
from fleetcomply.core.errors import (
    AlreadyAssignedError,
    AlreadyPresentError,
    AuthorizationError,
    CapacityExceededError,
    DelegationError,
    EntryNotFoundError,
    InvalidTransitionError,
    NotATransportManagerError,
    RosterConflictError,
    SubscriptionAlreadyActiveError,
    SubscriptionError,
    SubscriptionExpiredError,
    TrialAlreadyUsedError,
)
from fleetcomply.persistence.guards import OwnerPredicateError


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

# Ordered most-specific first; the first isinstance match wins.
_DELEGATION_ERRORS: tuple[tuple[type[DelegationError], int, str], ...] = (
    (CapacityExceededError, 409, "CLIENT_LIMIT_REACHED"),
    (AlreadyPresentError, 409, "CLIENT_ALREADY_PRESENT"),
    (AlreadyAssignedError, 409, "CLIENT_ALREADY_ASSIGNED"),
    (InvalidTransitionError, 409, "INVALID_TRANSITION"),
    (RosterConflictError, 409, "ROSTER_CONFLICT"),
    (EntryNotFoundError, 404, "CLIENT_NOT_FOUND"),
    (NotATransportManagerError, 404, "CLIENT_NOT_FOUND"),
)

_SUBSCRIPTION_ERRORS: tuple[tuple[type[SubscriptionError], int, str], ...] = (
    (SubscriptionExpiredError, 403, "SUBSCRIPTION_EXPIRED"),
    (SubscriptionAlreadyActiveError, 409, "SUBSCRIPTION_ACTIVE"),
    (TrialAlreadyUsedError, 409, "TRIAL_ALREADY_USED"),
)

ACCESS_DENIED_MESSAGE = "Resource not found or access denied"


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from FastAPI HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if not is_versioned_request(request):
        return JSONResponse(content={"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def authorization_exception_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    # One body for every denial; the subclass is already in the gateway logs.
    payload = error_response(request=request, code="NOT_FOUND", message=ACCESS_DENIED_MESSAGE)
    return JSONResponse(content=payload, status_code=404)


async def delegation_exception_handler(request: Request, exc: DelegationError) -> JSONResponse:
    status_code, code = 409, "CONFLICT"
    for error_type, mapped_status, mapped_code in _DELEGATION_ERRORS:
        if isinstance(exc, error_type):
            status_code, code = mapped_status, mapped_code
            break
    details: dict[str, Any] | None = None
    if isinstance(exc, CapacityExceededError):
        details = {"capacity": exc.capacity, "current": exc.current}
    payload = error_response(request=request, code=code, message=str(exc), details=details)
    return JSONResponse(content=payload, status_code=status_code)


async def subscription_exception_handler(request: Request, exc: SubscriptionError) -> JSONResponse:
    status_code, code = 403, "SUBSCRIPTION_EXPIRED"
    for error_type, mapped_status, mapped_code in _SUBSCRIPTION_ERRORS:
        if isinstance(exc, error_type):
            status_code, code = mapped_status, mapped_code
            break
    payload = error_response(request=request, code=code, message=str(exc))
    return JSONResponse(content=payload, status_code=status_code)


async def owner_predicate_exception_handler(request: Request, exc: OwnerPredicateError) -> JSONResponse:
    # A list query without an owner is a server bug, never a client error.
    logger.error("owner_predicate_missing path=%s", request.url.path)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Shield clients from raw database errors.
    logger.exception("database_error path=%s", request.url.path)
    payload = error_response(request=request, code="DATABASE_ERROR", message="Database error")
    return JSONResponse(content=payload, status_code=500)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled_error path=%s", request.url.path)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
