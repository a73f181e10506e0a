from __future__ import annotations

from typing import Any

from fleetcomply.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    403: _response(
        "Subscription expired or role forbidden",
        code="SUBSCRIPTION_EXPIRED",
        message="Your subscription has expired. Please renew to continue.",
    ),
    # Every ownership or delegation denial renders exactly like a missing record.
    404: _response("Not found", code="NOT_FOUND", message="Resource not found or access denied"),
    409: _response(
        "Conflict",
        code="CLIENT_LIMIT_REACHED",
        message="Client limit reached. Maximum: 4. Current: 4",
        details={"capacity": 4, "current": 4},
    ),
    422: _response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}
