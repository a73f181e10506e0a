from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from fleetcomply.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetcomply.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    reconciler_running: bool = False
    last_reconcile_updated: int | None = None


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    # Report the in-process reconciler state alongside liveness.
    reconciler = getattr(request.app.state, "reconciler", None)
    last = getattr(reconciler, "last_result", None)
    payload = HealthResponse(
        status="ok",
        reconciler_running=bool(getattr(reconciler, "running", False)),
        last_reconcile_updated=last.updated_count if last is not None else None,
    )
    return success_response(request=request, data=payload)
