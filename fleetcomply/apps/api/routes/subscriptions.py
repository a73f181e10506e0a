from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.apps.api.deps import Principal, get_current_principal, get_db
from fleetcomply.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetcomply.apps.api.response import SuccessEnvelope, success_response
from fleetcomply.services import subscriptions as subscriptions_service


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"], responses=DEFAULT_ERROR_RESPONSES)


class RemainingResponse(BaseModel):
    days_remaining: int | None
    expired: bool
    is_lifetime: bool
    status: str | None = None
    end_date: datetime | None = None


class TrialResponse(BaseModel):
    id: str
    status: str
    start_date: datetime | None
    end_date: datetime | None


@router.get("/remaining", response_model=SuccessEnvelope[RemainingResponse])
async def remaining(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    state = await subscriptions_service.remaining(db, principal.user_id)
    record = state.record
    data = RemainingResponse(
        days_remaining=state.days_remaining,
        expired=state.expired,
        is_lifetime=state.is_lifetime,
        status=record.status if record is not None else None,
        end_date=record.end_date if record is not None else None,
    )
    return success_response(request=request, data=data)


@router.post("/trial", status_code=201, response_model=SuccessEnvelope[TrialResponse])
async def start_trial(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    trial = await subscriptions_service.start_trial(db, principal.user_id)
    data = TrialResponse(
        id=trial.id,
        status=trial.status,
        start_date=trial.start_date,
        end_date=trial.end_date,
    )
    return success_response(request=request, data=data)
