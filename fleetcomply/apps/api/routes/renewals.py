from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.apps.api.deps import Principal, get_current_principal, get_db
from fleetcomply.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetcomply.apps.api.response import Page, SuccessEnvelope, success_response
from fleetcomply.domain.state import RenewalStatus
from fleetcomply.services.renewals import service as renewals_service


router = APIRouter(prefix="/renewals", tags=["renewals"], responses=DEFAULT_ERROR_RESPONSES)


class RenewalResponse(BaseModel):
    id: str
    type: str
    item: str
    description: str | None = None
    provider_or_issuer: str | None = None
    notes: str | None = None
    start_date: date | None = None
    expiry_or_due_date: date | None = None
    reminder_set: bool = False
    reminder_date: date | None = None
    status: RenewalStatus
    created_by: str
    stand_alone_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class RenewalCreateRequest(BaseModel):
    type: str = Field(min_length=1)
    item: str = Field(min_length=1)
    description: str | None = None
    provider_or_issuer: str | None = None
    notes: str | None = None
    start_date: date | None = None
    expiry_or_due_date: date | None = None
    reminder_set: bool = False
    reminder_date: date | None = None

    # Ownership and status are server-computed; reject attempts to send them.
    model_config = {"extra": "forbid"}


class RenewalPatchRequest(BaseModel):
    type: str | None = Field(default=None, min_length=1)
    item: str | None = Field(default=None, min_length=1)
    description: str | None = None
    provider_or_issuer: str | None = None
    notes: str | None = None
    start_date: date | None = None
    expiry_or_due_date: date | None = None
    reminder_set: bool | None = None
    reminder_date: date | None = None

    model_config = {"extra": "forbid"}


@router.post("", status_code=201, response_model=SuccessEnvelope[RenewalResponse])
async def create_renewal(
    request: Request,
    payload: RenewalCreateRequest,
    stand_alone_id: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    renewal = await renewals_service.create_renewal(
        db,
        caller=principal.identity,
        values=payload.model_dump(),
        target_stand_alone_id=stand_alone_id,
    )
    return success_response(request=request, data=RenewalResponse.model_validate(renewal))


@router.get("", response_model=SuccessEnvelope[Page[RenewalResponse]])
async def list_renewals(
    request: Request,
    stand_alone_id: str | None = Query(default=None, min_length=1),
    search: str | None = Query(default=None, max_length=200),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows, total = await renewals_service.list_renewals(
        db,
        caller=principal.identity,
        target_stand_alone_id=stand_alone_id,
        search=search,
        offset=offset,
        limit=limit,
    )
    page = Page[RenewalResponse](
        items=[RenewalResponse.model_validate(row) for row in rows],
        total=total,
        offset=offset,
        limit=limit,
    )
    return success_response(request=request, data=page)


@router.get("/{renewal_id}", response_model=SuccessEnvelope[RenewalResponse])
async def get_renewal(
    renewal_id: str,
    request: Request,
    stand_alone_id: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    renewal = await renewals_service.get_renewal(
        db, caller=principal.identity, renewal_id=renewal_id, target_stand_alone_id=stand_alone_id
    )
    return success_response(request=request, data=RenewalResponse.model_validate(renewal))


@router.patch("/{renewal_id}", response_model=SuccessEnvelope[RenewalResponse])
async def update_renewal(
    renewal_id: str,
    request: Request,
    payload: RenewalPatchRequest,
    stand_alone_id: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Only fields the caller actually sent are applied; explicit nulls clear dates.
    renewal = await renewals_service.update_renewal(
        db,
        caller=principal.identity,
        renewal_id=renewal_id,
        changes=payload.model_dump(exclude_unset=True),
        target_stand_alone_id=stand_alone_id,
    )
    return success_response(request=request, data=RenewalResponse.model_validate(renewal))


@router.delete("/{renewal_id}", response_model=SuccessEnvelope[dict])
async def delete_renewal(
    renewal_id: str,
    request: Request,
    stand_alone_id: str | None = Query(default=None, min_length=1),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await renewals_service.delete_renewal(
        db, caller=principal.identity, renewal_id=renewal_id, target_stand_alone_id=stand_alone_id
    )
    return success_response(request=request, data={"id": renewal_id, "deleted": True})
