from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.apps.api.deps import Principal, get_db, require_roles
from fleetcomply.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from fleetcomply.apps.api.response import SuccessEnvelope, success_response
from fleetcomply.core.errors import NotATransportManagerError
from fleetcomply.domain.state import DelegationStatus, Role
from fleetcomply.persistence.repos import users as users_repo
from fleetcomply.services import delegation


router = APIRouter(prefix="/clients", tags=["clients"], responses=DEFAULT_ERROR_RESPONSES)

_manager_only = require_roles(Role.TRANSPORT_MANAGER)
_client_only = require_roles(Role.STANDALONE_USER)


class RosterEntryResponse(BaseModel):
    manager_id: str
    client_id: str
    status: DelegationStatus
    requested_at: datetime | None = None
    approved_at: datetime | None = None


class ClientLimitResponse(BaseModel):
    capacity: int
    current: int
    remaining: int


class ManagerResponse(BaseModel):
    id: str
    full_name: str | None = None
    email: str | None = None


class JoinRequest(BaseModel):
    manager_id: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class EnrollRequest(BaseModel):
    client_id: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class DecisionRequest(BaseModel):
    approve: bool

    model_config = {"extra": "forbid"}


class CapacityRequest(BaseModel):
    capacity: int = Field(ge=0)

    model_config = {"extra": "forbid"}


def _entry(entry) -> RosterEntryResponse:
    return RosterEntryResponse(
        manager_id=entry.manager_id,
        client_id=entry.client_id,
        status=DelegationStatus(entry.status),
        requested_at=entry.requested_at,
        approved_at=entry.approved_at,
    )


# Client (standalone user) side.


@router.get("/managers", response_model=SuccessEnvelope[list[ManagerResponse]])
async def list_managers(
    request: Request,
    principal: Principal = Depends(_client_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    managers = await users_repo.list_active_by_role(db, Role.TRANSPORT_MANAGER.value)
    data = [ManagerResponse(id=m.id, full_name=m.full_name, email=m.email) for m in managers]
    return success_response(request=request, data=data)


@router.post("/join-requests", status_code=201, response_model=SuccessEnvelope[RosterEntryResponse])
async def request_join(
    request: Request,
    payload: JoinRequest,
    principal: Principal = Depends(_client_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.request_join(db, client_id=principal.user_id, manager_id=payload.manager_id)
    return success_response(request=request, data=_entry(entry))


@router.get("/me/manager", response_model=SuccessEnvelope[RosterEntryResponse | None])
async def my_manager(
    request: Request,
    principal: Principal = Depends(_client_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.find_manager_for_client(db, principal.user_id)
    return success_response(request=request, data=_entry(entry) if entry is not None else None)


@router.post("/me/leave", response_model=SuccessEnvelope[RosterEntryResponse])
async def request_leave(
    request: Request,
    principal: Principal = Depends(_client_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.request_leave(db, client_id=principal.user_id)
    return success_response(request=request, data=_entry(entry))


@router.post("/me/accept-removal", response_model=SuccessEnvelope[RosterEntryResponse])
async def accept_removal(
    request: Request,
    principal: Principal = Depends(_client_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.accept_remove(db, client_id=principal.user_id)
    return success_response(request=request, data=_entry(entry))


# Manager side.


@router.get("", response_model=SuccessEnvelope[list[RosterEntryResponse]])
async def list_clients(
    request: Request,
    status: list[DelegationStatus] | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entries = await delegation.list_clients(
        db, principal.user_id, statuses=status, offset=offset, limit=limit
    )
    return success_response(request=request, data=[_entry(entry) for entry in entries])


@router.get("/pending", response_model=SuccessEnvelope[list[RosterEntryResponse]])
async def pending_requests(
    request: Request,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entries = await delegation.pending_requests(db, principal.user_id)
    return success_response(request=request, data=[_entry(entry) for entry in entries])


@router.get("/leave-requests", response_model=SuccessEnvelope[list[RosterEntryResponse]])
async def leave_requests(
    request: Request,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entries = await delegation.leave_requests(db, principal.user_id)
    return success_response(request=request, data=[_entry(entry) for entry in entries])


@router.get("/limit", response_model=SuccessEnvelope[ClientLimitResponse])
async def client_limit(
    request: Request,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    limit_status = await delegation.client_limit_status(db, principal.user_id)
    data = ClientLimitResponse(
        capacity=limit_status.capacity,
        current=limit_status.current,
        remaining=limit_status.remaining,
    )
    return success_response(request=request, data=data)


@router.post("/enroll", status_code=201, response_model=SuccessEnvelope[RosterEntryResponse])
async def enroll_client(
    request: Request,
    payload: EnrollRequest,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.enroll_client(db, manager_id=principal.user_id, client_id=payload.client_id)
    return success_response(request=request, data=_entry(entry))


@router.post("/{client_id}/decision", response_model=SuccessEnvelope[RosterEntryResponse])
async def decide_join_request(
    client_id: str,
    request: Request,
    payload: DecisionRequest,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.decide_join_request(
        db, manager_id=principal.user_id, client_id=client_id, approve=payload.approve
    )
    return success_response(request=request, data=_entry(entry))


@router.post("/{client_id}/accept-leave", response_model=SuccessEnvelope[RosterEntryResponse])
async def accept_leave(
    client_id: str,
    request: Request,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.accept_leave(db, manager_id=principal.user_id, client_id=client_id)
    return success_response(request=request, data=_entry(entry))


@router.post("/{client_id}/remove", response_model=SuccessEnvelope[RosterEntryResponse])
async def request_remove(
    client_id: str,
    request: Request,
    principal: Principal = Depends(_manager_only),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entry = await delegation.request_remove(db, manager_id=principal.user_id, client_id=client_id)
    return success_response(request=request, data=_entry(entry))


# Platform admin.


@router.put("/rosters/{manager_id}/capacity", response_model=SuccessEnvelope[ClientLimitResponse])
async def set_capacity(
    manager_id: str,
    request: Request,
    payload: CapacityRequest,
    principal: Principal = Depends(require_roles(Role.PLATFORM_ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    manager = await users_repo.get_user(db, manager_id)
    if manager is None or manager.role != Role.TRANSPORT_MANAGER.value:
        raise NotATransportManagerError("Transport Manager not found")
    await delegation.set_capacity(db, manager_id=manager_id, capacity=payload.capacity)
    limit_status = await delegation.client_limit_status(db, manager_id)
    data = ClientLimitResponse(
        capacity=limit_status.capacity,
        current=limit_status.current,
        remaining=limit_status.remaining,
    )
    return success_response(request=request, data=data)
