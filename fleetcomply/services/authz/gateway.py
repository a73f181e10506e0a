from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.core.errors import (
    AccessDeniedError,
    AuthorizationError,
    DelegateNotApprovedError,
    ImpersonationNotAllowedError,
    RoleNotPermittedError,
    StandAloneIdRequiredError,
)
from fleetcomply.domain.state import Role
from fleetcomply.persistence.guards import owner_predicate
from fleetcomply.services import delegation
from fleetcomply.services.authz.ownership import resolve


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


def _deny(error: AuthorizationError, caller: Identity, target: str | None) -> AuthorizationError:
    # The reason stays in logs; the HTTP boundary renders every denial identically.
    logger.info(
        "authz_denied reason=%s user_id=%s role=%s target=%s",
        error.reason,
        caller.user_id,
        caller.role,
        target,
    )
    return error


async def resolve_effective_id(
    session: AsyncSession,
    *,
    caller: Identity,
    target_stand_alone_id: str | None = None,
    allow_admin_bypass: bool = False,
) -> str:
    """Decide whose records the caller is acting on.

    Standalone users act only as themselves and may not name a target.
    Transport managers must name an approved client. Platform admins are
    admitted only where the calling route opts in with ``allow_admin_bypass``;
    they act as the target when one is given, otherwise as themselves.
    """
    target = target_stand_alone_id or None
    role = caller.role
    if role == Role.STANDALONE_USER.value:
        if target is not None:
            raise _deny(
                ImpersonationNotAllowedError("Standalone users cannot act for another account"),
                caller,
                target,
            )
        return caller.user_id
    if role == Role.TRANSPORT_MANAGER.value:
        if target is None:
            raise _deny(StandAloneIdRequiredError("stand_alone_id is required"), caller, target)
        if not await delegation.is_approved_delegate(session, caller.user_id, target):
            raise _deny(DelegateNotApprovedError("Client is not an approved delegate"), caller, target)
        return target
    if role == Role.PLATFORM_ADMIN.value and allow_admin_bypass:
        return target or caller.user_id
    raise _deny(RoleNotPermittedError("Role cannot access owned resources"), caller, target)


async def authorize(
    session: AsyncSession,
    *,
    caller: Identity,
    target_stand_alone_id: str | None = None,
    resource: Any | None = None,
    allow_admin_bypass: bool = False,
) -> str:
    """Return the effective identity for the call or raise an AuthorizationError.

    When ``resource`` is given the effective identity must own it. An admin
    admitted through ``allow_admin_bypass`` skips the ownership check; the
    resolver itself never knows about roles.
    """
    effective_id = await resolve_effective_id(
        session,
        caller=caller,
        target_stand_alone_id=target_stand_alone_id,
        allow_admin_bypass=allow_admin_bypass,
    )
    if resource is None:
        return effective_id
    if allow_admin_bypass and caller.role == Role.PLATFORM_ADMIN.value:
        return effective_id
    if not resolve(resource, effective_id):
        raise _deny(AccessDeniedError("Resource not owned by effective identity"), caller, effective_id)
    return effective_id


def owned_by(model, effective_id: str) -> object:
    # Set-level twin of resolve(); list endpoints must filter through this.
    return owner_predicate(model, effective_id)
