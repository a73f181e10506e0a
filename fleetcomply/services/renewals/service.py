from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.core.config import get_settings
from fleetcomply.core.errors import ResourceNotFoundError
from fleetcomply.domain.models import RenewalItem
from fleetcomply.persistence.repos import renewals as renewals_repo
from fleetcomply.services.authz.gateway import Identity, authorize
from fleetcomply.services.authz.ownership import ownership_stamp
from fleetcomply.services.renewals.status import RenewalDates, derive_status, local_today
from fleetcomply.services.subscriptions import require_active_subscription


logger = logging.getLogger(__name__)

# Fields a caller may set; ownership and status are always computed here.
EDITABLE_FIELDS = frozenset(
    {
        "type",
        "item",
        "description",
        "provider_or_issuer",
        "notes",
        "start_date",
        "expiry_or_due_date",
        "reminder_set",
        "reminder_date",
    }
)
DATE_FIELDS = frozenset({"start_date", "expiry_or_due_date", "reminder_set", "reminder_date"})
REQUIRED_FIELDS = frozenset({"type", "item", "reminder_set"})


def _editable(values: dict[str, Any]) -> dict[str, Any]:
    # Explicit nulls clear optional fields but never the required ones.
    return {
        key: value
        for key, value in values.items()
        if key in EDITABLE_FIELDS and not (value is None and key in REQUIRED_FIELDS)
    }


def _date_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if key in DATE_FIELDS}


def _today(now: datetime | None) -> Any:
    return local_today(get_settings().reconcile_timezone, now or datetime.now(timezone.utc))


async def _load_owned(
    session: AsyncSession,
    *,
    caller: Identity,
    renewal_id: str,
    target_stand_alone_id: str | None,
) -> RenewalItem:
    renewal = await renewals_repo.get_renewal(session, renewal_id)
    if renewal is None:
        # Still run the caller checks so the logged reason reflects a bad delegate first.
        await authorize(session, caller=caller, target_stand_alone_id=target_stand_alone_id)
        raise ResourceNotFoundError("Renewal not found")
    await authorize(
        session, caller=caller, target_stand_alone_id=target_stand_alone_id, resource=renewal
    )
    return renewal


async def create_renewal(
    session: AsyncSession,
    *,
    caller: Identity,
    values: dict[str, Any],
    target_stand_alone_id: str | None = None,
    now: datetime | None = None,
) -> RenewalItem:
    effective_id = await authorize(
        session, caller=caller, target_stand_alone_id=target_stand_alone_id
    )
    await require_active_subscription(session, caller.user_id, now=now)
    fields = _editable(values)
    status = derive_status(RenewalDates(**_date_fields(fields)), _today(now))
    renewal = RenewalItem(
        id=uuid4().hex,
        status=status.value,
        **fields,
        **ownership_stamp(caller_id=caller.user_id, effective_id=effective_id),
    )
    await renewals_repo.add_renewal(session, renewal)
    await session.commit()
    await session.refresh(renewal)
    logger.info(
        "renewal_created renewal_id=%s created_by=%s stand_alone_id=%s status=%s",
        renewal.id,
        renewal.created_by,
        renewal.stand_alone_id,
        renewal.status,
    )
    return renewal


async def get_renewal(
    session: AsyncSession,
    *,
    caller: Identity,
    renewal_id: str,
    target_stand_alone_id: str | None = None,
) -> RenewalItem:
    return await _load_owned(
        session, caller=caller, renewal_id=renewal_id, target_stand_alone_id=target_stand_alone_id
    )


async def list_renewals(
    session: AsyncSession,
    *,
    caller: Identity,
    target_stand_alone_id: str | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[RenewalItem], int]:
    effective_id = await authorize(
        session, caller=caller, target_stand_alone_id=target_stand_alone_id
    )
    return await renewals_repo.list_renewals(
        session, owner_id=effective_id, search=search, offset=offset, limit=limit
    )


async def update_renewal(
    session: AsyncSession,
    *,
    caller: Identity,
    renewal_id: str,
    changes: dict[str, Any],
    target_stand_alone_id: str | None = None,
    now: datetime | None = None,
) -> RenewalItem:
    """Apply ``changes`` and recompute status from the merged date fields."""
    renewal = await _load_owned(
        session, caller=caller, renewal_id=renewal_id, target_stand_alone_id=target_stand_alone_id
    )
    await require_active_subscription(session, caller.user_id, now=now)
    fields = _editable(changes)
    merged = replace(RenewalDates.from_row(renewal), **_date_fields(fields))
    # Status is recomputed on every write so it never lags the stored dates.
    fields["status"] = derive_status(merged, _today(now)).value
    await renewals_repo.update_renewal(session, renewal, fields)
    await session.commit()
    await session.refresh(renewal)
    logger.info("renewal_updated renewal_id=%s status=%s", renewal.id, renewal.status)
    return renewal


async def delete_renewal(
    session: AsyncSession,
    *,
    caller: Identity,
    renewal_id: str,
    target_stand_alone_id: str | None = None,
    now: datetime | None = None,
) -> None:
    renewal = await _load_owned(
        session, caller=caller, renewal_id=renewal_id, target_stand_alone_id=target_stand_alone_id
    )
    await require_active_subscription(session, caller.user_id, now=now)
    await renewals_repo.delete_renewal(session, renewal.id)
    await session.commit()
    logger.info("renewal_deleted renewal_id=%s", renewal_id)
