from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.domain.models import RenewalItem
from fleetcomply.persistence.guards import owner_predicate


_SEARCH_FIELDS = ("type", "item", "description", "provider_or_issuer", "notes")
# Columns the status deriver needs; reconciliation never loads anything else.
STATUS_PROJECTION = (
    RenewalItem.id,
    RenewalItem.start_date,
    RenewalItem.expiry_or_due_date,
    RenewalItem.reminder_set,
    RenewalItem.reminder_date,
    RenewalItem.status,
)


async def get_renewal(session: AsyncSession, renewal_id: str) -> RenewalItem | None:
    result = await session.execute(select(RenewalItem).where(RenewalItem.id == renewal_id))
    return result.scalar_one_or_none()


async def add_renewal(session: AsyncSession, renewal: RenewalItem) -> RenewalItem:
    session.add(renewal)
    await session.flush()
    return renewal


async def list_renewals(
    session: AsyncSession,
    *,
    owner_id: str,
    search: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[RenewalItem], int]:
    # The owner predicate is mandatory; callers pass the gateway's effective identity.
    filters: list[Any] = [owner_predicate(RenewalItem, owner_id)]
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        filters.append(
            or_(*(func.lower(getattr(RenewalItem, field)).like(pattern) for field in _SEARCH_FIELDS))
        )
    total = (
        await session.execute(select(func.count()).select_from(RenewalItem).where(*filters))
    ).scalar_one()
    result = await session.execute(
        select(RenewalItem)
        .where(*filters)
        .order_by(RenewalItem.created_at.desc(), RenewalItem.id)
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total)


async def update_renewal(session: AsyncSession, renewal: RenewalItem, values: dict[str, Any]) -> RenewalItem:
    for key, value in values.items():
        setattr(renewal, key, value)
    await session.flush()
    return renewal


async def delete_renewal(session: AsyncSession, renewal_id: str) -> int:
    result = await session.execute(delete(RenewalItem).where(RenewalItem.id == renewal_id))
    return result.rowcount or 0


async def list_status_projection(
    session: AsyncSession,
    *,
    after_id: str | None,
    limit: int,
) -> list[Any]:
    # Keyset pagination keeps each page bounded regardless of table size.
    stmt = select(*STATUS_PROJECTION).order_by(RenewalItem.id).limit(limit)
    if after_id is not None:
        stmt = stmt.where(RenewalItem.id > after_id)
    result = await session.execute(stmt)
    return list(result.all())


async def set_status(
    session: AsyncSession,
    renewal_id: str,
    *,
    status: str,
    expected_status: str | None,
) -> bool:
    # Only overwrite the value the caller observed so a concurrent service write wins.
    stmt = update(RenewalItem).where(RenewalItem.id == renewal_id).values(status=status)
    if expected_status is None:
        stmt = stmt.where(RenewalItem.status.is_(None))
    else:
        stmt = stmt.where(RenewalItem.status == expected_status)
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    return (result.rowcount or 0) == 1
