from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.domain.models import ClientRoster, ClientRosterEntry


def _status_values(statuses: Iterable[object]) -> list[str]:
    return [getattr(status, "value", status) for status in statuses]


async def get_roster(session: AsyncSession, manager_id: str) -> ClientRoster | None:
    # Always refresh from the database: the version seen here is the CAS baseline.
    result = await session.execute(
        select(ClientRoster)
        .where(ClientRoster.manager_id == manager_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_roster(session: AsyncSession, manager_id: str, *, capacity: int) -> ClientRoster:
    # Flush immediately so a concurrent creator surfaces as an IntegrityError here.
    roster = ClientRoster(manager_id=manager_id, capacity=capacity, version=0)
    session.add(roster)
    await session.flush()
    return roster


async def list_entries(
    session: AsyncSession,
    manager_id: str,
    *,
    statuses: Iterable[object] | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[ClientRosterEntry]:
    stmt = (
        select(ClientRosterEntry)
        .where(ClientRosterEntry.manager_id == manager_id)
        .order_by(ClientRosterEntry.requested_at, ClientRosterEntry.id)
        .execution_options(populate_existing=True)
    )
    if statuses is not None:
        stmt = stmt.where(ClientRosterEntry.status.in_(_status_values(statuses)))
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_entries(
    session: AsyncSession,
    manager_id: str,
    *,
    statuses: Iterable[object],
) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(ClientRosterEntry)
        .where(
            ClientRosterEntry.manager_id == manager_id,
            ClientRosterEntry.status.in_(_status_values(statuses)),
        )
    )
    return int(result.scalar_one())


async def find_entry(
    session: AsyncSession,
    manager_id: str,
    client_id: str,
    *,
    statuses: Iterable[object],
) -> ClientRosterEntry | None:
    result = await session.execute(
        select(ClientRosterEntry)
        .where(
            ClientRosterEntry.manager_id == manager_id,
            ClientRosterEntry.client_id == client_id,
            ClientRosterEntry.status.in_(_status_values(statuses)),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_entry_for_client(
    session: AsyncSession,
    client_id: str,
    *,
    statuses: Iterable[object],
) -> ClientRosterEntry | None:
    # Look across every roster; a client holds at most one live entry.
    result = await session.execute(
        select(ClientRosterEntry)
        .where(
            ClientRosterEntry.client_id == client_id,
            ClientRosterEntry.status.in_(_status_values(statuses)),
        )
        .order_by(ClientRosterEntry.requested_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_roster_version(session: AsyncSession, manager_id: str, seen_version: int) -> bool:
    # Compare-and-swap: succeeds only if nobody else wrote the roster since it was read.
    result = await session.execute(
        update(ClientRoster)
        .where(ClientRoster.manager_id == manager_id, ClientRoster.version == seen_version)
        .values(version=ClientRoster.version + 1)
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) == 1
