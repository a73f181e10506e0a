from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.core.config import get_settings
from fleetcomply.core.errors import (
    AlreadyAssignedError,
    AlreadyPresentError,
    CapacityExceededError,
    EntryNotFoundError,
    InvalidTransitionError,
    NotATransportManagerError,
    RosterConflictError,
)
from fleetcomply.domain.models import ClientRoster, ClientRosterEntry
from fleetcomply.domain.state import (
    CAPACITY_STATUSES,
    LIVE_STATUSES,
    DelegationStatus,
    Role,
)
from fleetcomply.persistence.repos import rosters as rosters_repo
from fleetcomply.persistence.repos import users as users_repo


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Delegation state machine; revoked has no outgoing edges.
ALLOWED_TRANSITIONS: dict[DelegationStatus, frozenset[DelegationStatus]] = {
    DelegationStatus.PENDING: frozenset({DelegationStatus.APPROVED, DelegationStatus.REVOKED}),
    DelegationStatus.APPROVED: frozenset(
        {DelegationStatus.LEAVE_REQUESTED, DelegationStatus.REMOVE_REQUESTED}
    ),
    DelegationStatus.LEAVE_REQUESTED: frozenset({DelegationStatus.REVOKED}),
    DelegationStatus.REMOVE_REQUESTED: frozenset({DelegationStatus.REVOKED}),
    DelegationStatus.REVOKED: frozenset(),
}


@dataclass(frozen=True)
class ClientLimitStatus:
    capacity: int
    current: int
    remaining: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: DelegationStatus | str, requested: DelegationStatus | str) -> bool:
    try:
        source = DelegationStatus(current)
        target = DelegationStatus(requested)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[source]


def apply_transition(
    entry: ClientRosterEntry,
    requested: DelegationStatus,
    *,
    now: datetime | None = None,
) -> ClientRosterEntry:
    # Mutate the entry in place after checking the edge exists.
    if not can_transition(entry.status, requested):
        raise InvalidTransitionError(
            current=getattr(entry.status, "value", entry.status), requested=requested.value
        )
    entry.status = requested.value
    if requested == DelegationStatus.APPROVED:
        entry.approved_at = now or _utc_now()
    return entry


def occupied_slots(entries: list[ClientRosterEntry]) -> int:
    return sum(1 for entry in entries if DelegationStatus(entry.status) in CAPACITY_STATUSES)


def _find(entries: list[ClientRosterEntry], client_id: str) -> ClientRosterEntry | None:
    return next((entry for entry in entries if entry.client_id == client_id), None)


async def _load_or_create_roster(session: AsyncSession, manager_id: str) -> ClientRoster:
    roster = await rosters_repo.get_roster(session, manager_id)
    if roster is not None:
        return roster
    capacity = max(0, int(get_settings().roster_default_capacity))
    return await rosters_repo.create_roster(session, manager_id, capacity=capacity)


async def _write_roster(
    session: AsyncSession,
    manager_id: str,
    mutate: Callable[[ClientRoster, list[ClientRosterEntry]], Awaitable[T]],
) -> T:
    """Run ``mutate`` against a fresh roster snapshot and commit it atomically.

    The roster version read at the start is claimed with a compare-and-swap
    after the mutation is flushed. Losing the swap means another writer got
    in between, so the transaction is rolled back and the whole read-check-
    write cycle runs again. Validation errors raised by ``mutate`` roll back
    without retrying.
    """
    attempts = max(1, int(get_settings().roster_update_max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            roster = await _load_or_create_roster(session, manager_id)
            seen_version = roster.version
            entries = await rosters_repo.list_entries(session, manager_id)
            result = await mutate(roster, entries)
            await session.flush()
            claimed = await rosters_repo.claim_roster_version(session, manager_id, seen_version)
        except IntegrityError:
            # Concurrent roster creation or duplicate pair insert; re-read and re-validate.
            await session.rollback()
            logger.warning("roster_write_integrity_conflict manager_id=%s attempt=%s", manager_id, attempt)
            continue
        except Exception:
            await session.rollback()
            raise
        if claimed:
            await session.commit()
            return result
        await session.rollback()
        logger.warning("roster_write_cas_lost manager_id=%s attempt=%s", manager_id, attempt)
    raise RosterConflictError("Roster is being modified concurrently; retry the request")


async def is_approved_delegate(session: AsyncSession, manager_id: str, client_id: str) -> bool:
    # Only an exact approved entry grants delegated access; pending never does.
    if not manager_id or not client_id:
        return False
    entry = await rosters_repo.find_entry(
        session, manager_id, client_id, statuses=[DelegationStatus.APPROVED]
    )
    return entry is not None


async def add_entry(
    session: AsyncSession,
    manager_id: str,
    client_id: str,
    *,
    approve: bool = False,
    now: datetime | None = None,
) -> ClientRosterEntry:
    """Add ``client_id`` to the manager's roster as pending (or approved).

    Fails with ``AlreadyPresentError`` when the client holds a non-revoked
    entry in this roster, ``AlreadyAssignedError`` when it holds a live entry
    in another roster, and ``CapacityExceededError`` when pending + approved
    entries already fill the roster. A revoked entry for the same client is
    reused so each client appears once per roster.
    """
    stamp = now or _utc_now()

    async def _mutate(roster: ClientRoster, entries: list[ClientRosterEntry]) -> ClientRosterEntry:
        existing = _find(entries, client_id)
        if existing is not None and existing.status != DelegationStatus.REVOKED.value:
            raise AlreadyPresentError("Client is already in this roster")
        await _ensure_unassigned(session, client_id, manager_id=manager_id)
        current = occupied_slots(entries)
        if current >= roster.capacity:
            raise CapacityExceededError(capacity=roster.capacity, current=current)
        status = DelegationStatus.APPROVED if approve else DelegationStatus.PENDING
        if existing is None:
            existing = ClientRosterEntry(manager_id=manager_id, client_id=client_id)
            session.add(existing)
        existing.status = status.value
        existing.requested_at = stamp
        existing.approved_at = stamp if approve else None
        return existing

    entry = await _write_roster(session, manager_id, _mutate)
    logger.info(
        "roster_entry_added manager_id=%s client_id=%s status=%s", manager_id, client_id, entry.status
    )
    return entry


async def transition(
    session: AsyncSession,
    manager_id: str,
    client_id: str,
    new_status: DelegationStatus,
    *,
    now: datetime | None = None,
) -> ClientRosterEntry:
    """Move an entry along one edge of ``ALLOWED_TRANSITIONS``."""

    async def _mutate(roster: ClientRoster, entries: list[ClientRosterEntry]) -> ClientRosterEntry:
        entry = _find(entries, client_id)
        if entry is None:
            raise EntryNotFoundError("No roster entry found for this client")
        return apply_transition(entry, DelegationStatus(new_status), now=now)

    entry = await _write_roster(session, manager_id, _mutate)
    logger.info(
        "roster_entry_transitioned manager_id=%s client_id=%s status=%s",
        manager_id,
        client_id,
        entry.status,
    )
    return entry


async def request_join(session: AsyncSession, *, client_id: str, manager_id: str) -> ClientRosterEntry:
    # Standalone user asks to be managed by an active transport manager.
    manager = await users_repo.get_user(session, manager_id)
    if manager is None or manager.role != Role.TRANSPORT_MANAGER.value or not manager.is_active:
        raise NotATransportManagerError("Transport Manager not found")
    return await add_entry(session, manager_id, client_id)


async def enroll_client(session: AsyncSession, *, manager_id: str, client_id: str) -> ClientRosterEntry:
    # Manager-created clients skip the pending stage.
    client = await users_repo.get_user(session, client_id)
    if client is None or client.role != Role.STANDALONE_USER.value:
        raise EntryNotFoundError("Client account not found")
    return await add_entry(session, manager_id, client_id, approve=True)


async def _ensure_unassigned(session: AsyncSession, client_id: str, *, manager_id: str) -> None:
    # Checked inside the roster write; the live-client unique index backs it against races.
    live = await rosters_repo.find_entry_for_client(session, client_id, statuses=LIVE_STATUSES)
    if live is not None and live.manager_id != manager_id:
        raise AlreadyAssignedError(
            "Client is already assigned to a Transport Manager. Leave the current team first."
        )


async def decide_join_request(
    session: AsyncSession,
    *,
    manager_id: str,
    client_id: str,
    approve: bool,
) -> ClientRosterEntry:
    target = DelegationStatus.APPROVED if approve else DelegationStatus.REVOKED
    return await transition(session, manager_id, client_id, target)


async def request_leave(session: AsyncSession, *, client_id: str) -> ClientRosterEntry:
    entry = await _require_client_entry(session, client_id, DelegationStatus.APPROVED)
    return await transition(session, entry.manager_id, client_id, DelegationStatus.LEAVE_REQUESTED)


async def accept_leave(session: AsyncSession, *, manager_id: str, client_id: str) -> ClientRosterEntry:
    return await transition(session, manager_id, client_id, DelegationStatus.REVOKED)


async def request_remove(session: AsyncSession, *, manager_id: str, client_id: str) -> ClientRosterEntry:
    return await transition(session, manager_id, client_id, DelegationStatus.REMOVE_REQUESTED)


async def accept_remove(session: AsyncSession, *, client_id: str) -> ClientRosterEntry:
    entry = await _require_client_entry(session, client_id, DelegationStatus.REMOVE_REQUESTED)
    return await transition(session, entry.manager_id, client_id, DelegationStatus.REVOKED)


async def _require_client_entry(
    session: AsyncSession, client_id: str, status: DelegationStatus
) -> ClientRosterEntry:
    entry = await rosters_repo.find_entry_for_client(session, client_id, statuses=[status])
    if entry is None:
        raise EntryNotFoundError(f"No {status.value} assignment found for this client")
    return entry


async def find_manager_for_client(session: AsyncSession, client_id: str) -> ClientRosterEntry | None:
    return await rosters_repo.find_entry_for_client(session, client_id, statuses=LIVE_STATUSES)


async def list_clients(
    session: AsyncSession,
    manager_id: str,
    *,
    statuses: list[DelegationStatus] | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[ClientRosterEntry]:
    # Revoked entries are history; they never show in roster listings.
    wanted = statuses or sorted(LIVE_STATUSES, key=lambda status: status.value)
    wanted = [status for status in wanted if status != DelegationStatus.REVOKED]
    return await rosters_repo.list_entries(
        session, manager_id, statuses=wanted, offset=offset, limit=limit
    )


async def pending_requests(session: AsyncSession, manager_id: str) -> list[ClientRosterEntry]:
    return await rosters_repo.list_entries(session, manager_id, statuses=[DelegationStatus.PENDING])


async def leave_requests(session: AsyncSession, manager_id: str) -> list[ClientRosterEntry]:
    return await rosters_repo.list_entries(
        session, manager_id, statuses=[DelegationStatus.LEAVE_REQUESTED]
    )


async def client_limit_status(session: AsyncSession, manager_id: str) -> ClientLimitStatus:
    roster = await rosters_repo.get_roster(session, manager_id)
    capacity = roster.capacity if roster is not None else int(get_settings().roster_default_capacity)
    current = await rosters_repo.count_entries(session, manager_id, statuses=CAPACITY_STATUSES)
    return ClientLimitStatus(capacity=capacity, current=current, remaining=max(0, capacity - current))


async def set_capacity(session: AsyncSession, *, manager_id: str, capacity: int) -> ClientRoster:
    # Lowering below the live count is allowed; it only blocks further additions.
    if capacity < 0:
        raise ValueError("capacity must be non-negative")

    async def _mutate(roster: ClientRoster, entries: list[ClientRosterEntry]) -> ClientRoster:
        roster.capacity = capacity
        return roster

    roster = await _write_roster(session, manager_id, _mutate)
    logger.info("roster_capacity_set manager_id=%s capacity=%s", manager_id, capacity)
    return roster
