from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetcomply.core.config import Settings, get_settings
from fleetcomply.persistence.repos import renewals as renewals_repo
from fleetcomply.services.renewals.status import RenewalDates, derive_status, local_today, resolve_zone


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconcileResult:
    status: str
    updated_count: int = 0
    scanned: int = 0
    failed: int = 0


class ReconciliationScheduler:
    """Daily repair of cached renewal statuses.

    One instance is built per process and owns its ``running`` flag; a second
    ``reconcile()`` while one is in flight returns ``skipped_running``
    immediately. The flag does not coordinate across processes, so exactly
    one process should run the loop.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], Any],
        *,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._sleep = sleep
        self._settings = settings or get_settings()
        self.running = False
        self.last_result: ReconcileResult | None = None

    def seconds_until_next_run(self, now: datetime | None = None) -> float:
        # Next configured wall-clock slot strictly after now, in the configured zone.
        current = now or self._clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        local = current.astimezone(resolve_zone(self._settings.reconcile_timezone))
        slot = local.replace(
            hour=int(self._settings.reconcile_hour),
            minute=int(self._settings.reconcile_minute),
            second=0,
            microsecond=0,
        )
        if slot <= local:
            slot = slot + timedelta(days=1)
        # Subtract in UTC; same-zone aware subtraction ignores DST offset changes.
        return max(0.0, (slot.astimezone(timezone.utc) - current.astimezone(timezone.utc)).total_seconds())

    async def reconcile(self) -> ReconcileResult:
        if self.running:
            logger.info("renewal_reconcile_skipped reason=already_running")
            return ReconcileResult(status="skipped_running")
        # Flag flips before the first await so overlapping callers see it.
        self.running = True
        try:
            result = await self._reconcile_all()
        finally:
            self.running = False
        self.last_result = result
        logger.info(
            "renewal_reconcile_finished updated=%s scanned=%s failed=%s",
            result.updated_count,
            result.scanned,
            result.failed,
        )
        return result

    async def _reconcile_all(self) -> ReconcileResult:
        today = local_today(self._settings.reconcile_timezone, self._clock())
        batch_size = max(1, int(self._settings.reconcile_batch_size))
        updated = scanned = failed = 0
        after_id: str | None = None
        while True:
            # A listing failure is unrecoverable for this run and propagates.
            async with self._session_factory() as session:
                rows = await renewals_repo.list_status_projection(
                    session, after_id=after_id, limit=batch_size
                )
            if not rows:
                break
            for row in rows:
                scanned += 1
                try:
                    derived = derive_status(RenewalDates.from_row(row), today).value
                    if derived == row.status:
                        continue
                    if await self._write_status(row.id, derived, row.status):
                        updated += 1
                except Exception:  # noqa: BLE001 - one bad record must not stall the rest of the batch.
                    failed += 1
                    logger.exception("renewal_reconcile_record_failed renewal_id=%s", row.id)
            after_id = rows[-1].id
            if len(rows) < batch_size:
                break
        return ReconcileResult(status="ok", updated_count=updated, scanned=scanned, failed=failed)

    async def _write_status(self, renewal_id: str, status: str, expected_status: str | None) -> bool:
        # One short transaction per correction isolates failures to that record.
        async with self._session_factory() as session:
            changed = await renewals_repo.set_status(
                session, renewal_id, status=status, expected_status=expected_status
            )
            await session.commit()
        return changed

    async def run_forever(self) -> None:
        while True:
            delay = self.seconds_until_next_run()
            logger.info("renewal_reconcile_sleeping seconds=%.0f", delay)
            await self._sleep(delay)
            try:
                await self.reconcile()
            except Exception:  # noqa: BLE001 - keep the daily loop alive while surfacing errors in logs.
                logger.exception("renewal reconcile cycle failed")
