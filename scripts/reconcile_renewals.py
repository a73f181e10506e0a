from __future__ import annotations

import asyncio

from fleetcomply.core.logging import configure_logging
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services.reconciliation import ReconciliationScheduler


async def reconcile() -> None:
    # One-shot pass for operators and external cron triggers.
    configure_logging()
    result = await ReconciliationScheduler(SessionLocal).reconcile()
    print(
        f"status={result.status} updated={result.updated_count} "
        f"scanned={result.scanned} failed={result.failed}"
    )


if __name__ == "__main__":
    asyncio.run(reconcile())
