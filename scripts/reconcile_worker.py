from __future__ import annotations

import asyncio

from fleetcomply.core.logging import configure_logging
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services.reconciliation import ReconciliationScheduler


async def _main() -> None:
    # Dedicated daily loop process; run exactly one per deployment.
    configure_logging()
    await ReconciliationScheduler(SessionLocal).run_forever()


if __name__ == "__main__":
    asyncio.run(_main())
