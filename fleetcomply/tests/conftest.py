from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before fleetcomply modules import settings.
_DB_DIR = tempfile.mkdtemp(prefix="fleetcomply-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["AUTH_ENABLED"] = "true"
os.environ["RECONCILE_ENABLED"] = "false"
os.environ["RECONCILE_TIMEZONE"] = "UTC"

import pytest  # noqa: E402

from fleetcomply.domain.models import Base  # noqa: E402
from fleetcomply.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def database_schema() -> None:
    # Each test gets an empty schema so roster and subscription state never leaks.
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
async def dispose_engine_between_tests() -> None:
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    yield
    await engine.dispose()
