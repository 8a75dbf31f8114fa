from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point the store at a throwaway SQLite file before cutover modules read settings.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"cutover_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
os.environ["FAILOVER_REDIS_LOCK_ENABLED"] = "false"
os.environ["TRAFFIC_PROVIDER"] = "fake"
os.environ["FAILOVER_AUTO_ENABLED"] = "true"
# SQLite serializes writers; probe regions one at a time so sessions never contend.
os.environ["HEALTH_CHECK_CONCURRENCY"] = "1"

import pytest

from cutover.domain.models import Base
from cutover.persistence.db import engine
from cutover.providers.traffic import reset_traffic_manager
from cutover.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
async def reset_database_between_tests() -> None:
    # Recreate the schema per test so failover exclusivity never leaks across tests.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    reset_telemetry()
    reset_traffic_manager()
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


def pytest_sessionfinish(session, exitstatus) -> None:
    _TEST_DB_PATH.unlink(missing_ok=True)
