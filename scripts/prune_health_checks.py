from __future__ import annotations

import argparse
import asyncio

from cutover.core.logging import configure_logging
from cutover.persistence.db import SessionLocal
from cutover.services.maintenance import prune_health_checks


async def prune(retention_days: int | None) -> None:
    async with SessionLocal() as session:
        deleted = await prune_health_checks(session, retention_days)
        await session.commit()
        print(f"pruned_health_checks={deleted}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete region health checks older than the retention window.")
    parser.add_argument("--days", type=int, default=None, help="Override HEALTH_CHECK_RETENTION_DAYS")
    args = parser.parse_args()
    configure_logging()
    asyncio.run(prune(args.days))


if __name__ == "__main__":
    main()
