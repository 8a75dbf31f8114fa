from __future__ import annotations

import asyncio
from dataclasses import dataclass

from cutover.core.errors import ConflictError
from cutover.core.logging import configure_logging
from cutover.persistence.db import SessionLocal
from cutover.services.regions import create_region


@dataclass(frozen=True)
class DemoRegion:
    # Stable names and priorities keep local failover drills repeatable.
    name: str
    display_name: str
    endpoint: str
    priority: int
    is_primary: bool = False


DEMO_REGIONS = (
    DemoRegion("us-east", "US East", "http://localhost:9101", priority=1, is_primary=True),
    DemoRegion("eu-west", "EU West", "http://localhost:9102", priority=2),
    DemoRegion("ap-south", "AP South", "http://localhost:9103", priority=3),
)


async def seed() -> None:
    async with SessionLocal() as session:
        for demo in DEMO_REGIONS:
            try:
                region = await create_region(
                    session,
                    name=demo.name,
                    endpoint=demo.endpoint,
                    display_name=demo.display_name,
                    priority=demo.priority,
                    is_primary=demo.is_primary,
                    actor_id="seed",
                )
            except ConflictError:
                print(f"region_exists name={demo.name}")
                continue
            print(f"region_created name={region.name} id={region.id}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
