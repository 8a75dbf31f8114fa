from __future__ import annotations

import asyncio

from cutover.core.logging import configure_logging
from cutover.workers.health_worker import run_health_loop


async def _main() -> None:
    # Run probes and automatic failover checks without depending on API traffic.
    configure_logging()
    await run_health_loop()


if __name__ == "__main__":
    asyncio.run(_main())
