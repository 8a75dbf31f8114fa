from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from cutover.core.config import get_settings
from cutover.core.errors import CutoverError
from cutover.persistence.db import SessionLocal
from cutover.persistence.repos import failover_events as events_repo
from cutover.persistence.repos import regions as regions_repo
from cutover.providers.traffic import TrafficManager
from cutover.services.failover import check_and_trigger_failover, run_due_scheduled_failovers
from cutover.services.health_monitor import run_all_health_checks
from cutover.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


def _is_missing_table_error(exc: Exception) -> bool:
    # Let the worker start before migrations by treating missing tables as a waiting state.
    message = str(exc).lower()
    return "undefinedtableerror" in message or "does not exist" in message or "no such table" in message


async def run_health_cycle(*, traffic_manager: TrafficManager | None = None) -> dict[str, Any]:
    """Probe all regions, evaluate the primary for failover, then start due maintenance cutovers."""
    settings = get_settings()
    try:
        probes = await run_all_health_checks()
    except SQLAlchemyError as exc:
        if _is_missing_table_error(exc):
            return {"status": "waiting_for_migrations", "regions_probed": 0, "failover_event_id": None}
        raise

    failover_event_id: str | None = None
    primary_name: str | None = None
    if settings.failover_auto_enabled:
        async with SessionLocal() as session:
            primary = await regions_repo.get_primary_region(session)
            if primary is None:
                # A failed cutover leaves no primary; automatic detection has nothing to watch.
                if await events_repo.find_active_event(session) is None:
                    increment_counter("failover_no_primary_total")
                    logger.warning("failover_no_primary auto_detection=paused")
            else:
                primary_name = primary.name
                try:
                    result = await check_and_trigger_failover(
                        session,
                        primary.id,
                        traffic_manager=traffic_manager,
                    )
                except CutoverError as exc:
                    logger.warning("automatic_failover_failed region=%s code=%s", primary.name, exc.code)
                    result = None
                if result is not None:
                    failover_event_id = result.event_id

    scheduled = await run_due_scheduled_failovers(traffic_manager=traffic_manager)
    return {
        "status": "ok",
        "regions_probed": len(probes),
        "primary_region": primary_name,
        "failover_event_id": failover_event_id,
        "scheduled_started": [result.event_id for result in scheduled],
    }


async def run_health_loop() -> None:
    # Probe on a fixed cadence and keep going after failures so detection never stops.
    interval = max(1, int(get_settings().health_check_interval_s))
    while True:
        try:
            await run_health_cycle()
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("health worker cycle failed")
        await asyncio.sleep(interval)
