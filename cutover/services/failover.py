from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import time
from typing import Any, AsyncIterator, Literal, Protocol, get_args
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.core.config import get_settings
from cutover.core.errors import (
    ConflictError,
    CutoverError,
    NotFoundError,
    PersistenceError,
    PropagationTimeoutError,
    ValidationError,
)
from cutover.domain.models import (
    EVENT_STATUS_CANCELLED,
    EVENT_STATUS_COMPLETED,
    EVENT_STATUS_FAILED,
    EVENT_STATUS_IN_PROGRESS,
    EVENT_STATUS_PENDING,
    REGION_STATUS_DEGRADED,
    REGION_STATUS_HEALTHY,
    REGION_STATUS_MAINTENANCE,
    REGION_STATUS_UNHEALTHY,
    FailoverEvent,
    Region,
)
from cutover.persistence.db import SessionLocal
from cutover.persistence.repos import failover_events as events_repo
from cutover.persistence.repos import regions as regions_repo
from cutover.providers.traffic import TrafficManager, TrafficTarget, get_traffic_manager
from cutover.services.audit import record_event
from cutover.services.health_monitor import get_best_failover_target, should_trigger_failover
from cutover.services.resilience import get_resilience_redis
from cutover.services.telemetry import increment_counter, set_gauge


logger = logging.getLogger(__name__)

FailoverReason = Literal["health_check_failed", "scheduled_maintenance", "rollback", "manual"]
FAILOVER_REASONS: frozenset[str] = frozenset(get_args(FailoverReason))

TRIGGERED_BY_SYSTEM = "system"

# Progress reported for non-terminal events.
_PROGRESS_BY_STATUS = {EVENT_STATUS_PENDING: 0, EVENT_STATUS_IN_PROGRESS: 50}


@dataclass(frozen=True)
class FailoverResult:
    success: bool
    event_id: str
    from_region: str
    to_region: str
    duration_ms: int
    projects_affected: int
    deployments_affected: int
    propagation_confirmed: bool
    warning: str | None = None


@dataclass(frozen=True)
class FailoverEventSummary:
    id: str
    from_region: str | None
    to_region: str | None
    status: str
    started_at: datetime
    progress: int


@dataclass(frozen=True)
class FailoverStatus:
    in_progress: bool
    current_event: FailoverEventSummary | None = None


@dataclass(frozen=True)
class MaintenanceSchedule:
    scheduled: bool
    event_id: str | None = None
    to_region_id: str | None = None


@dataclass(frozen=True)
class FailoverHistoryEntry:
    id: str
    from_region_id: str
    from_region_name: str | None
    from_region_display_name: str | None
    to_region_id: str
    to_region_name: str | None
    to_region_display_name: str | None
    reason: str
    triggered_by: str
    status: str
    started_at: datetime
    completed_at: datetime | None
    duration_ms: int | None
    projects_affected: int
    deployments_affected: int
    error: str | None
    propagation_confirmed: bool | None
    metadata: dict[str, Any]


class WorkloadInventory(Protocol):
    async def count_affected(self, session: AsyncSession, region: Region) -> tuple[int, int]:
        """Return (projects, deployments) currently served by ``region``."""
        ...


class RegionCounterInventory:
    # Read the load counters the deployment platform maintains on each region row.
    async def count_affected(self, session: AsyncSession, region: Region) -> tuple[int, int]:
        _ = session
        return int(region.active_projects or 0), int(region.active_deployments or 0)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def transition_allowed(current: str, target: str) -> bool:
    # Enforce the event state machine; terminal states have no outgoing edges.
    allowed: dict[str, set[str]] = {
        EVENT_STATUS_PENDING: {EVENT_STATUS_IN_PROGRESS, EVENT_STATUS_CANCELLED},
        EVENT_STATUS_IN_PROGRESS: {EVENT_STATUS_COMPLETED, EVENT_STATUS_FAILED},
    }
    return target in allowed.get(current, set())


def _validate_reason(reason: str) -> None:
    if reason not in FAILOVER_REASONS:
        raise ValidationError(
            f"Unknown failover reason {reason!r}; expected one of {sorted(FAILOVER_REASONS)}"
        )


def _actor_type(triggered_by: str) -> str:
    return "system" if triggered_by == TRIGGERED_BY_SYSTEM else "operator"


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, CutoverError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def _lock_key() -> str:
    settings = get_settings()
    return f"{settings.failover_redis_prefix}:lock"


async def acquire_failover_lock() -> str | None:
    # Serialize failover requests across instances; the partial unique index stays authoritative.
    settings = get_settings()
    if not settings.failover_redis_lock_enabled:
        return None
    redis = await get_resilience_redis()
    if redis is None:
        return None
    lock_id = uuid4().hex
    try:
        acquired = await redis.set(_lock_key(), lock_id, nx=True, ex=settings.failover_lock_ttl_s)
    except Exception as exc:  # noqa: BLE001 - rely on the database constraint
        logger.warning("failover_lock_acquire_failed", exc_info=exc)
        return None
    if not acquired:
        raise ConflictError("Another failover operation is already running")
    return lock_id


async def release_failover_lock(lock_id: str | None) -> None:
    if not lock_id:
        return
    redis = await get_resilience_redis()
    if redis is None:
        return
    try:
        current = await redis.get(_lock_key())
        if current == lock_id:
            await redis.delete(_lock_key())
    except Exception as exc:  # noqa: BLE001 - best-effort lock cleanup
        logger.warning("failover_lock_release_failed", exc_info=exc)


@asynccontextmanager
async def _store_errors(session: AsyncSession, message: str) -> AsyncIterator[None]:
    # Surface store failures as PersistenceError with the transaction rolled back.
    try:
        yield
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError(message) from exc


async def _commit(session: AsyncSession) -> None:
    async with _store_errors(session, "Failed to persist failover state"):
        await session.commit()


async def _ensure_no_active_event(session: AsyncSession) -> None:
    active = await events_repo.find_active_event(session)
    if active is not None:
        raise ConflictError(
            f"Failover already in progress: {active.id}",
            details={"active_event_id": active.id},
        )


async def _ensure_source_is_primary(session: AsyncSession, region: Region) -> None:
    # Evacuate the live primary, or any region once a failed cutover has left none.
    await session.refresh(region)
    if region.is_primary:
        return
    primary = await regions_repo.get_primary_region(session)
    if primary is not None:
        raise ValidationError(
            f"Source region {region.name} is not the primary region; {primary.name} is",
            details={"primary_region_id": primary.id},
        )


async def _load_region_pair(
    session: AsyncSession,
    from_region_id: str,
    to_region_id: str,
) -> tuple[Region, Region]:
    if from_region_id == to_region_id:
        raise ValidationError("Source and target regions must differ")
    from_region = await regions_repo.get_region(session, from_region_id)
    to_region = await regions_repo.get_region(session, to_region_id)
    if from_region is None or to_region is None:
        raise NotFoundError("Invalid region IDs")
    return from_region, to_region


async def _wait_for_propagation(
    manager: TrafficManager,
    target: TrafficTarget,
    source: TrafficTarget,
) -> None:
    # Poll the traffic manager until it reports the switch live or the budget runs out.
    settings = get_settings()
    timeout_s = settings.failover_propagation_timeout_s
    interval_s = max(settings.failover_propagation_poll_interval_s, 0.0)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    last_error: str | None = None
    while True:
        try:
            status = await manager.get_propagation_status(target, from_region=source)
        except Exception as exc:  # noqa: BLE001 - propagation checks are advisory
            last_error = _error_message(exc)
            logger.warning("traffic_propagation_poll_failed region=%s", target.name, exc_info=exc)
        else:
            if status.propagated:
                return
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval_s, remaining))
    detail = f" (last error: {last_error})" if last_error else ""
    raise PropagationTimeoutError(
        f"Traffic switch to {target.name} not confirmed within {timeout_s:g}s{detail}"
    )


@dataclass(frozen=True)
class _EventRef:
    # Plain copies of event identity; ORM attributes expire on rollback.
    event_id: str
    from_region_id: str
    to_region_id: str
    triggered_by: str


async def _record_failure(
    session: AsyncSession,
    *,
    ref: _EventRef,
    event: FailoverEvent,
    from_region: Region,
    exc: BaseException,
    started: float,
) -> None:
    # Mark the event failed and leave the source degraded; vendor changes are not compensated.
    await session.rollback()
    message = _error_message(exc)
    try:
        await session.refresh(event)
        await session.refresh(from_region)
        event.status = EVENT_STATUS_FAILED
        event.error = message
        event.completed_at = _utc_now()
        event.duration_ms = int((time.monotonic() - started) * 1000)
        from_region.set_operational_status(REGION_STATUS_DEGRADED)
        await session.commit()
    except SQLAlchemyError as store_exc:
        await session.rollback()
        logger.error("failover_failure_record_failed event_id=%s", ref.event_id, exc_info=store_exc)
    increment_counter("failover_failed_total")
    set_gauge("failover_in_progress", 0)
    logger.error("failover_failed event_id=%s error=%s", ref.event_id, message)
    await record_event(
        actor_type=_actor_type(ref.triggered_by),
        actor_id=ref.triggered_by,
        event_type="failover.failed",
        outcome="failure",
        resource_type="failover_event",
        resource_id=ref.event_id,
        metadata={"from_region_id": ref.from_region_id, "to_region_id": ref.to_region_id, "error": message},
        error_code=exc.code if isinstance(exc, CutoverError) else "INTERNAL_ERROR",
    )


async def _run_protocol(
    session: AsyncSession,
    *,
    event: FailoverEvent,
    from_region: Region,
    to_region: Region,
    source_status: str,
    manager: TrafficManager,
    inventory: WorkloadInventory,
) -> FailoverResult:
    """Drive an in_progress event through the cutover steps.

    Drain the source, count affected workload, switch traffic, promote the
    target, then wait for propagation. Anything before propagation that fails
    marks the event failed and re-raises. Unconfirmed propagation is only a
    warning and the event still completes.
    """
    started = time.monotonic()
    ref = _EventRef(
        event_id=event.id,
        from_region_id=event.from_region_id,
        to_region_id=event.to_region_id,
        triggered_by=event.triggered_by,
    )
    source = TrafficTarget.from_region(from_region)
    target = TrafficTarget.from_region(to_region)
    set_gauge("failover_in_progress", 1)
    logger.info(
        "failover_started event_id=%s from=%s to=%s reason=%s",
        event.id,
        from_region.name,
        to_region.name,
        event.reason,
    )
    try:
        from_region.set_operational_status(source_status)
        from_region.is_primary = False
        projects, deployments = await inventory.count_affected(session, from_region)
        event.projects_affected = projects
        event.deployments_affected = deployments
        await _commit(session)

        await manager.redirect_traffic(source, target)

        to_region.is_primary = True
        await _commit(session)
    except Exception as exc:  # noqa: BLE001 - recorded on the event, then re-raised
        await _record_failure(session, ref=ref, event=event, from_region=from_region, exc=exc, started=started)
        if isinstance(exc, SQLAlchemyError):
            raise PersistenceError("Failed to persist failover state") from exc
        raise

    warning: str | None = None
    try:
        await _wait_for_propagation(manager, target, source)
    except PropagationTimeoutError as exc:
        warning = exc.message
        increment_counter("failover_propagation_unconfirmed_total")
        logger.warning("failover_propagation_unconfirmed event_id=%s detail=%s", event.id, warning)

    duration_ms = int((time.monotonic() - started) * 1000)
    try:
        event.status = EVENT_STATUS_COMPLETED
        event.completed_at = _utc_now()
        event.duration_ms = duration_ms
        event.propagation_confirmed = warning is None
        if warning is not None:
            metadata = dict(event.metadata_json or {})
            metadata["warnings"] = [*metadata.get("warnings", []), warning]
            event.metadata_json = metadata
        await _commit(session)
    except PersistenceError as exc:
        await _record_failure(session, ref=ref, event=event, from_region=from_region, exc=exc, started=started)
        raise

    increment_counter("failover_completed_total")
    set_gauge("failover_in_progress", 0)
    logger.info(
        "failover_completed event_id=%s from=%s to=%s duration_ms=%s propagation_confirmed=%s",
        event.id,
        from_region.name,
        to_region.name,
        duration_ms,
        warning is None,
    )
    await record_event(
        actor_type=_actor_type(event.triggered_by),
        actor_id=event.triggered_by,
        event_type="failover.completed",
        outcome="success",
        resource_type="failover_event",
        resource_id=event.id,
        metadata={
            "from_region": from_region.name,
            "to_region": to_region.name,
            "reason": event.reason,
            "duration_ms": duration_ms,
            "propagation_confirmed": warning is None,
        },
    )
    return FailoverResult(
        success=True,
        event_id=event.id,
        from_region=from_region.name,
        to_region=to_region.name,
        duration_ms=duration_ms,
        projects_affected=event.projects_affected,
        deployments_affected=event.deployments_affected,
        propagation_confirmed=warning is None,
        warning=warning,
    )


async def execute_failover(
    session: AsyncSession,
    from_region_id: str,
    to_region_id: str,
    reason: FailoverReason | str,
    triggered_by: str,
    *,
    require_healthy_target: bool = False,
    traffic_manager: TrafficManager | None = None,
    inventory: WorkloadInventory | None = None,
) -> FailoverResult:
    """Move primary traffic from one region to another.

    Raises ValidationError/NotFoundError for bad arguments, ConflictError when
    another event is pending or in progress, and re-raises whatever aborted the
    cutover after recording the event as failed.
    """
    _validate_reason(reason)
    async with _store_errors(session, "Failed to load failover regions"):
        from_region, to_region = await _load_region_pair(session, from_region_id, to_region_id)
    if require_healthy_target and to_region.status != REGION_STATUS_HEALTHY:
        raise ValidationError("Target region is not healthy")

    lock_id = await acquire_failover_lock()
    try:
        async with _store_errors(session, "Failed to create failover event"):
            await _ensure_no_active_event(session)
            await _ensure_source_is_primary(session, from_region)
            event = await events_repo.insert_event(
                session,
                FailoverEvent(
                    from_region_id=from_region.id,
                    to_region_id=to_region.id,
                    reason=reason,
                    triggered_by=triggered_by,
                    status=EVENT_STATUS_IN_PROGRESS,
                    started_at=_utc_now(),
                ),
            )
        increment_counter(f"failover_started_total.{reason}")
        return await _run_protocol(
            session,
            event=event,
            from_region=from_region,
            to_region=to_region,
            source_status=REGION_STATUS_UNHEALTHY,
            manager=traffic_manager or get_traffic_manager(),
            inventory=inventory or RegionCounterInventory(),
        )
    finally:
        await release_failover_lock(lock_id)


async def rollback_failover(
    session: AsyncSession,
    event_id: str,
    *,
    triggered_by: str = TRIGGERED_BY_SYSTEM,
    traffic_manager: TrafficManager | None = None,
    inventory: WorkloadInventory | None = None,
) -> FailoverResult:
    async with _store_errors(session, "Failed to load failover event"):
        event = await events_repo.get_event(session, event_id)
    if event is None:
        raise NotFoundError("Failover event not found")
    if event.status != EVENT_STATUS_COMPLETED:
        raise ConflictError("Can only rollback completed failovers", code="FAILOVER_NOT_ROLLBACK_ELIGIBLE")
    return await execute_failover(
        session,
        event.to_region_id,
        event.from_region_id,
        "rollback",
        triggered_by,
        traffic_manager=traffic_manager,
        inventory=inventory,
    )


async def schedule_maintenance_failover(
    session: AsyncSession,
    region_id: str,
    scheduled_time: datetime,
    estimated_duration: int,
    *,
    triggered_by: str = TRIGGERED_BY_SYSTEM,
) -> MaintenanceSchedule:
    # Without a healthy target nothing is touched: no event, no maintenance flag.
    if estimated_duration < 0:
        raise ValidationError("estimated_duration must be non-negative")
    async with _store_errors(session, "Failed to load maintenance region"):
        region = await regions_repo.get_region(session, region_id)
        if region is None:
            raise NotFoundError("Region not found")
        target_id = await get_best_failover_target(session, region_id)
    if target_id is None:
        logger.warning("maintenance_failover_unscheduled region=%s reason=no_healthy_target", region.name)
        return MaintenanceSchedule(scheduled=False)

    if scheduled_time.tzinfo is None:
        scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)
    lock_id = await acquire_failover_lock()
    try:
        async with _store_errors(session, "Failed to schedule maintenance failover"):
            await _ensure_no_active_event(session)
            await _ensure_source_is_primary(session, region)
            region.set_operational_status(REGION_STATUS_MAINTENANCE)
            # Region flag and pending event commit together; a conflict rolls back both.
            event = await events_repo.insert_event(
                session,
                FailoverEvent(
                    from_region_id=region_id,
                    to_region_id=target_id,
                    reason="scheduled_maintenance",
                    triggered_by=triggered_by,
                    status=EVENT_STATUS_PENDING,
                    started_at=_utc_now(),
                    metadata_json={
                        "scheduled_time": scheduled_time.astimezone(timezone.utc).isoformat(),
                        "estimated_duration": estimated_duration,
                    },
                ),
            )
    finally:
        await release_failover_lock(lock_id)

    increment_counter("failover_scheduled_total")
    logger.info(
        "maintenance_failover_scheduled event_id=%s region=%s scheduled_time=%s",
        event.id,
        region.name,
        scheduled_time.isoformat(),
    )
    await record_event(
        actor_type=_actor_type(triggered_by),
        actor_id=triggered_by,
        event_type="failover.scheduled",
        outcome="success",
        resource_type="failover_event",
        resource_id=event.id,
        metadata={"region_id": region_id, "to_region_id": target_id, "estimated_duration": estimated_duration},
    )
    return MaintenanceSchedule(scheduled=True, event_id=event.id, to_region_id=target_id)


async def start_scheduled_failover(
    session: AsyncSession,
    event_id: str,
    *,
    traffic_manager: TrafficManager | None = None,
    inventory: WorkloadInventory | None = None,
) -> FailoverResult:
    # Run a pending maintenance cutover; the source keeps its maintenance status.
    lock_id = await acquire_failover_lock()
    try:
        async with _store_errors(session, "Failed to start scheduled failover"):
            event = await events_repo.get_event(session, event_id)
            if event is None:
                raise NotFoundError("Failover event not found")
            if not transition_allowed(event.status, EVENT_STATUS_IN_PROGRESS):
                raise ConflictError(
                    f"Failover event is {event.status}, only pending events can start",
                    code="FAILOVER_NOT_STARTABLE",
                )
            from_region, to_region = await _load_region_pair(session, event.from_region_id, event.to_region_id)
            await _ensure_source_is_primary(session, from_region)
            # Conditional update so two starters cannot both claim the event.
            result = await session.execute(
                update(FailoverEvent)
                .where(FailoverEvent.id == event_id, FailoverEvent.status == EVENT_STATUS_PENDING)
                .values(status=EVENT_STATUS_IN_PROGRESS, started_at=_utc_now())
            )
            if result.rowcount != 1:
                await session.rollback()
                raise ConflictError("Failover event was started or cancelled concurrently")
            await session.commit()
            await session.refresh(event)
        increment_counter("failover_started_total.scheduled_maintenance")
        return await _run_protocol(
            session,
            event=event,
            from_region=from_region,
            to_region=to_region,
            source_status=REGION_STATUS_MAINTENANCE,
            manager=traffic_manager or get_traffic_manager(),
            inventory=inventory or RegionCounterInventory(),
        )
    finally:
        await release_failover_lock(lock_id)


async def run_due_scheduled_failovers(
    *,
    now: datetime | None = None,
    traffic_manager: TrafficManager | None = None,
) -> list[FailoverResult]:
    moment = now or _utc_now()
    results: list[FailoverResult] = []
    async with SessionLocal() as session:
        due = await events_repo.list_due_pending_events(session, now=moment)
        for event in due:
            try:
                results.append(
                    await start_scheduled_failover(session, event.id, traffic_manager=traffic_manager)
                )
            except CutoverError as exc:
                logger.warning("scheduled_failover_start_failed event_id=%s code=%s", event.id, exc.code)
    return results


async def cancel_failover(session: AsyncSession, event_id: str, *, triggered_by: str = TRIGGERED_BY_SYSTEM) -> bool:
    # Only pending events can be cancelled; anything else reports False.
    async with _store_errors(session, "Failed to cancel failover"):
        event = await events_repo.get_event(session, event_id)
        if event is None or not transition_allowed(event.status, EVENT_STATUS_CANCELLED):
            return False
        result = await session.execute(
            update(FailoverEvent)
            .where(FailoverEvent.id == event_id, FailoverEvent.status == EVENT_STATUS_PENDING)
            .values(status=EVENT_STATUS_CANCELLED, completed_at=_utc_now())
        )
        if result.rowcount != 1:
            await session.rollback()
            return False
        region = await regions_repo.get_region(session, event.from_region_id)
        if region is not None and region.operational_status == REGION_STATUS_MAINTENANCE:
            region.set_operational_status(None)
        await session.commit()
        await session.refresh(event)

    increment_counter("failover_cancelled_total")
    logger.info("failover_cancelled event_id=%s", event_id)
    await record_event(
        actor_type=_actor_type(triggered_by),
        actor_id=triggered_by,
        event_type="failover.cancelled",
        outcome="success",
        resource_type="failover_event",
        resource_id=event_id,
    )
    return True


async def check_and_trigger_failover(
    session: AsyncSession,
    region_id: str,
    *,
    traffic_manager: TrafficManager | None = None,
    inventory: WorkloadInventory | None = None,
) -> FailoverResult | None:
    async with _store_errors(session, "Failed to evaluate failover trigger"):
        decision = await should_trigger_failover(session, region_id)
        if not decision.should_failover:
            return None
        target_id = await get_best_failover_target(session, region_id)
    if target_id is None:
        logger.error("failover_target_unavailable region_id=%s reason=%s", region_id, decision.reason)
        increment_counter("failover_target_unavailable_total")
        return None
    logger.warning("failover_triggered region_id=%s reason=%s", region_id, decision.reason)
    return await execute_failover(
        session,
        region_id,
        target_id,
        "health_check_failed",
        TRIGGERED_BY_SYSTEM,
        traffic_manager=traffic_manager,
        inventory=inventory,
    )


async def get_failover_status(session: AsyncSession) -> FailoverStatus:
    async with _store_errors(session, "Failed to load failover status"):
        event = await events_repo.find_active_event(session)
        if event is None:
            return FailoverStatus(in_progress=False)
        from_region = await regions_repo.get_region(session, event.from_region_id)
        to_region = await regions_repo.get_region(session, event.to_region_id)
    return FailoverStatus(
        in_progress=True,
        current_event=FailoverEventSummary(
            id=event.id,
            from_region=from_region.name if from_region else None,
            to_region=to_region.name if to_region else None,
            status=event.status,
            started_at=event.started_at,
            progress=_PROGRESS_BY_STATUS.get(event.status, 0),
        ),
    )


async def get_failover_history(session: AsyncSession, limit: int = 50) -> list[FailoverHistoryEntry]:
    if limit < 1:
        raise ValidationError("limit must be positive")
    async with _store_errors(session, "Failed to load failover history"):
        events = await events_repo.list_events(session, limit=limit)
        regions = {region.id: region for region in await regions_repo.list_regions(session)}
    entries: list[FailoverHistoryEntry] = []
    for event in events:
        source = regions.get(event.from_region_id)
        target = regions.get(event.to_region_id)
        entries.append(
            FailoverHistoryEntry(
                id=event.id,
                from_region_id=event.from_region_id,
                from_region_name=source.name if source else None,
                from_region_display_name=source.display_name if source else None,
                to_region_id=event.to_region_id,
                to_region_name=target.name if target else None,
                to_region_display_name=target.display_name if target else None,
                reason=event.reason,
                triggered_by=event.triggered_by,
                status=event.status,
                started_at=event.started_at,
                completed_at=event.completed_at,
                duration_ms=event.duration_ms,
                projects_affected=event.projects_affected,
                deployments_affected=event.deployments_affected,
                error=event.error,
                propagation_confirmed=event.propagation_confirmed,
                metadata=dict(event.metadata_json or {}),
            )
        )
    return entries
