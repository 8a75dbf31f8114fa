from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from cutover.domain.models import (
    EVENT_STATUS_PENDING,
    REGION_STATUS_HEALTHY,
    REGION_STATUS_MAINTENANCE,
    FailoverEvent,
    Region,
    RegionHealthCheck,
)
from cutover.persistence.repos import health_checks as health_checks_repo
from cutover.persistence.repos import regions as regions_repo
from cutover.services.audit import record_event
from cutover.services.health_monitor import HealthCheckResult, check_region_health


logger = logging.getLogger(__name__)

# Fields operators may edit; primary designation and status are owned by the orchestrator.
_UPDATABLE_FIELDS = (
    "display_name",
    "endpoint",
    "priority",
    "active_deployments",
    "active_projects",
    "metadata_json",
)


@dataclass(frozen=True)
class RegionHealthStats:
    uptime_percent: int
    avg_latency_ms: int
    checks_last_hour: int
    healthy_checks: int


@dataclass(frozen=True)
class RegionOverview:
    region: Region
    latest_check: RegionHealthCheck | None
    failover_count: int


@dataclass(frozen=True)
class RegionDetail:
    region: Region
    health_stats: RegionHealthStats
    recent_checks: list[RegionHealthCheck]


def compute_health_stats(checks: list[RegionHealthCheck], *, now: datetime | None = None) -> RegionHealthStats:
    # Summarize the last hour of probes; an idle hour counts as fully up.
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=1)
    recent = [check for check in checks if check.created_at >= cutoff]
    healthy = sum(1 for check in recent if check.status == REGION_STATUS_HEALTHY)
    if not recent:
        return RegionHealthStats(uptime_percent=100, avg_latency_ms=0, checks_last_hour=0, healthy_checks=0)
    return RegionHealthStats(
        uptime_percent=round(healthy / len(recent) * 100),
        avg_latency_ms=round(sum(check.latency_ms for check in recent) / len(recent)),
        checks_last_hour=len(recent),
        healthy_checks=healthy,
    )


async def _failover_counts(session: AsyncSession) -> dict[str, int]:
    counts: dict[str, int] = {}
    for column in (FailoverEvent.from_region_id, FailoverEvent.to_region_id):
        result = await session.execute(select(column, func.count()).group_by(column))
        for region_id, count in result.all():
            counts[region_id] = counts.get(region_id, 0) + int(count)
    return counts


async def list_region_overviews(session: AsyncSession) -> list[RegionOverview]:
    try:
        regions = await regions_repo.list_regions(session)
        counts = await _failover_counts(session)
        overviews: list[RegionOverview] = []
        for region in regions:
            latest = await health_checks_repo.list_recent_checks(session, region_id=region.id, limit=1)
            overviews.append(
                RegionOverview(
                    region=region,
                    latest_check=latest[0] if latest else None,
                    failover_count=counts.get(region.id, 0),
                )
            )
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to load regions") from exc
    return overviews


async def get_region_detail(session: AsyncSession, region_id: str) -> RegionDetail:
    try:
        region = await regions_repo.get_region(session, region_id)
        if region is None:
            raise NotFoundError("Region not found")
        checks = await health_checks_repo.list_recent_checks(session, region_id=region_id, limit=100)
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to load region") from exc
    return RegionDetail(region=region, health_stats=compute_health_stats(checks), recent_checks=checks)


async def create_region(
    session: AsyncSession,
    *,
    name: str,
    endpoint: str,
    display_name: str | None = None,
    priority: int = 100,
    is_primary: bool = False,
    active_deployments: int = 0,
    active_projects: int = 0,
    metadata: dict[str, Any] | None = None,
    actor_id: str | None = None,
) -> Region:
    if not name.strip() or not endpoint.strip():
        raise ValidationError("Region name and endpoint are required")
    try:
        if await regions_repo.get_region_by_name(session, name) is not None:
            raise ConflictError(f"Region {name} already exists", code="REGION_EXISTS")
        if is_primary and await regions_repo.get_primary_region(session) is not None:
            raise ConflictError("A primary region already exists", code="PRIMARY_REGION_EXISTS")
        region = Region(
            name=name,
            endpoint=endpoint,
            display_name=display_name,
            priority=priority,
            is_primary=is_primary,
            active_deployments=active_deployments,
            active_projects=active_projects,
            health_status=REGION_STATUS_HEALTHY,
            metadata_json=metadata,
        )
        session.add(region)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError(f"Region {name} already exists", code="REGION_EXISTS") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Failed to create region") from exc
    await session.refresh(region)
    logger.info("region_created region=%s primary=%s", name, is_primary)
    await record_event(
        actor_type="operator" if actor_id else "system",
        actor_id=actor_id,
        event_type="region.created",
        outcome="success",
        resource_type="region",
        resource_id=region.id,
        metadata={"name": name, "endpoint": endpoint, "priority": priority},
    )
    return region


async def update_region(
    session: AsyncSession,
    region_id: str,
    changes: dict[str, Any],
    *,
    actor_id: str | None = None,
) -> Region:
    unknown = sorted(set(changes) - set(_UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")
    try:
        region = await regions_repo.get_region(session, region_id)
        if region is None:
            raise NotFoundError("Region not found")
        for field, value in changes.items():
            setattr(region, field, value)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Failed to update region") from exc
    await session.refresh(region)
    await record_event(
        actor_type="operator" if actor_id else "system",
        actor_id=actor_id,
        event_type="region.updated",
        outcome="success",
        resource_type="region",
        resource_id=region_id,
        metadata={"fields": sorted(changes)},
    )
    return region


async def complete_maintenance(session: AsyncSession, region_id: str, *, actor_id: str | None = None) -> Region:
    """Return a region from maintenance to probing and failover eligibility.

    A still-pending maintenance cutover for the region must be cancelled first.
    """
    try:
        region = await regions_repo.get_region(session, region_id)
        if region is None:
            raise NotFoundError("Region not found")
        if region.operational_status != REGION_STATUS_MAINTENANCE:
            raise ConflictError("Region is not in maintenance", code="REGION_NOT_IN_MAINTENANCE")
        pending = await session.execute(
            select(FailoverEvent.id).where(
                FailoverEvent.from_region_id == region_id,
                FailoverEvent.status == EVENT_STATUS_PENDING,
            )
        )
        if pending.first() is not None:
            raise ConflictError(
                "Region has a pending maintenance failover; cancel it first",
                code="MAINTENANCE_FAILOVER_PENDING",
            )
        region.set_operational_status(None)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError("Failed to complete maintenance") from exc
    await session.refresh(region)
    logger.info("region_maintenance_completed region=%s", region.name)
    await record_event(
        actor_type="operator" if actor_id else "system",
        actor_id=actor_id,
        event_type="region.maintenance_completed",
        outcome="success",
        resource_type="region",
        resource_id=region_id,
    )
    return region


async def probe_region(session: AsyncSession, region_id: str) -> HealthCheckResult:
    try:
        region = await regions_repo.get_region(session, region_id)
    except SQLAlchemyError as exc:
        raise PersistenceError("Failed to load region") from exc
    if region is None:
        raise NotFoundError("Region not found")
    return await check_region_health(session, region)
