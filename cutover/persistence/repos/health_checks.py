from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.domain.models import RegionHealthCheck


async def add_health_check(
    session: AsyncSession,
    *,
    region_id: str,
    status: str,
    latency_ms: int,
    checks: dict[str, Any],
    error: str | None,
    error_type: str | None,
    created_at: datetime,
) -> RegionHealthCheck:
    row = RegionHealthCheck(
        region_id=region_id,
        status=status,
        latency_ms=latency_ms,
        checks=checks,
        error=error,
        error_type=error_type,
        created_at=created_at,
    )
    session.add(row)
    await session.flush()
    return row


async def list_recent_checks(
    session: AsyncSession,
    *,
    region_id: str,
    limit: int,
) -> list[RegionHealthCheck]:
    # Newest first; id breaks ties between rows written within the same clock tick.
    result = await session.execute(
        select(RegionHealthCheck)
        .where(RegionHealthCheck.region_id == region_id)
        .order_by(RegionHealthCheck.created_at.desc(), RegionHealthCheck.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def delete_checks_before(session: AsyncSession, *, cutoff: datetime) -> int:
    result = await session.execute(delete(RegionHealthCheck).where(RegionHealthCheck.created_at < cutoff))
    return result.rowcount or 0
