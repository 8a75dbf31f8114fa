from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.domain.models import Region


async def get_region(session: AsyncSession, region_id: str) -> Region | None:
    return await session.get(Region, region_id)


async def get_region_by_name(session: AsyncSession, name: str) -> Region | None:
    result = await session.execute(select(Region).where(Region.name == name))
    return result.scalar_one_or_none()


async def list_regions(session: AsyncSession) -> list[Region]:
    # Primary first, then by failover preference for stable operator views.
    result = await session.execute(
        select(Region).order_by(Region.is_primary.desc(), Region.priority.asc(), Region.name.asc())
    )
    return list(result.scalars().all())


async def get_primary_region(session: AsyncSession) -> Region | None:
    result = await session.execute(
        select(Region).where(Region.is_primary.is_(True)).order_by(Region.priority.asc()).limit(1)
    )
    return result.scalar_one_or_none()


async def list_regions_by_preference(
    session: AsyncSession,
    *,
    exclude_region_id: str | None = None,
) -> list[Region]:
    # Effective status is derived in Python, so callers filter after ordering here.
    stmt = select(Region)
    if exclude_region_id is not None:
        stmt = stmt.where(Region.id != exclude_region_id)
    stmt = stmt.order_by(Region.priority.asc(), Region.active_deployments.asc(), Region.name.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())
