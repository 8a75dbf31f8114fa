from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.core.errors import ConflictError
from cutover.domain.models import ACTIVE_EVENT_STATUSES, EVENT_STATUS_PENDING, FailoverEvent


async def get_event(session: AsyncSession, event_id: str) -> FailoverEvent | None:
    return await session.get(FailoverEvent, event_id)


async def find_active_event(session: AsyncSession) -> FailoverEvent | None:
    result = await session.execute(
        select(FailoverEvent)
        .where(FailoverEvent.status.in_(ACTIVE_EVENT_STATUSES))
        .order_by(FailoverEvent.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def insert_event(session: AsyncSession, event: FailoverEvent) -> FailoverEvent:
    """Persist a new event; the store rejects a second non-terminal event.

    The partial unique index on ``exclusivity_key`` is the enforcement point, so a
    concurrent writer that passed the application-level check still loses here.
    """
    session.add(event)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Another failover operation is already running") from exc
    await session.refresh(event)
    return event


async def list_events(session: AsyncSession, *, limit: int = 50) -> list[FailoverEvent]:
    result = await session.execute(
        select(FailoverEvent).order_by(FailoverEvent.started_at.desc(), FailoverEvent.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def list_due_pending_events(session: AsyncSession, *, now: datetime) -> list[FailoverEvent]:
    # Scheduled time lives in metadata, so due-ness is decided in Python.
    result = await session.execute(
        select(FailoverEvent)
        .where(FailoverEvent.status == EVENT_STATUS_PENDING)
        .order_by(FailoverEvent.started_at.asc())
    )
    due: list[FailoverEvent] = []
    for event in result.scalars().all():
        raw = (event.metadata_json or {}).get("scheduled_time")
        if not isinstance(raw, str):
            continue
        try:
            scheduled = datetime.fromisoformat(raw)
        except ValueError:
            continue
        if scheduled <= now:
            due.append(event)
    return due
