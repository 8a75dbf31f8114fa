from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.core.config import get_settings
from cutover.domain.models import AuditEvent
from cutover.persistence.repos import health_checks as health_checks_repo


logger = logging.getLogger(__name__)


async def prune_health_checks(session: AsyncSession, retention_days: int | None = None) -> int:
    # Drop probe history older than the retention window; callers commit.
    days = retention_days if retention_days is not None else get_settings().health_check_retention_days
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    deleted = await health_checks_repo.delete_checks_before(session, cutoff=cutoff)
    logger.info("health_checks_pruned deleted=%s retention_days=%s", deleted, days)
    return deleted


async def prune_audit_events(session: AsyncSession) -> int:
    # Remove audit events beyond the retention window.
    settings = get_settings()
    cutoff = datetime.now(timezone.utc) - timedelta(days=settings.audit_retention_days)
    result = await session.execute(delete(AuditEvent).where(AuditEvent.occurred_at < cutoff))
    return result.rowcount or 0
