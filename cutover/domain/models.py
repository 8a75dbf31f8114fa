from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


REGION_STATUS_HEALTHY = "healthy"
REGION_STATUS_DEGRADED = "degraded"
REGION_STATUS_UNHEALTHY = "unhealthy"
REGION_STATUS_MAINTENANCE = "maintenance"

EVENT_STATUS_PENDING = "pending"
EVENT_STATUS_IN_PROGRESS = "in_progress"
EVENT_STATUS_COMPLETED = "completed"
EVENT_STATUS_FAILED = "failed"
EVENT_STATUS_CANCELLED = "cancelled"
ACTIVE_EVENT_STATUSES = (EVENT_STATUS_PENDING, EVENT_STATUS_IN_PROGRESS)

EXCLUSIVITY_KEY_PLATFORM = "platform"
# Keep in sync with the partial unique index below and migration 0001.
ACTIVE_EVENT_STATUSES_SQL = "status IN ('pending', 'in_progress')"

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")
# SQLite only auto-increments INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class UtcDateTime(TypeDecorator):
    # Always hand back timezone-aware UTC values, even from backends that drop tzinfo.
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def effective_region_status(
    *,
    health_status: str,
    operational_status: str | None,
    operational_status_set_at: datetime | None,
    last_health_check: datetime | None,
) -> str:
    """Combine the probe-derived health signal with the orchestration override.

    Maintenance always wins. An unhealthy/degraded override set during a cutover
    holds until a probe newer than the override has been recorded, after which the
    probe-derived health signal is authoritative again.
    """
    if operational_status is None:
        return health_status
    if operational_status == REGION_STATUS_MAINTENANCE:
        return REGION_STATUS_MAINTENANCE
    if last_health_check is None or operational_status_set_at is None:
        return operational_status
    if last_health_check <= operational_status_set_at:
        return operational_status
    return health_status


class Base(DeclarativeBase):
    pass


class Region(Base):
    __tablename__ = "regions"
    __table_args__ = (
        Index("ix_regions_priority_deployments", "priority", "active_deployments"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Base URL for the /health, /health/db, /health/storage, /health/redis probes.
    endpoint: Mapped[str] = mapped_column(String, nullable=False)
    # Lower values are preferred failover targets.
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Load counters maintained by the deployment platform.
    active_deployments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Probe-derived signal; written only by the health monitor.
    health_status: Mapped[str] = mapped_column(String, nullable=False, default=REGION_STATUS_HEALTHY)
    # Orchestration-owned override (unhealthy/degraded/maintenance); written only by failover flows.
    operational_status: Mapped[str | None] = mapped_column(String, nullable=True)
    operational_status_set_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    last_health_check: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime(), default=_utc_now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )

    @property
    def status(self) -> str:
        return effective_region_status(
            health_status=self.health_status,
            operational_status=self.operational_status,
            operational_status_set_at=self.operational_status_set_at,
            last_health_check=self.last_health_check,
        )

    def set_operational_status(self, status: str | None, *, at: datetime | None = None) -> None:
        self.operational_status = status
        self.operational_status_set_at = (at or _utc_now()) if status is not None else None


class RegionHealthCheck(Base):
    __tablename__ = "region_health_checks"
    __table_args__ = (
        Index("ix_region_health_checks_region_created", "region_id", text("created_at DESC")),
        Index("ix_region_health_checks_created", "created_at"),
    )

    # Append-only probe history; rows are never updated.
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    region_id: Mapped[str] = mapped_column(String, ForeignKey("regions.id"), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checks: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_type: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime(), default=_utc_now, server_default=func.now())


class FailoverEvent(Base):
    __tablename__ = "failover_events"
    __table_args__ = (
        Index("ix_failover_events_status_started", "status", "started_at"),
        # At most one pending/in_progress event platform-wide, enforced by the store.
        Index(
            "uq_failover_events_single_active",
            "exclusivity_key",
            unique=True,
            postgresql_where=text(ACTIVE_EVENT_STATUSES_SQL),
            sqlite_where=text(ACTIVE_EVENT_STATUSES_SQL),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    from_region_id: Mapped[str] = mapped_column(String, ForeignKey("regions.id"), nullable=False)
    to_region_id: Mapped[str] = mapped_column(String, ForeignKey("regions.id"), nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    triggered_by: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    exclusivity_key: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=EXCLUSIVITY_KEY_PLATFORM,
        server_default=EXCLUSIVITY_KEY_PLATFORM,
    )
    started_at: Mapped[datetime] = mapped_column(UtcDateTime(), default=_utc_now, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    projects_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deployments_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    propagation_confirmed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_event_type_occurred_at", "event_type", text("occurred_at DESC")),
    )

    # Use a monotonic numeric id for efficient pagination and ordering.
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    occurred_at: Mapped[datetime] = mapped_column(UtcDateTime(), index=True)
    actor_type: Mapped[str] = mapped_column(String)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    event_type: Mapped[str] = mapped_column(String)
    outcome: Mapped[str] = mapped_column(String)
    resource_type: Mapped[str | None] = mapped_column(String, nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    # Keep metadata sanitized for flexible investigation.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=dict)
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime(), default=_utc_now, server_default=func.now())
