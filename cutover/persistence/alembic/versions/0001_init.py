"""create regions, health checks, failover events and audit events

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_EVENT_STATUSES_SQL = "status IN ('pending', 'in_progress')"


def upgrade() -> None:
    op.create_table(
        "regions",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("endpoint", sa.String(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("active_deployments", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("active_projects", sa.Integer(), nullable=False, server_default=sa.text("0")),
        # Probe-derived signal and orchestration override are stored separately.
        sa.Column("health_status", sa.String(), nullable=False, server_default="healthy"),
        sa.Column("operational_status", sa.String(), nullable=True),
        sa.Column("operational_status_set_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_health_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_regions_priority_deployments",
        "regions",
        ["priority", "active_deployments"],
        unique=False,
    )

    # Append-only probe history, pruned by the retention job.
    op.create_table(
        "region_health_checks",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("region_id", sa.String(), sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("checks", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_type", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_region_health_checks_region_created",
        "region_health_checks",
        ["region_id", sa.text("created_at DESC")],
        unique=False,
    )
    op.create_index(
        "ix_region_health_checks_created",
        "region_health_checks",
        ["created_at"],
        unique=False,
    )

    op.create_table(
        "failover_events",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("from_region_id", sa.String(), sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("to_region_id", sa.String(), sa.ForeignKey("regions.id"), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("triggered_by", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("exclusivity_key", sa.String(), nullable=False, server_default="platform"),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("projects_affected", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("deployments_affected", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("propagation_confirmed", sa.Boolean(), nullable=True),
        sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    )
    op.create_index(
        "ix_failover_events_status_started",
        "failover_events",
        ["status", "started_at"],
        unique=False,
    )
    # At most one pending/in_progress event platform-wide.
    op.create_index(
        "uq_failover_events_single_active",
        "failover_events",
        ["exclusivity_key"],
        unique=True,
        postgresql_where=sa.text(_ACTIVE_EVENT_STATUSES_SQL),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_type", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("outcome", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=True),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("request_id", sa.String(), nullable=True),
        sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"], unique=False)
    op.create_index("ix_audit_events_request_id", "audit_events", ["request_id"], unique=False)
    op.create_index(
        "ix_audit_events_event_type_occurred_at",
        "audit_events",
        ["event_type", sa.text("occurred_at DESC")],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_audit_events_event_type_occurred_at", table_name="audit_events")
    op.drop_index("ix_audit_events_request_id", table_name="audit_events")
    op.drop_index("ix_audit_events_occurred_at", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("uq_failover_events_single_active", table_name="failover_events")
    op.drop_index("ix_failover_events_status_started", table_name="failover_events")
    op.drop_table("failover_events")
    op.drop_index("ix_region_health_checks_created", table_name="region_health_checks")
    op.drop_index("ix_region_health_checks_region_created", table_name="region_health_checks")
    op.drop_table("region_health_checks")
    op.drop_index("ix_regions_priority_deployments", table_name="regions")
    op.drop_table("regions")
