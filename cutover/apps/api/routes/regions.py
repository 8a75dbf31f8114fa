from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.apps.api.deps import get_actor_id, get_db
from cutover.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from cutover.apps.api.response import SuccessEnvelope, success_response
from cutover.domain.models import Region
from cutover.services.health_monitor import get_all_region_health
from cutover.services.regions import (
    complete_maintenance,
    create_region,
    get_region_detail,
    list_region_overviews,
    probe_region,
    update_region,
)


router = APIRouter(prefix="/regions", tags=["regions"], responses=DEFAULT_ERROR_RESPONSES)


class HealthCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    latency_ms: int
    checks: dict[str, Any]
    error: str | None
    error_type: str | None
    created_at: datetime


class RegionResponse(BaseModel):
    id: str
    name: str
    display_name: str | None
    endpoint: str
    priority: int
    is_primary: bool
    status: str
    health_status: str
    operational_status: str | None
    active_deployments: int
    active_projects: int
    last_health_check: datetime | None
    metadata: dict[str, Any] | None = None


class RegionListItem(RegionResponse):
    latest_health: HealthCheckResponse | None = None
    failover_count: int = 0


class HealthStatsResponse(BaseModel):
    uptime_percent: int
    avg_latency_ms: int
    checks_last_hour: int
    healthy_checks: int


class RegionDetailResponse(RegionResponse):
    health_stats: HealthStatsResponse
    recent_checks: list[HealthCheckResponse]


class RegionHealthSummaryResponse(BaseModel):
    region_id: str
    name: str
    status: str
    health_status: str
    is_primary: bool
    latency_ms: int | None
    last_check: datetime | None
    consecutive_failures: int


class ProbeResponse(BaseModel):
    region_id: str
    status: str
    latency_ms: int
    checks: dict[str, str]
    error: str | None
    error_type: str | None
    checked_at: datetime


class RegionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    endpoint: str = Field(min_length=1)
    display_name: str | None = None
    priority: int = Field(default=100, ge=0)
    is_primary: bool = False
    active_deployments: int = Field(default=0, ge=0)
    active_projects: int = Field(default=0, ge=0)
    metadata: dict[str, Any] | None = None


class RegionUpdateRequest(BaseModel):
    display_name: str | None = None
    endpoint: str | None = Field(default=None, min_length=1)
    priority: int | None = Field(default=None, ge=0)
    active_deployments: int | None = Field(default=None, ge=0)
    active_projects: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


def _region_fields(region: Region) -> dict[str, Any]:
    return {
        "id": region.id,
        "name": region.name,
        "display_name": region.display_name,
        "endpoint": region.endpoint,
        "priority": region.priority,
        "is_primary": region.is_primary,
        "status": region.status,
        "health_status": region.health_status,
        "operational_status": region.operational_status,
        "active_deployments": region.active_deployments,
        "active_projects": region.active_projects,
        "last_health_check": region.last_health_check,
        "metadata": region.metadata_json,
    }


@router.get("", response_model=SuccessEnvelope[list[RegionListItem]])
async def regions_list(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    overviews = await list_region_overviews(db)
    items = [
        RegionListItem(
            **_region_fields(overview.region),
            latest_health=(
                HealthCheckResponse.model_validate(overview.latest_check)
                if overview.latest_check is not None
                else None
            ),
            failover_count=overview.failover_count,
        )
        for overview in overviews
    ]
    return success_response(request=request, data=items)


@router.get("/health", response_model=SuccessEnvelope[list[RegionHealthSummaryResponse]])
async def regions_health(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    summaries = await get_all_region_health(db)
    return success_response(
        request=request,
        data=[RegionHealthSummaryResponse(**asdict(summary)) for summary in summaries],
    )


@router.post("", status_code=201, response_model=SuccessEnvelope[RegionResponse])
async def regions_create(
    payload: RegionCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    region = await create_region(
        db,
        name=payload.name,
        endpoint=payload.endpoint,
        display_name=payload.display_name,
        priority=payload.priority,
        is_primary=payload.is_primary,
        active_deployments=payload.active_deployments,
        active_projects=payload.active_projects,
        metadata=payload.metadata,
        actor_id=actor_id,
    )
    return success_response(request=request, data=RegionResponse(**_region_fields(region)))


@router.get("/{region_id}", response_model=SuccessEnvelope[RegionDetailResponse])
async def regions_get(region_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    detail = await get_region_detail(db, region_id)
    payload = RegionDetailResponse(
        **_region_fields(detail.region),
        health_stats=HealthStatsResponse(**asdict(detail.health_stats)),
        recent_checks=[HealthCheckResponse.model_validate(check) for check in detail.recent_checks],
    )
    return success_response(request=request, data=payload)


@router.patch("/{region_id}", response_model=SuccessEnvelope[RegionResponse])
async def regions_update(
    region_id: str,
    payload: RegionUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    if "metadata" in changes:
        changes["metadata_json"] = changes.pop("metadata")
    region = await update_region(db, region_id, changes, actor_id=actor_id)
    return success_response(request=request, data=RegionResponse(**_region_fields(region)))


@router.post("/{region_id}/maintenance/complete", response_model=SuccessEnvelope[RegionResponse])
async def regions_complete_maintenance(
    region_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    region = await complete_maintenance(db, region_id, actor_id=actor_id)
    return success_response(request=request, data=RegionResponse(**_region_fields(region)))


@router.post("/{region_id}/probe", response_model=SuccessEnvelope[ProbeResponse])
async def regions_probe(region_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    # Run one probe cycle on demand; the result is persisted like a scheduled probe.
    result = await probe_region(db, region_id)
    return success_response(request=request, data=ProbeResponse(**asdict(result)))
