from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.apps.api.deps import get_actor_id, get_db
from cutover.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from cutover.apps.api.response import SuccessEnvelope, success_response
from cutover.core.errors import ConflictError
from cutover.services.failover import (
    TRIGGERED_BY_SYSTEM,
    FailoverResult,
    cancel_failover,
    check_and_trigger_failover,
    execute_failover,
    get_failover_history,
    get_failover_status,
    rollback_failover,
    schedule_maintenance_failover,
    start_scheduled_failover,
)


router = APIRouter(prefix="/failover", tags=["failover"], responses=DEFAULT_ERROR_RESPONSES)


class FailoverResultResponse(BaseModel):
    success: bool
    event_id: str
    from_region: str
    to_region: str
    duration_ms: int
    projects_affected: int
    deployments_affected: int
    propagation_confirmed: bool
    warning: str | None = None


class FailoverCheckResponse(BaseModel):
    triggered: bool
    result: FailoverResultResponse | None = None


class FailoverExecuteRequest(BaseModel):
    from_region_id: str = Field(min_length=1)
    to_region_id: str = Field(min_length=1)
    # Validated by the orchestrator so unknown reasons surface as FAILOVER_VALIDATION_FAILED.
    reason: str = "manual"
    triggered_by: str | None = None


class FailoverEventSummaryResponse(BaseModel):
    id: str
    from_region: str | None
    to_region: str | None
    status: str
    started_at: datetime
    progress: int


class FailoverStatusResponse(BaseModel):
    in_progress: bool
    current_event: FailoverEventSummaryResponse | None = None


class MaintenanceRequest(BaseModel):
    region_id: str = Field(min_length=1)
    scheduled_time: datetime
    # Expected maintenance length in minutes.
    estimated_duration: int = Field(ge=0)


class MaintenanceResponse(BaseModel):
    scheduled: bool
    event_id: str | None = None
    to_region_id: str | None = None


class CancelResponse(BaseModel):
    cancelled: bool
    event_id: str


class FailoverHistoryItem(BaseModel):
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


def _result_response(result: FailoverResult) -> FailoverResultResponse:
    return FailoverResultResponse(**asdict(result))


@router.post("/check/{region_id}", response_model=SuccessEnvelope[FailoverCheckResponse])
async def failover_check(
    region_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Evaluate one region and fail it over when its recent checks warrant it.
    result = await check_and_trigger_failover(db, region_id)
    payload = FailoverCheckResponse(
        triggered=result is not None,
        result=_result_response(result) if result is not None else None,
    )
    return success_response(request=request, data=payload)


@router.post("/execute", response_model=SuccessEnvelope[FailoverResultResponse])
async def failover_execute(
    payload: FailoverExecuteRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    # Manual cutovers only target regions that are currently healthy.
    result = await execute_failover(
        db,
        payload.from_region_id,
        payload.to_region_id,
        payload.reason,
        payload.triggered_by or actor_id or "operator",
        require_healthy_target=True,
    )
    return success_response(request=request, data=_result_response(result))


@router.get("/status", response_model=SuccessEnvelope[FailoverStatusResponse])
async def failover_status(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    status = await get_failover_status(db)
    return success_response(request=request, data=FailoverStatusResponse.model_validate(asdict(status)))


@router.get("/history", response_model=SuccessEnvelope[list[FailoverHistoryItem]])
async def failover_history(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> dict:
    entries = await get_failover_history(db, limit)
    return success_response(
        request=request,
        data=[FailoverHistoryItem(**asdict(entry)) for entry in entries],
    )


@router.post("/maintenance", response_model=SuccessEnvelope[MaintenanceResponse])
async def failover_schedule_maintenance(
    payload: MaintenanceRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    schedule = await schedule_maintenance_failover(
        db,
        payload.region_id,
        payload.scheduled_time,
        payload.estimated_duration,
        triggered_by=actor_id or TRIGGERED_BY_SYSTEM,
    )
    return success_response(request=request, data=MaintenanceResponse(**asdict(schedule)))


@router.post("/events/{event_id}/start", response_model=SuccessEnvelope[FailoverResultResponse])
async def failover_start(event_id: str, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    result = await start_scheduled_failover(db, event_id)
    return success_response(request=request, data=_result_response(result))


@router.post("/events/{event_id}/cancel", response_model=SuccessEnvelope[CancelResponse])
async def failover_cancel(
    event_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    cancelled = await cancel_failover(db, event_id, triggered_by=actor_id or TRIGGERED_BY_SYSTEM)
    if not cancelled:
        raise ConflictError(
            "Cannot cancel this failover (may not be pending)",
            code="FAILOVER_NOT_CANCELLABLE",
        )
    return success_response(request=request, data=CancelResponse(cancelled=True, event_id=event_id))


@router.post("/events/{event_id}/rollback", response_model=SuccessEnvelope[FailoverResultResponse])
async def failover_rollback(
    event_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor_id: str | None = Depends(get_actor_id),
) -> dict:
    result = await rollback_failover(db, event_id, triggered_by=actor_id or TRIGGERED_BY_SYSTEM)
    return success_response(request=request, data=_result_response(result))
