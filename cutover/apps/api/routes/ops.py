from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from cutover.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from cutover.apps.api.response import SuccessEnvelope, success_response
from cutover.persistence.db import pool_stats
from cutover.services.resilience import get_circuit_breaker_state
from cutover.services.telemetry import (
    counters_snapshot,
    external_latency_by_integration,
    gauges_snapshot,
    request_error_rate,
)


router = APIRouter(prefix="/ops", tags=["ops"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("/metrics", response_model=SuccessEnvelope[dict[str, Any]])
async def ops_metrics(request: Request) -> dict:
    # Expose in-process failover, probe and vendor counters for dashboards.
    payload: dict[str, Any] = {
        "counters": counters_snapshot(),
        "gauges": gauges_snapshot(),
        "api_error_rate": request_error_rate(3600),
        "external_call_latency_ms": external_latency_by_integration(3600),
        "db_pool": pool_stats(),
        "circuit_breaker_state": {
            "traffic.cloudflare": await get_circuit_breaker_state("traffic.cloudflare"),
        },
    }
    return success_response(request=request, data=payload)
