from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import socket
import ssl
import time
from typing import Iterable

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cutover.core.config import get_settings
from cutover.core.errors import PersistenceError
from cutover.domain.models import (
    REGION_STATUS_DEGRADED,
    REGION_STATUS_HEALTHY,
    REGION_STATUS_MAINTENANCE,
    REGION_STATUS_UNHEALTHY,
    Region,
    RegionHealthCheck,
)
from cutover.persistence.db import SessionLocal
from cutover.persistence.repos import health_checks as health_checks_repo
from cutover.persistence.repos import regions as regions_repo
from cutover.services.telemetry import increment_counter, record_external_call, set_gauge


logger = logging.getLogger(__name__)

CHECK_STATUS_TIMEOUT = "timeout"
# Region probe that could not run at all; reported by the batch, never persisted.
PROBE_STATUS_ERROR = "error"

SUB_CHECK_OK = "ok"
SUB_CHECK_ERROR = "error"
SUB_CHECK_TIMEOUT = "timeout"

ERROR_TYPE_HTTP = "http"
ERROR_TYPE_CONNECTION = "connection"
ERROR_TYPE_DNS = "dns"
ERROR_TYPE_SSL = "ssl"
ERROR_TYPE_TIMEOUT = "timeout"
ERROR_TYPE_UNKNOWN = "unknown"

# Sub-system name -> path appended to the region endpoint.
SUB_CHECKS: tuple[tuple[str, str], ...] = (
    ("api", "/health"),
    ("database", "/health/db"),
    ("storage", "/health/storage"),
    ("cache", "/health/redis"),
)

FAILURE_CHECK_STATUSES = frozenset({REGION_STATUS_UNHEALTHY, CHECK_STATUS_TIMEOUT})


@dataclass(frozen=True)
class EndpointCheck:
    status: str
    latency_ms: int
    error: str | None = None
    error_type: str | None = None


@dataclass(frozen=True)
class HealthCheckResult:
    # One persisted probe cycle for a region.
    region_id: str
    status: str
    latency_ms: int
    checks: dict[str, str]
    error: str | None
    error_type: str | None
    checked_at: datetime


@dataclass(frozen=True)
class RegionHealth:
    region_id: str
    region_name: str
    status: str
    latency_ms: int
    error: str | None = None


@dataclass(frozen=True)
class FailoverDecision:
    should_failover: bool
    reason: str | None = None


@dataclass(frozen=True)
class RegionHealthSummary:
    region_id: str
    name: str
    status: str
    health_status: str
    is_primary: bool
    latency_ms: int | None
    last_check: datetime | None
    consecutive_failures: int


def derive_health_status(
    statuses: Iterable[str],
    *,
    window_size: int | None = None,
    unhealthy_threshold: int | None = None,
    degraded_threshold: int | None = None,
) -> str:
    """Derive the rolling region health signal from recent check statuses.

    ``statuses`` are newest first; only the first ``window_size`` entries count.
    Anything other than ``healthy`` (degraded, unhealthy, timeout) is a failure.
    """
    settings = get_settings()
    window = window_size if window_size is not None else settings.health_window_size
    unhealthy_at = unhealthy_threshold if unhealthy_threshold is not None else settings.health_unhealthy_threshold
    degraded_at = degraded_threshold if degraded_threshold is not None else settings.health_degraded_threshold
    recent = list(statuses)[:window]
    failures = sum(1 for status in recent if status != REGION_STATUS_HEALTHY)
    if failures >= unhealthy_at:
        return REGION_STATUS_UNHEALTHY
    if failures >= degraded_at:
        return REGION_STATUS_DEGRADED
    return REGION_STATUS_HEALTHY


def aggregate_sub_checks(checks: dict[str, str]) -> str:
    failed = sum(1 for status in checks.values() if status != SUB_CHECK_OK)
    if failed == 0:
        return REGION_STATUS_HEALTHY
    if failed == 1:
        return REGION_STATUS_DEGRADED
    return REGION_STATUS_UNHEALTHY


def _classify_error(exc: Exception) -> tuple[str, str]:
    # Map transport failures to (sub-check status, error type).
    if isinstance(exc, httpx.TimeoutException):
        return SUB_CHECK_TIMEOUT, ERROR_TYPE_TIMEOUT
    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, ssl.SSLError):
            return SUB_CHECK_ERROR, ERROR_TYPE_SSL
        if isinstance(cause, socket.gaierror):
            return SUB_CHECK_ERROR, ERROR_TYPE_DNS
        cause = cause.__cause__ or cause.__context__
    message = str(exc).lower()
    if "certificate" in message or "ssl" in message:
        return SUB_CHECK_ERROR, ERROR_TYPE_SSL
    if "name or service not known" in message or "nodename nor servname" in message or "getaddrinfo" in message:
        return SUB_CHECK_ERROR, ERROR_TYPE_DNS
    if isinstance(exc, httpx.TransportError):
        return SUB_CHECK_ERROR, ERROR_TYPE_CONNECTION
    return SUB_CHECK_ERROR, ERROR_TYPE_UNKNOWN


async def _check_endpoint(client: httpx.AsyncClient, url: str, *, timeout_s: float) -> EndpointCheck:
    start = time.monotonic()
    try:
        response = await client.get(url, timeout=timeout_s)
    except httpx.HTTPError as exc:
        status, error_type = _classify_error(exc)
        return EndpointCheck(
            status=status,
            latency_ms=int((time.monotonic() - start) * 1000),
            error=str(exc) or exc.__class__.__name__,
            error_type=error_type,
        )
    latency_ms = int((time.monotonic() - start) * 1000)
    if response.is_success:
        return EndpointCheck(status=SUB_CHECK_OK, latency_ms=latency_ms)
    return EndpointCheck(
        status=SUB_CHECK_ERROR,
        latency_ms=latency_ms,
        error=f"HTTP {response.status_code}",
        error_type=ERROR_TYPE_HTTP,
    )


def _probe_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=settings.health_check_timeout_s,
        headers={"User-Agent": settings.health_check_user_agent},
    )


async def _probe_region(client: httpx.AsyncClient, endpoint: str) -> tuple[str, dict[str, str], str | None, str | None]:
    settings = get_settings()
    base = endpoint.rstrip("/")
    try:
        results: list[EndpointCheck] = await asyncio.wait_for(
            asyncio.gather(
                *(
                    _check_endpoint(client, f"{base}{path}", timeout_s=settings.health_check_timeout_s)
                    for _, path in SUB_CHECKS
                )
            ),
            timeout=settings.health_check_region_timeout_s,
        )
    except TimeoutError:
        checks = {name: SUB_CHECK_TIMEOUT for name, _ in SUB_CHECKS}
        return CHECK_STATUS_TIMEOUT, checks, "Health check timed out", ERROR_TYPE_TIMEOUT
    except Exception as exc:  # noqa: BLE001 - probe failures are reported as results
        checks = {name: SUB_CHECK_ERROR for name, _ in SUB_CHECKS}
        return CHECK_STATUS_TIMEOUT, checks, str(exc) or exc.__class__.__name__, ERROR_TYPE_CONNECTION

    checks = {name: result.status for (name, _), result in zip(SUB_CHECKS, results)}
    first_failure = next((result for result in results if result.status != SUB_CHECK_OK), None)
    status = aggregate_sub_checks(checks)
    if first_failure is None:
        return status, checks, None, None
    return status, checks, first_failure.error, first_failure.error_type


async def check_region_health(
    session: AsyncSession,
    region: Region,
    *,
    client: httpx.AsyncClient | None = None,
) -> HealthCheckResult:
    """Probe one region, append a health-check row and refresh its health signal.

    Probe failures are folded into the result. Only store failures raise, as
    PersistenceError.
    """
    owns_client = client is None
    probe_client = client or _probe_client()
    start = time.monotonic()
    try:
        status, checks, error, error_type = await _probe_region(probe_client, region.endpoint)
    finally:
        if owns_client:
            await probe_client.aclose()
    latency_ms = int((time.monotonic() - start) * 1000)
    checked_at = datetime.now(timezone.utc)
    record_external_call(
        integration=f"region_probe.{region.name}",
        latency_ms=float(latency_ms),
        success=status == REGION_STATUS_HEALTHY,
    )
    increment_counter(f"health_checks_total.{status}")

    settings = get_settings()
    region_id = region.id
    try:
        await health_checks_repo.add_health_check(
            session,
            region_id=region_id,
            status=status,
            latency_ms=latency_ms,
            checks=checks,
            error=error,
            error_type=error_type,
            created_at=checked_at,
        )
        recent = await health_checks_repo.list_recent_checks(
            session,
            region_id=region_id,
            limit=settings.health_window_size,
        )
        # Probes own the health signal only; operational overrides are left alone.
        region.health_status = derive_health_status([row.status for row in recent])
        region.last_health_check = checked_at
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("health_check_persist_failed region_id=%s", region_id, exc_info=exc)
        raise PersistenceError("Failed to record region health check") from exc

    if status != REGION_STATUS_HEALTHY:
        logger.info(
            "region_health_check status=%s region=%s latency_ms=%s error_type=%s",
            status,
            region.name,
            latency_ms,
            error_type,
        )
    return HealthCheckResult(
        region_id=region_id,
        status=status,
        latency_ms=latency_ms,
        checks=checks,
        error=error,
        error_type=error_type,
        checked_at=checked_at,
    )


async def run_all_health_checks(*, client: httpx.AsyncClient | None = None) -> list[RegionHealth]:
    # Probe every region not in maintenance, isolating per-region failures.
    settings = get_settings()
    async with SessionLocal() as session:
        regions = await regions_repo.list_regions(session)
        targets = [(region.id, region.name) for region in regions if region.status != REGION_STATUS_MAINTENANCE]

    semaphore = asyncio.Semaphore(max(1, settings.health_check_concurrency))
    owns_client = client is None
    probe_client = client or _probe_client()

    async def _probe(region_id: str, region_name: str) -> RegionHealth:
        async with semaphore:
            try:
                async with SessionLocal() as region_session:
                    region = await regions_repo.get_region(region_session, region_id)
                    if region is None:
                        raise LookupError(f"Region {region_id} disappeared")
                    result = await check_region_health(region_session, region, client=probe_client)
            except Exception as exc:  # noqa: BLE001 - one region must not abort the batch
                logger.exception("region_health_check_failed region=%s", region_name)
                increment_counter("health_checks_total.error")
                return RegionHealth(
                    region_id=region_id,
                    region_name=region_name,
                    status=PROBE_STATUS_ERROR,
                    latency_ms=-1,
                    error=str(exc) or exc.__class__.__name__,
                )
            return RegionHealth(
                region_id=region_id,
                region_name=region_name,
                status=result.status,
                latency_ms=result.latency_ms,
                error=result.error,
            )

    try:
        results = await asyncio.gather(*(_probe(region_id, name) for region_id, name in targets))
    finally:
        if owns_client:
            await probe_client.aclose()
    set_gauge("regions_probed", len(results))
    set_gauge(
        "regions_unhealthy",
        sum(1 for result in results if result.status in (REGION_STATUS_UNHEALTHY, CHECK_STATUS_TIMEOUT)),
    )
    return list(results)


async def should_trigger_failover(session: AsyncSession, region_id: str) -> FailoverDecision:
    settings = get_settings()
    region = await regions_repo.get_region(session, region_id)
    if region is None:
        return FailoverDecision(should_failover=False, reason="Region not found")
    if not region.is_primary:
        return FailoverDecision(should_failover=False, reason="Not primary region")
    threshold = settings.failover_trigger_threshold
    recent = await health_checks_repo.list_recent_checks(session, region_id=region_id, limit=threshold)
    failures = sum(1 for row in recent if row.status in FAILURE_CHECK_STATUSES)
    if len(recent) >= threshold and failures >= threshold:
        return FailoverDecision(
            should_failover=True,
            reason=f"{failures} consecutive health check failures",
        )
    return FailoverDecision(should_failover=False)


async def get_best_failover_target(session: AsyncSession, exclude_region_id: str | None) -> str | None:
    # Lowest priority value wins, then the least loaded region.
    candidates = await regions_repo.list_regions_by_preference(session, exclude_region_id=exclude_region_id)
    for region in candidates:
        if region.status == REGION_STATUS_HEALTHY:
            return region.id
    return None


async def get_all_region_health(session: AsyncSession) -> list[RegionHealthSummary]:
    settings = get_settings()
    summaries: list[RegionHealthSummary] = []
    for region in await regions_repo.list_regions(session):
        recent = await health_checks_repo.list_recent_checks(
            session,
            region_id=region.id,
            limit=settings.health_window_size,
        )
        consecutive = 0
        for row in recent:
            if row.status == REGION_STATUS_HEALTHY:
                break
            consecutive += 1
        latest: RegionHealthCheck | None = recent[0] if recent else None
        summaries.append(
            RegionHealthSummary(
                region_id=region.id,
                name=region.name,
                status=region.status,
                health_status=region.health_status,
                is_primary=region.is_primary,
                latency_ms=latest.latency_ms if latest is not None else None,
                last_check=region.last_health_check,
                consecutive_failures=consecutive,
            )
        )
    return summaries
