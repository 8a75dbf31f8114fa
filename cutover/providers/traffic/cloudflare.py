from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from cutover.core.config import get_settings
from cutover.core.errors import ExternalServiceError
from cutover.providers.traffic.base import PropagationStatus, TrafficTarget
from cutover.services.resilience import CircuitBreaker, get_resilience_redis, retry_async
from cutover.services.telemetry import record_external_call


logger = logging.getLogger(__name__)

_INTEGRATION = "traffic.cloudflare"


class CloudflareTrafficManager:
    """Shift traffic between regions through Cloudflare Load Balancing or DNS.

    A load-balancer pool whose name contains ``traffic_pool_name`` is preferred:
    the source origin is drained (disabled, weight 0) and the target origin is
    enabled with weight 1. Without such a pool the platform hostname record is
    rewritten to the target region host with a short TTL.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._settings = get_settings()
        self._client = client
        self._breaker = breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per manager for connection pooling.
        timeout_s = self._settings.ext_call_timeout_ms / 1000.0
        self._client = httpx.AsyncClient(timeout=timeout_s)
        return self._client

    async def _get_breaker(self) -> CircuitBreaker:
        # Share breaker state across instances so one failing vendor trips everywhere.
        if self._breaker is not None:
            return self._breaker
        redis = await get_resilience_redis()
        self._breaker = CircuitBreaker(_INTEGRATION, redis=redis)
        return self._breaker

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.cloudflare_api_token}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self._settings.cloudflare_api_base.rstrip('/')}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        client = self._get_client()
        breaker = await self._get_breaker()
        await breaker.before_call()
        start = time.monotonic()

        async def _call() -> httpx.Response:
            response = await client.request(
                method,
                self._url(path),
                params=params,
                json=json,
                headers=self._headers(),
            )
            response.raise_for_status()
            return response

        try:
            response = await retry_async(_call)
            payload = response.json()
        except (httpx.HTTPError, TimeoutError, ValueError) as exc:
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            # Client errors are configuration problems, not vendor outages.
            if status is None or status >= 500 or status == 429:
                await breaker.record_failure()
            record_external_call(
                integration=_INTEGRATION,
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            logger.warning("cloudflare_request_failed method=%s path=%s status=%s", method, path, status)
            raise ExternalServiceError(f"Cloudflare {method} {path} failed") from exc

        await breaker.record_success()
        record_external_call(
            integration=_INTEGRATION,
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=True,
        )
        if isinstance(payload, dict) and payload.get("success") is False:
            errors = payload.get("errors") or []
            raise ExternalServiceError(f"Cloudflare {method} {path} rejected: {errors}")
        return payload.get("result") if isinstance(payload, dict) else None

    def _pools_path(self) -> str:
        return f"/accounts/{self._settings.cloudflare_account_id}/load_balancers/pools"

    async def _find_pool(self) -> dict[str, Any] | None:
        # Pools live under the account; without one only the direct-record strategy applies.
        if not self._settings.cloudflare_account_id:
            return None
        pools = await self._request("GET", self._pools_path()) or []
        fragment = self._settings.traffic_pool_name
        for pool in pools:
            if fragment in str(pool.get("name", "")):
                return pool
        return None

    async def _find_record(self) -> dict[str, Any] | None:
        records = await self._request(
            "GET",
            f"/zones/{self._settings.cloudflare_zone_id}/dns_records",
            params={"name": self._settings.traffic_hostname},
        ) or []
        for record in records:
            if record.get("name") == self._settings.traffic_hostname:
                return record
        return None

    async def redirect_traffic(self, from_region: TrafficTarget, to_region: TrafficTarget) -> None:
        pool = await self._find_pool()
        if pool is not None:
            await self._update_pool_origins(pool["id"], from_region, to_region)
            logger.info(
                "traffic_redirected strategy=pool pool_id=%s from=%s to=%s",
                pool["id"],
                from_region.name,
                to_region.name,
            )
            return
        await self._update_direct_record(to_region)
        logger.info("traffic_redirected strategy=record from=%s to=%s", from_region.name, to_region.name)

    async def _update_pool_origins(
        self,
        pool_id: str,
        from_region: TrafficTarget,
        to_region: TrafficTarget,
    ) -> None:
        pool = await self._request("GET", f"{self._pools_path()}/{pool_id}") or {}
        origins = list(pool.get("origins") or [])
        if not any(origin.get("name") == to_region.name for origin in origins):
            raise ExternalServiceError(f"Pool {pool_id} has no origin for region {to_region.name}")
        updated: list[dict[str, Any]] = []
        for origin in origins:
            if origin.get("name") == from_region.name:
                updated.append({**origin, "enabled": False, "weight": 0})
            elif origin.get("name") == to_region.name:
                updated.append({**origin, "enabled": True, "weight": 1})
            else:
                updated.append(origin)
        await self._request("PATCH", f"{self._pools_path()}/{pool_id}", json={"origins": updated})

    async def _update_direct_record(self, to_region: TrafficTarget) -> None:
        record = await self._find_record()
        if record is None:
            raise ExternalServiceError(f"No DNS record found for {self._settings.traffic_hostname}")
        await self._request(
            "PATCH",
            f"/zones/{self._settings.cloudflare_zone_id}/dns_records/{record['id']}",
            json={"content": to_region.host, "ttl": self._settings.traffic_failover_ttl_s},
        )

    async def get_propagation_status(
        self,
        region: TrafficTarget,
        *,
        from_region: TrafficTarget | None = None,
    ) -> PropagationStatus:
        try:
            pool = await self._find_pool()
            if pool is not None:
                # Read the pool itself; list entries may omit origin state.
                detail = await self._request("GET", f"{self._pools_path()}/{pool['id']}") or {}
                propagated = _pool_routes_to(detail, region, from_region)
            else:
                record = await self._find_record()
                propagated = record is not None and record.get("content") == region.host
        except ExternalServiceError as exc:
            logger.warning("traffic_propagation_check_failed region=%s", region.name, exc_info=exc)
            propagated = False
        return PropagationStatus(propagated=propagated, active_region=region.name)


def _pool_routes_to(
    pool: dict[str, Any],
    region: TrafficTarget,
    from_region: TrafficTarget | None,
) -> bool:
    origins = {origin.get("name"): origin for origin in pool.get("origins") or []}
    target = origins.get(region.name)
    if target is None or not target.get("enabled") or float(target.get("weight") or 0) <= 0:
        return False
    if from_region is not None:
        source = origins.get(from_region.name)
        if source is not None and source.get("enabled"):
            return False
    return True
