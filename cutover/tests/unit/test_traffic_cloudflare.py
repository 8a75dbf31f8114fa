from __future__ import annotations

import json

import httpx
import pytest
from redis.asyncio import Redis

from cutover.core.config import get_settings
from cutover.core.errors import ExternalServiceError, IntegrationUnavailableError
from cutover.providers.traffic import get_traffic_manager, reset_traffic_manager
from cutover.providers.traffic.base import TrafficTarget
from cutover.providers.traffic.cloudflare import CloudflareTrafficManager
from cutover.providers.traffic.fake import FakeTrafficManager
from cutover.providers.traffic.noop import NoopTrafficManager
from cutover.services.resilience import CircuitBreaker, CircuitBreakerConfig


US_EAST = TrafficTarget(name="us-east", endpoint="https://us-east.regions.test")
EU_WEST = TrafficTarget(name="eu-west", endpoint="https://eu-west.regions.test:8443/")


@pytest.fixture(autouse=True)
def cloudflare_settings(monkeypatch) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "cloudflare_api_token", "cf-test-token")
    monkeypatch.setattr(settings, "cloudflare_zone_id", "zone-1")
    monkeypatch.setattr(settings, "cloudflare_account_id", "acct-1")
    monkeypatch.setattr(settings, "traffic_hostname", "projects.cutover.test")
    monkeypatch.setattr(settings, "traffic_pool_name", "cutover")
    monkeypatch.setattr(settings, "ext_retry_backoff_ms", 1)


def _ok(result) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "errors": [], "result": result})


def _manager(handler, *, failure_threshold: int = 5) -> CloudflareTrafficManager:
    breaker = CircuitBreaker(
        "traffic.cloudflare",
        redis=None,
        config=CircuitBreakerConfig(failure_threshold=failure_threshold, open_seconds=60, half_open_trials=1),
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CloudflareTrafficManager(client=client, breaker=breaker)


class PoolApi:
    # Minimal in-memory load balancer pool endpoint.
    def __init__(self, origins: list[dict]) -> None:
        self.pool = {"id": "pool-1", "name": "cutover-primary", "origins": origins}
        self.requests: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        assert request.headers["Authorization"] == "Bearer cf-test-token"
        if request.url.path.endswith("/load_balancers/pools"):
            return _ok([{"id": "pool-0", "name": "other"}, {"id": "pool-1", "name": "cutover-primary"}])
        if request.url.path.endswith("/load_balancers/pools/pool-1"):
            if request.method == "PATCH":
                self.pool["origins"] = json.loads(request.content)["origins"]
            return _ok(self.pool)
        return httpx.Response(404, json={"success": False, "errors": [{"message": "not found"}]})


class RecordApi:
    # Minimal DNS record endpoint for the direct-record strategy.
    def __init__(self, content: str = "us-east.regions.test") -> None:
        self.record = {"id": "rec-1", "name": "projects.cutover.test", "type": "CNAME", "content": content}
        self.patches: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/load_balancers/pools"):
            return _ok([])
        if request.url.path == "/client/v4/zones/zone-1/dns_records" and request.method == "GET":
            assert request.url.params["name"] == "projects.cutover.test"
            return _ok([self.record])
        if request.url.path == "/client/v4/zones/zone-1/dns_records/rec-1" and request.method == "PATCH":
            body = json.loads(request.content)
            self.patches.append(body)
            self.record = {**self.record, **body}
            return _ok(self.record)
        return httpx.Response(404, json={"success": False, "errors": []})


@pytest.mark.asyncio
async def test_pool_strategy_drains_source_and_enables_target() -> None:
    api = PoolApi(
        [
            {"name": "us-east", "address": "us-east.regions.test", "enabled": True, "weight": 1},
            {"name": "eu-west", "address": "eu-west.regions.test", "enabled": False, "weight": 0},
            {"name": "ap-south", "address": "ap-south.regions.test", "enabled": False, "weight": 0},
        ]
    )
    manager = _manager(api)

    status = await manager.get_propagation_status(EU_WEST, from_region=US_EAST)
    assert status.propagated is False

    await manager.redirect_traffic(US_EAST, EU_WEST)

    origins = {origin["name"]: origin for origin in api.pool["origins"]}
    assert origins["us-east"]["enabled"] is False
    assert origins["us-east"]["weight"] == 0
    assert origins["eu-west"]["enabled"] is True
    assert origins["eu-west"]["weight"] == 1
    assert origins["ap-south"]["enabled"] is False
    assert ("PATCH", "/client/v4/accounts/acct-1/load_balancers/pools/pool-1") in api.requests

    status = await manager.get_propagation_status(EU_WEST, from_region=US_EAST)
    assert status.propagated is True
    assert status.active_region == "eu-west"


@pytest.mark.asyncio
async def test_pool_strategy_requires_target_origin() -> None:
    api = PoolApi([{"name": "us-east", "address": "us-east.regions.test", "enabled": True, "weight": 1}])
    manager = _manager(api)

    with pytest.raises(ExternalServiceError):
        await manager.redirect_traffic(US_EAST, EU_WEST)
    assert not any(method == "PATCH" for method, _ in api.requests)


@pytest.mark.asyncio
async def test_record_strategy_rewrites_content_with_short_ttl(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "traffic_failover_ttl_s", 60)
    api = RecordApi()
    manager = _manager(api)

    assert (await manager.get_propagation_status(EU_WEST)).propagated is False
    await manager.redirect_traffic(US_EAST, EU_WEST)

    assert api.patches == [{"content": "eu-west.regions.test", "ttl": 60}]
    assert (await manager.get_propagation_status(EU_WEST)).propagated is True


@pytest.mark.asyncio
async def test_record_strategy_without_account_skips_pool_lookup(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "cloudflare_account_id", None)
    seen: list[str] = []
    api = RecordApi()

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return api(request)

    await _manager(handler).redirect_traffic(US_EAST, EU_WEST)
    assert not any("load_balancers" in path for path in seen)
    assert api.record["content"] == "eu-west.regions.test"


@pytest.mark.asyncio
async def test_missing_record_is_external_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _ok([])

    with pytest.raises(ExternalServiceError):
        await _manager(handler).redirect_traffic(US_EAST, EU_WEST)


@pytest.mark.asyncio
async def test_vendor_rejection_is_external_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "errors": [{"code": 10000, "message": "auth"}], "result": None})

    with pytest.raises(ExternalServiceError):
        await _manager(handler).redirect_traffic(US_EAST, EU_WEST)


@pytest.mark.asyncio
async def test_client_errors_do_not_trip_breaker() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(403, json={"success": False, "errors": []})

    manager = _manager(handler, failure_threshold=1)
    for _ in range(2):
        with pytest.raises(ExternalServiceError) as excinfo:
            await manager.redirect_traffic(US_EAST, EU_WEST)
        assert not isinstance(excinfo.value, IntegrationUnavailableError)
    # 4xx responses are not retried.
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_server_errors_retry_then_open_breaker() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(503, json={"success": False, "errors": []})

    manager = _manager(handler, failure_threshold=1)
    with pytest.raises(ExternalServiceError):
        await manager.redirect_traffic(US_EAST, EU_WEST)
    assert calls["count"] == get_settings().ext_retry_max_attempts

    with pytest.raises(IntegrationUnavailableError):
        await manager.redirect_traffic(US_EAST, EU_WEST)
    assert calls["count"] == get_settings().ext_retry_max_attempts


@pytest.mark.asyncio
async def test_propagation_check_reports_false_on_vendor_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    status = await _manager(handler).get_propagation_status(EU_WEST, from_region=US_EAST)
    assert status.propagated is False
    assert status.active_region == "eu-west"


def test_target_host_strips_scheme_and_port() -> None:
    assert EU_WEST.host == "eu-west.regions.test"
    assert TrafficTarget(name="bare", endpoint="bare.regions.test").host == "bare.regions.test"


def test_factory_selects_provider(monkeypatch) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "traffic_provider", "fake")
    reset_traffic_manager()
    manager = get_traffic_manager()
    assert isinstance(manager, FakeTrafficManager)
    assert get_traffic_manager() is manager

    monkeypatch.setattr(settings, "traffic_provider", "cloudflare")
    reset_traffic_manager()
    assert isinstance(get_traffic_manager(), CloudflareTrafficManager)

    monkeypatch.setattr(settings, "cloudflare_api_token", None)
    reset_traffic_manager()
    assert isinstance(get_traffic_manager(), NoopTrafficManager)

    monkeypatch.setattr(settings, "traffic_provider", "route53")
    reset_traffic_manager()
    with pytest.raises(IntegrationUnavailableError):
        get_traffic_manager()
    reset_traffic_manager()


@pytest.mark.asyncio
async def test_redirect_succeeds_when_breaker_redis_is_unreachable() -> None:
    redis = Redis.from_url("redis://127.0.0.1:1/0", decode_responses=True, socket_connect_timeout=0.2)
    breaker = CircuitBreaker(
        "traffic.cloudflare",
        redis=redis,
        config=CircuitBreakerConfig(failure_threshold=5, open_seconds=60, half_open_trials=1),
    )
    api = RecordApi()
    manager = CloudflareTrafficManager(
        client=httpx.AsyncClient(transport=httpx.MockTransport(api)),
        breaker=breaker,
    )
    try:
        await manager.redirect_traffic(US_EAST, EU_WEST)
    finally:
        await redis.aclose()

    assert api.record["content"] == "eu-west.regions.test"
