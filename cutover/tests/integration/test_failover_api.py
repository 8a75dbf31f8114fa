from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from cutover.apps.api.main import create_app
from cutover.apps.api.routes import ops as ops_routes
from cutover.core.config import get_settings
from cutover.domain.models import Region
from cutover.persistence.db import SessionLocal
from cutover.services import health_monitor


@pytest.fixture(autouse=True)
def fast_propagation(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "failover_propagation_timeout_s", 0.05)
    monkeypatch.setattr(get_settings(), "failover_propagation_poll_interval_s", 0.01)


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _create_region(client: AsyncClient, name: str, **fields) -> dict:
    response = await client.post(
        "/v1/regions",
        json={"name": name, "endpoint": f"https://{name}.regions.test", **fields},
        headers={"X-Actor-Id": "ops-admin"},
    )
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health_endpoint_envelope() -> None:
    async with _client() as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-health-1"})
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"status": "ok"}
    assert body["meta"] == {"request_id": "req-health-1", "api_version": "v1"}
    assert response.headers["X-Request-Id"] == "req-health-1"


@pytest.mark.asyncio
async def test_region_admin_flow() -> None:
    async with _client() as client:
        primary = await _create_region(client, "us-east", priority=1, is_primary=True, active_projects=3)
        await _create_region(client, "eu-west", priority=2)

        duplicate = await client.post(
            "/v1/regions", json={"name": "us-east", "endpoint": "https://other.regions.test"}
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["code"] == "REGION_EXISTS"

        second_primary = await client.post(
            "/v1/regions",
            json={"name": "ap-south", "endpoint": "https://ap-south.regions.test", "is_primary": True},
        )
        assert second_primary.status_code == 409
        assert second_primary.json()["error"]["code"] == "PRIMARY_REGION_EXISTS"

        listing = await client.get("/v1/regions")
        assert listing.status_code == 200
        names = [item["name"] for item in listing.json()["data"]]
        assert names == ["us-east", "eu-west"]

        updated = await client.patch(
            f"/v1/regions/{primary['id']}",
            json={"priority": 5, "metadata": {"provider": "aws"}},
        )
        assert updated.status_code == 200
        assert updated.json()["data"]["priority"] == 5
        assert updated.json()["data"]["metadata"] == {"provider": "aws"}

        detail = await client.get(f"/v1/regions/{primary['id']}")
        assert detail.status_code == 200
        assert detail.json()["data"]["health_stats"]["uptime_percent"] == 100
        assert detail.json()["data"]["recent_checks"] == []

        missing = await client.get("/v1/regions/does-not-exist")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"

        not_in_maintenance = await client.post(f"/v1/regions/{primary['id']}/maintenance/complete")
        assert not_in_maintenance.status_code == 409
        assert not_in_maintenance.json()["error"]["code"] == "REGION_NOT_IN_MAINTENANCE"


@pytest.mark.asyncio
async def test_region_probe_route_persists_check(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health/redis":
            return httpx.Response(503)
        return httpx.Response(200)

    monkeypatch.setattr(
        health_monitor,
        "_probe_client",
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    async with _client() as client:
        region = await _create_region(client, "us-east", is_primary=True)
        probe = await client.post(f"/v1/regions/{region['id']}/probe")
        assert probe.status_code == 200
        assert probe.json()["data"]["status"] == "degraded"
        assert probe.json()["data"]["checks"]["cache"] == "error"

        health = await client.get("/v1/regions/health")
        summary = health.json()["data"][0]
        assert summary["health_status"] == "degraded"
        assert summary["consecutive_failures"] == 1


@pytest.mark.asyncio
async def test_execute_status_history_and_rollback() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True, active_deployments=7)
        target = await _create_region(client, "eu-west", priority=2)

        executed = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": target["id"], "reason": "manual"},
            headers={"X-Actor-Id": "ops-admin"},
        )
        assert executed.status_code == 200
        result = executed.json()["data"]
        assert result["success"] is True
        assert result["from_region"] == "us-east"
        assert result["to_region"] == "eu-west"
        assert result["deployments_affected"] == 7
        assert result["propagation_confirmed"] is True

        status = await client.get("/v1/failover/status")
        assert status.json()["data"] == {"in_progress": False, "current_event": None}

        history = await client.get("/v1/failover/history", params={"limit": 10})
        entries = history.json()["data"]
        assert len(entries) == 1
        assert entries[0]["status"] == "completed"
        assert entries[0]["triggered_by"] == "ops-admin"

        rolled_back = await client.post(f"/v1/failover/events/{result['event_id']}/rollback")
        assert rolled_back.status_code == 200
        assert rolled_back.json()["data"]["to_region"] == "us-east"

        regions = {item["name"]: item for item in (await client.get("/v1/regions")).json()["data"]}
        assert regions["us-east"]["is_primary"] is True
        assert regions["eu-west"]["is_primary"] is False
        assert regions["us-east"]["failover_count"] == 2


@pytest.mark.asyncio
async def test_execute_rejects_bad_requests() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        target = await _create_region(client, "eu-west", priority=2)

        same = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": source["id"]},
        )
        assert same.status_code == 400
        assert same.json()["error"]["code"] == "FAILOVER_VALIDATION_FAILED"

        missing = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": "missing"},
        )
        assert missing.status_code == 404

        bad_reason = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": target["id"], "reason": "because"},
        )
        assert bad_reason.status_code == 400

        from_standby = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": target["id"], "to_region_id": source["id"]},
        )
        assert from_standby.status_code == 400
        assert from_standby.json()["error"]["code"] == "FAILOVER_VALIDATION_FAILED"

        history = await client.get("/v1/failover/history", params={"limit": 0})
        assert history.status_code == 422
        assert history.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_execute_requires_healthy_target() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        target = await _create_region(client, "eu-west", priority=2)

        async with SessionLocal() as session:
            region = await session.get(Region, target["id"])
            region.health_status = "unhealthy"
            await session.commit()

        response = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": target["id"]},
        )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Target region is not healthy"


@pytest.mark.asyncio
async def test_maintenance_schedule_conflict_and_cancel() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        target = await _create_region(client, "eu-west", priority=2)
        when = (datetime.now(timezone.utc) + timedelta(hours=4)).isoformat()

        scheduled = await client.post(
            "/v1/failover/maintenance",
            json={"region_id": source["id"], "scheduled_time": when, "estimated_duration": 30},
        )
        assert scheduled.status_code == 200
        schedule = scheduled.json()["data"]
        assert schedule["scheduled"] is True
        assert schedule["to_region_id"] == target["id"]

        status = (await client.get("/v1/failover/status")).json()["data"]
        assert status["in_progress"] is True
        assert status["current_event"]["status"] == "pending"
        assert status["current_event"]["progress"] == 0

        blocked = await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": target["id"]},
        )
        assert blocked.status_code == 409
        assert blocked.json()["error"]["code"] == "FAILOVER_IN_PROGRESS"
        assert blocked.json()["error"]["details"] == {"active_event_id": schedule["event_id"]}

        pending_block = await client.post(f"/v1/regions/{source['id']}/maintenance/complete")
        assert pending_block.status_code == 409
        assert pending_block.json()["error"]["code"] == "MAINTENANCE_FAILOVER_PENDING"

        cancelled = await client.post(f"/v1/failover/events/{schedule['event_id']}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["data"] == {"cancelled": True, "event_id": schedule["event_id"]}

        again = await client.post(f"/v1/failover/events/{schedule['event_id']}/cancel")
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "FAILOVER_NOT_CANCELLABLE"

        region = (await client.get(f"/v1/regions/{source['id']}")).json()["data"]
        assert region["status"] == "healthy"


@pytest.mark.asyncio
async def test_maintenance_start_and_complete() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        target = await _create_region(client, "eu-west", priority=2)
        scheduled = await client.post(
            "/v1/failover/maintenance",
            json={
                "region_id": source["id"],
                "scheduled_time": datetime.now(timezone.utc).isoformat(),
                "estimated_duration": 10,
            },
        )
        event_id = scheduled.json()["data"]["event_id"]

        started = await client.post(f"/v1/failover/events/{event_id}/start")
        assert started.status_code == 200
        assert started.json()["data"]["to_region"] == "eu-west"

        restarted = await client.post(f"/v1/failover/events/{event_id}/start")
        assert restarted.status_code == 409
        assert restarted.json()["error"]["code"] == "FAILOVER_NOT_STARTABLE"

        completed = await client.post(f"/v1/regions/{source['id']}/maintenance/complete")
        assert completed.status_code == 200
        assert completed.json()["data"]["operational_status"] is None
        assert completed.json()["data"]["is_primary"] is False

        promoted = (await client.get(f"/v1/regions/{target['id']}")).json()["data"]
        assert promoted["is_primary"] is True


@pytest.mark.asyncio
async def test_maintenance_without_target_is_not_scheduled() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        response = await client.post(
            "/v1/failover/maintenance",
            json={
                "region_id": source["id"],
                "scheduled_time": datetime.now(timezone.utc).isoformat(),
                "estimated_duration": 10,
            },
        )
    assert response.status_code == 200
    assert response.json()["data"] == {"scheduled": False, "event_id": None, "to_region_id": None}


@pytest.mark.asyncio
async def test_check_route_reports_untriggered_region() -> None:
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        response = await client.post(f"/v1/failover/check/{source['id']}")
    assert response.status_code == 200
    assert response.json()["data"] == {"triggered": False, "result": None}


@pytest.mark.asyncio
async def test_ops_metrics_reports_failover_counters(monkeypatch) -> None:
    async def _breaker_state(name: str) -> str:
        return "closed"

    monkeypatch.setattr(ops_routes, "get_circuit_breaker_state", _breaker_state)
    async with _client() as client:
        source = await _create_region(client, "us-east", priority=1, is_primary=True)
        target = await _create_region(client, "eu-west", priority=2)
        await client.post(
            "/v1/failover/execute",
            json={"from_region_id": source["id"], "to_region_id": target["id"]},
        )
        response = await client.get("/v1/ops/metrics")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["counters"]["failover_completed_total"] == 1
    assert data["gauges"]["failover_in_progress"] == 0
    assert data["circuit_breaker_state"] == {"traffic.cloudflare": "closed"}
    assert set(data["db_pool"]) == {"size", "checked_out", "checked_in", "overflow"}
