from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cutover.core.config import get_settings
from cutover.core.errors import ConflictError
from cutover.persistence.db import SessionLocal
from cutover.providers.traffic.fake import FakeTrafficManager
from cutover.services import failover
from cutover.tests.utils.regions import count_events, create_test_region, load_region


class InMemoryRedis:
    # Implements only the string commands the failover lock uses.
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.expiries: dict[str, int] = {}

    async def set(self, key: str, value: str, *, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.expiries[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def delete(self, key: str) -> int:
        return 1 if self.values.pop(key, None) is not None else 0


class UnreachableRedis:
    async def set(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    async def get(self, key: str):
        raise RedisConnectionError("Connection refused")

    async def delete(self, key: str):
        raise RedisConnectionError("Connection refused")


def _use_redis(monkeypatch, client) -> None:
    async def _client():
        return client

    monkeypatch.setattr(get_settings(), "failover_redis_lock_enabled", True)
    monkeypatch.setattr(failover, "get_resilience_redis", _client)


@pytest.fixture(autouse=True)
def fast_propagation(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "failover_propagation_timeout_s", 0.05)
    monkeypatch.setattr(get_settings(), "failover_propagation_poll_interval_s", 0.01)


@pytest.mark.asyncio
async def test_second_acquirer_is_rejected_until_release(monkeypatch) -> None:
    redis = InMemoryRedis()
    _use_redis(monkeypatch, redis)

    lock_id = await failover.acquire_failover_lock()
    assert lock_id is not None
    key = f"{get_settings().failover_redis_prefix}:lock"
    assert redis.values[key] == lock_id
    assert redis.expiries[key] == get_settings().failover_lock_ttl_s

    with pytest.raises(ConflictError):
        await failover.acquire_failover_lock()

    await failover.release_failover_lock(lock_id)
    assert key not in redis.values
    assert await failover.acquire_failover_lock() is not None


@pytest.mark.asyncio
async def test_release_leaves_another_holders_lock(monkeypatch) -> None:
    redis = InMemoryRedis()
    _use_redis(monkeypatch, redis)
    key = f"{get_settings().failover_redis_prefix}:lock"
    redis.values[key] = "other-instance"

    await failover.release_failover_lock("stale-token")
    await failover.release_failover_lock(None)

    assert redis.values[key] == "other-instance"


@pytest.mark.asyncio
async def test_disabled_lock_never_touches_redis(monkeypatch) -> None:
    _use_redis(monkeypatch, UnreachableRedis())
    monkeypatch.setattr(get_settings(), "failover_redis_lock_enabled", False)

    assert await failover.acquire_failover_lock() is None


@pytest.mark.asyncio
async def test_execute_is_rejected_while_another_instance_holds_lock(monkeypatch) -> None:
    redis = InMemoryRedis()
    _use_redis(monkeypatch, redis)
    redis.values[f"{get_settings().failover_redis_prefix}:lock"] = "other-instance"
    source = await create_test_region("us-east", priority=1, is_primary=True)
    target = await create_test_region("eu-west", priority=2)
    manager = FakeTrafficManager(active_region="us-east")

    async with SessionLocal() as session:
        with pytest.raises(ConflictError):
            await failover.execute_failover(
                session, source.id, target.id, "manual", "operator", traffic_manager=manager
            )

    assert await count_events() == 0
    assert manager.redirects == []
    assert (await load_region(source.id)).is_primary is True


@pytest.mark.asyncio
async def test_execute_releases_lock_after_completion(monkeypatch) -> None:
    redis = InMemoryRedis()
    _use_redis(monkeypatch, redis)
    source = await create_test_region("us-east", priority=1, is_primary=True)
    target = await create_test_region("eu-west", priority=2)

    async with SessionLocal() as session:
        result = await failover.execute_failover(
            session,
            source.id,
            target.id,
            "manual",
            "operator",
            traffic_manager=FakeTrafficManager(active_region="us-east"),
        )

    assert result.success is True
    assert redis.values == {}


@pytest.mark.asyncio
async def test_redis_outage_falls_back_to_store_exclusivity(monkeypatch) -> None:
    _use_redis(monkeypatch, UnreachableRedis())
    source = await create_test_region("us-east", priority=1, is_primary=True)
    target = await create_test_region("eu-west", priority=2)

    assert await failover.acquire_failover_lock() is None

    async with SessionLocal() as session:
        result = await failover.execute_failover(
            session,
            source.id,
            target.id,
            "manual",
            "operator",
            traffic_manager=FakeTrafficManager(active_region="us-east"),
        )
    assert result.success is True
    assert (await load_region(target.id)).is_primary is True
    assert await count_events(status="completed") == 1
