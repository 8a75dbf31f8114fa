from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cutover.domain.models import Region, effective_region_status


_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_health_signal_used_without_override() -> None:
    assert (
        effective_region_status(
            health_status="degraded",
            operational_status=None,
            operational_status_set_at=None,
            last_health_check=_T0,
        )
        == "degraded"
    )


def test_maintenance_override_always_wins() -> None:
    # A newer probe never lifts maintenance; only an operator action does.
    assert (
        effective_region_status(
            health_status="healthy",
            operational_status="maintenance",
            operational_status_set_at=_T0,
            last_health_check=_T0 + timedelta(hours=1),
        )
        == "maintenance"
    )


def test_cutover_override_holds_until_newer_probe() -> None:
    assert (
        effective_region_status(
            health_status="healthy",
            operational_status="unhealthy",
            operational_status_set_at=_T0,
            last_health_check=_T0 - timedelta(seconds=30),
        )
        == "unhealthy"
    )
    assert (
        effective_region_status(
            health_status="healthy",
            operational_status="degraded",
            operational_status_set_at=_T0,
            last_health_check=None,
        )
        == "degraded"
    )


def test_newer_probe_supersedes_cutover_override() -> None:
    assert (
        effective_region_status(
            health_status="healthy",
            operational_status="degraded",
            operational_status_set_at=_T0,
            last_health_check=_T0 + timedelta(seconds=30),
        )
        == "healthy"
    )


def test_region_status_property_and_override_setter() -> None:
    region = Region(name="us-east", endpoint="https://us-east.regions.test", health_status="healthy")
    region.last_health_check = _T0
    assert region.status == "healthy"

    region.set_operational_status("unhealthy", at=_T0 + timedelta(seconds=1))
    assert region.status == "unhealthy"
    assert region.operational_status_set_at == _T0 + timedelta(seconds=1)

    region.set_operational_status(None)
    assert region.operational_status_set_at is None
    assert region.status == "healthy"
