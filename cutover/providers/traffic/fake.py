from __future__ import annotations

import asyncio

from cutover.core.errors import ExternalServiceError
from cutover.providers.traffic.base import PropagationStatus, TrafficTarget


class FakeTrafficManager:
    def __init__(self, *, active_region: str | None = None) -> None:
        # Keep the routing table in memory so tests can assert on every switch.
        self.active_region = active_region
        self.redirects: list[tuple[str, str]] = []
        self.status_checks = 0
        self.fail_redirect = False
        self.fail_status = False
        self.never_propagate = False
        # Optional gate that holds redirect_traffic open until released.
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def redirect_traffic(self, from_region: TrafficTarget, to_region: TrafficTarget) -> None:
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_redirect:
            raise ExternalServiceError(f"Fake traffic manager refused redirect to {to_region.name}")
        self.redirects.append((from_region.name, to_region.name))
        self.active_region = to_region.name

    async def get_propagation_status(
        self,
        region: TrafficTarget,
        *,
        from_region: TrafficTarget | None = None,
    ) -> PropagationStatus:
        self.status_checks += 1
        if self.fail_status:
            raise ExternalServiceError("Fake traffic manager status unavailable")
        propagated = not self.never_propagate and self.active_region == region.name
        return PropagationStatus(propagated=propagated, active_region=region.name)
