from __future__ import annotations

import logging

from cutover.providers.traffic.base import PropagationStatus, TrafficTarget


logger = logging.getLogger(__name__)


class NoopTrafficManager:
    """Stands in when no traffic vendor is configured; every change is a logged no-op."""

    async def redirect_traffic(self, from_region: TrafficTarget, to_region: TrafficTarget) -> None:
        logger.warning(
            "traffic_manager_not_configured skipping redirect from=%s to=%s",
            from_region.name,
            to_region.name,
        )

    async def get_propagation_status(
        self,
        region: TrafficTarget,
        *,
        from_region: TrafficTarget | None = None,
    ) -> PropagationStatus:
        return PropagationStatus(propagated=True, active_region=region.name)
