from __future__ import annotations

import logging

from cutover.core.config import get_settings
from cutover.core.errors import IntegrationUnavailableError
from cutover.providers.traffic.base import PropagationStatus, TrafficManager, TrafficTarget
from cutover.providers.traffic.cloudflare import CloudflareTrafficManager
from cutover.providers.traffic.fake import FakeTrafficManager
from cutover.providers.traffic.noop import NoopTrafficManager


logger = logging.getLogger(__name__)

_manager: TrafficManager | None = None


def get_traffic_manager() -> TrafficManager:
    # Build the configured manager once per process so clients and fakes are shared.
    global _manager
    if _manager is not None:
        return _manager
    settings = get_settings()
    provider = (settings.traffic_provider or "noop").lower()

    if provider == "fake":
        _manager = FakeTrafficManager()
    elif provider == "noop":
        _manager = NoopTrafficManager()
    elif provider == "cloudflare":
        if not settings.cloudflare_api_token or not settings.cloudflare_zone_id:
            logger.warning("cloudflare_credentials_missing using noop traffic manager")
            _manager = NoopTrafficManager()
        else:
            _manager = CloudflareTrafficManager()
    else:
        raise IntegrationUnavailableError(f"Unsupported traffic provider: {provider}")
    return _manager


def reset_traffic_manager() -> None:
    # Allow tests to swap providers after tweaking settings.
    global _manager
    _manager = None


__all__ = [
    "PropagationStatus",
    "TrafficManager",
    "TrafficTarget",
    "get_traffic_manager",
    "reset_traffic_manager",
]
