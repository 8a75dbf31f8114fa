from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

if TYPE_CHECKING:
    from cutover.domain.models import Region


def endpoint_host(endpoint: str) -> str:
    # Records and pool origins carry bare hostnames, regions carry probe base URLs.
    parsed = urlparse(endpoint if "://" in endpoint else f"//{endpoint}")
    return parsed.hostname or endpoint


@dataclass(frozen=True)
class TrafficTarget:
    name: str
    endpoint: str

    @property
    def host(self) -> str:
        return endpoint_host(self.endpoint)

    @classmethod
    def from_region(cls, region: "Region") -> "TrafficTarget":
        return cls(name=region.name, endpoint=region.endpoint)


@dataclass(frozen=True)
class PropagationStatus:
    propagated: bool
    active_region: str


class TrafficManager(Protocol):
    async def redirect_traffic(self, from_region: TrafficTarget, to_region: TrafficTarget) -> None:
        ...

    async def get_propagation_status(
        self,
        region: TrafficTarget,
        *,
        from_region: TrafficTarget | None = None,
    ) -> PropagationStatus:
        ...
