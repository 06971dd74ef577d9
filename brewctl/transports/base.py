"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from brewctl.core.model import DiscoveredAppliance


class ApplianceLink(Protocol):
    async def characteristic(self, service_uuid: str, char_uuid: str) -> Any | None:
        """Return the characteristic handle, or None when it is not exposed."""

    async def write(self, characteristic: Any, payload: bytes) -> None:
        """Write without waiting for a response from the peripheral."""

    async def disconnect(self) -> None: ...


class BLEAdapter(Protocol):
    async def scan(self, address: str, timeout_s: float) -> DiscoveredAppliance | None:
        """Scan until ``address`` advertises, then stop scanning."""

    async def connect(
        self,
        appliance: DiscoveredAppliance,
        on_disconnect: Callable[[], None],
    ) -> ApplianceLink:
        """Open a link and resolve services; ``on_disconnect`` fires on link loss."""
