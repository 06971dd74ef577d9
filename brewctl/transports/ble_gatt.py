"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any

from brewctl.core.device_match import addresses_match
from brewctl.core.errors import AdapterError, ConnectError, WriteError
from brewctl.core.model import DiscoveredAppliance

LOGGER = logging.getLogger(__name__)


def _uuid_key(value: str) -> str:
    return str(uuid.UUID(value))


class BleakLink:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def characteristic(self, service_uuid: str, char_uuid: str) -> Any | None:
        service_key = _uuid_key(service_uuid)
        char_key = _uuid_key(char_uuid)
        for service in self._client.services:
            if _uuid_key(service.uuid) != service_key:
                continue
            for characteristic in service.characteristics:
                if _uuid_key(characteristic.uuid) == char_key:
                    return characteristic
        return None

    async def write(self, characteristic: Any, payload: bytes) -> None:
        from bleak.exc import BleakError

        try:
            await self._client.write_gatt_char(characteristic, payload, response=False)
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise WriteError(f"BLE GATT write failed: {exc}") from exc

    async def disconnect(self) -> None:
        from bleak.exc import BleakError

        try:
            await self._client.disconnect()
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise WriteError(f"BLE disconnect failed: {exc}") from exc


class BleakAdapter:
    async def scan(self, address: str, timeout_s: float) -> DiscoveredAppliance | None:
        try:
            from bleak import BleakScanner
            from bleak.exc import BleakError
        except Exception as exc:  # pragma: no cover - import failure path
            raise AdapterError(
                "BLE transport requires 'bleak'. Install dependency and retry."
            ) from exc

        loop = asyncio.get_running_loop()
        found: asyncio.Future[DiscoveredAppliance] = loop.create_future()

        def _detection_callback(device: Any, _: Any) -> None:
            if found.done() or not addresses_match(device.address, address):
                return
            found.set_result(
                DiscoveredAppliance(address=device.address, name=device.name, handle=device)
            )

        scanner = BleakScanner(detection_callback=_detection_callback)
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise AdapterError(f"Bluetooth adapter unavailable: {exc}") from exc

        try:
            return await asyncio.wait_for(found, timeout=timeout_s)
        except asyncio.TimeoutError:
            return None
        finally:
            await scanner.stop()

    async def connect(
        self,
        appliance: DiscoveredAppliance,
        on_disconnect: Callable[[], None],
    ) -> BleakLink:
        try:
            from bleak import BleakClient
            from bleak.exc import BleakError
        except Exception as exc:  # pragma: no cover - import failure path
            raise ConnectError(
                "BLE transport requires 'bleak'. Install dependency and retry."
            ) from exc

        client = BleakClient(
            appliance.handle or appliance.address,
            disconnected_callback=lambda _client: on_disconnect(),
        )
        try:
            await client.connect()
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            raise ConnectError(f"BLE connect failed for {appliance.address}: {exc}") from exc
        if not client.is_connected:
            raise ConnectError(f"BLE connect failed for {appliance.address}")
        LOGGER.debug("Connected to %s", appliance.address)
        return BleakLink(client)
