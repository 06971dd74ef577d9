"""Appliance controller: owns the single link to the machine and drives one brew."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from brewctl.core.encoder import encode
from brewctl.core.errors import (
    BusyError,
    ControllerError,
    DisconnectedError,
    NotReadyError,
    ServiceDiscoveryError,
    WriteError,
)
from brewctl.core.model import ControllerState, DiscoveredAppliance, GattProfile
from brewctl.transports.base import ApplianceLink, BLEAdapter

LOGGER = logging.getLogger(__name__)

DEFAULT_AUTH_SETTLE_S = 1.0
DEFAULT_DISCONNECT_SETTLE_S = 1.0


class ApplianceController:
    """State machine for the brew sequence of a single appliance.

    One ``actuate`` runs at a time. The writes happen in the fixed order
    auth key, command, disconnect, separated by the settle delays. The delays
    give the machine time to process a write; they do not confirm anything.
    """

    def __init__(
        self,
        adapter: BLEAdapter,
        *,
        address: str,
        auth_key: bytes,
        gatt: GattProfile,
        temperature: str,
        auth_settle_s: float = DEFAULT_AUTH_SETTLE_S,
        disconnect_settle_s: float = DEFAULT_DISCONNECT_SETTLE_S,
    ) -> None:
        self._adapter = adapter
        self._address = address
        self._auth_key = auth_key
        self._gatt = gatt
        self._temperature = temperature
        self._auth_settle_s = auth_settle_s
        self._disconnect_settle_s = disconnect_settle_s
        self._state = ControllerState.IDLE
        self._appliance: DiscoveredAppliance | None = None
        self._link: ApplianceLink | None = None
        self._disconnected: asyncio.Future[None] | None = None
        self._closing = False

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def appliance(self) -> DiscoveredAppliance | None:
        return self._appliance

    @property
    def ready(self) -> bool:
        return self._appliance is not None

    async def discover(self, timeout_s: float) -> DiscoveredAppliance | None:
        if self._state is not ControllerState.IDLE:
            raise BusyError(f"Controller is {self._state.value}")
        self._state = ControllerState.SCANNING
        LOGGER.info("Scanning for appliance %s", self._address)
        try:
            appliance = await self._adapter.scan(self._address, timeout_s)
        finally:
            self._state = ControllerState.IDLE
        if appliance is None:
            LOGGER.warning("Appliance %s not found within %.1fs", self._address, timeout_s)
            return None
        LOGGER.info("Appliance found at %s", appliance.address)
        self._appliance = appliance
        return appliance

    async def actuate(self, food_preset: str | None) -> None:
        """Brew ``food_preset`` on the discovered appliance.

        Raises ``BusyError`` while another call is in flight, ``NotReadyError``
        before discovery, and ``DisconnectedError`` if the link drops before the
        sequence completes. Any other failure after connecting closes the link
        and surfaces as a ``ControllerError``.
        """
        if self._state is not ControllerState.IDLE:
            raise BusyError(f"Controller is {self._state.value}")
        if self._appliance is None:
            raise NotReadyError("No appliance discovered yet")

        appliance = self._appliance
        self._state = ControllerState.CONNECTING
        self._closing = False
        disconnected: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._disconnected = disconnected
        sequence = asyncio.ensure_future(self._run_sequence(appliance, food_preset, disconnected))
        try:
            done, _ = await asyncio.wait(
                {sequence, disconnected},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if sequence not in done:
                sequence.cancel()
                await asyncio.gather(sequence, return_exceptions=True)
                raise DisconnectedError(
                    f"Appliance {appliance.address} disconnected during {self._state.value}"
                )
            sequence.result()
        finally:
            if not sequence.done():
                sequence.cancel()
                await asyncio.gather(sequence, return_exceptions=True)
            self._link = None
            self._disconnected = None
            self._state = ControllerState.IDLE

    def _on_disconnect(self, disconnected: asyncio.Future[None]) -> None:
        if disconnected is not self._disconnected:
            LOGGER.debug("Ignoring disconnect from a previous link")
            return
        if self._closing:
            return
        LOGGER.warning("Appliance disconnected")
        if not disconnected.done():
            disconnected.set_result(None)

    async def _run_sequence(
        self,
        appliance: DiscoveredAppliance,
        food_preset: str | None,
        disconnected: asyncio.Future[None],
    ) -> None:
        link = await self._adapter.connect(appliance, lambda: self._on_disconnect(disconnected))
        self._link = link
        LOGGER.info("Connected to appliance %s", appliance.address)

        try:
            await self._send(link, food_preset)
            self._state = ControllerState.DISCONNECTING
            await self._close(link)
        except ControllerError:
            await self._abort(link)
            raise
        except Exception as exc:
            await self._abort(link)
            raise WriteError(f"Link to appliance {appliance.address} failed: {exc}") from exc
        LOGGER.info("Disconnected from appliance %s", appliance.address)

    async def _send(self, link: ApplianceLink, food_preset: str | None) -> None:
        self._state = ControllerState.SERVICE_DISCOVERY
        auth_char, command_char = await self._resolve_characteristics(link)

        loop = asyncio.get_running_loop()
        self._state = ControllerState.AUTHENTICATING
        authenticating_at = loop.time()
        await link.write(auth_char, self._auth_key)
        LOGGER.debug("Auth key sent")

        self._state = ControllerState.COMMAND_PENDING
        elapsed = loop.time() - authenticating_at
        await asyncio.sleep(max(0.0, self._auth_settle_s - elapsed))
        command = encode(food_preset, self._temperature)
        await link.write(command_char, command)
        LOGGER.info("Brew command %s sent for preset %s", command.hex(), food_preset)

        await asyncio.sleep(self._disconnect_settle_s)

    async def _resolve_characteristics(self, link: ApplianceLink) -> tuple[Any, Any]:
        gatt = self._gatt
        auth_char = await link.characteristic(gatt.auth_service_uuid, gatt.auth_char_uuid)
        command_char = await link.characteristic(gatt.command_service_uuid, gatt.command_char_uuid)
        missing = [
            uuid
            for uuid, char in (
                (gatt.auth_char_uuid, auth_char),
                (gatt.command_char_uuid, command_char),
            )
            if char is None
        ]
        if missing:
            raise ServiceDiscoveryError(
                f"Appliance does not expose characteristic(s): {', '.join(missing)}"
            )
        return auth_char, command_char

    async def _close(self, link: ApplianceLink) -> None:
        self._closing = True
        await link.disconnect()

    async def _abort(self, link: ApplianceLink) -> None:
        # The original failure is what the caller sees.
        try:
            await self._close(link)
        except Exception as exc:
            LOGGER.warning("Disconnect after failed sequence also failed: %s", exc)
