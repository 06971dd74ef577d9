"""Service layer used by CLI and future request handlers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from brewctl.core import gate
from brewctl.core.controller import ApplianceController
from brewctl.core.errors import BrewctlError
from brewctl.core.model import (
    CookingMode,
    DeviceRecord,
    DeviceRuntimeState,
    DiscoveredAppliance,
    ExecutionRequest,
)
from brewctl.core.responses import command_error, command_success, query_error
from brewctl.core.settings_loader import Settings, load_settings
from brewctl.core.store import DeviceStore, FileDeviceStore
from brewctl.transports.base import BLEAdapter
from brewctl.transports.ble_gatt import BleakAdapter

LOGGER = logging.getLogger(__name__)

StateReporter = Callable[[str, str, dict[str, Any]], None]


class BrewService:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        store: DeviceStore | None = None,
        adapter: BLEAdapter | None = None,
        controller: ApplianceController | None = None,
        reporter: StateReporter | None = None,
    ) -> None:
        if settings is None:
            loaded = load_settings()
            self.settings = loaded.settings
            self.load_warnings = loaded.warnings
        else:
            self.settings = settings
            self.load_warnings = ()
        self.store = store if store is not None else FileDeviceStore(self.settings.store_path)
        self.controller = controller or ApplianceController(
            adapter or BleakAdapter(),
            address=self.settings.machine_address,
            auth_key=self.settings.auth_key,
            gatt=self.settings.gatt,
            temperature=self.settings.temperature,
            auth_settle_s=self.settings.auth_settle_s,
            disconnect_settle_s=self.settings.disconnect_settle_s,
        )
        self.reporter = reporter

    def _report(self, user_id: str, device_id: str, states: dict[str, Any]) -> None:
        if self.reporter is None:
            return
        self.reporter(user_id, device_id, states)

    async def discover(self) -> DiscoveredAppliance | None:
        return await self.controller.discover(self.settings.scan_timeout_s)

    async def execute(
        self,
        user_id: str,
        device_id: str,
        request: ExecutionRequest,
    ) -> DeviceRuntimeState:
        record = self.store.fetch_device(user_id, device_id)
        new_state = gate.evaluate(record, request)
        if new_state.cooking_mode is CookingMode.BREW:
            await self.controller.actuate(new_state.food_preset)
        self.store.persist_device_state(user_id, device_id, new_state)
        self._report(user_id, device_id, new_state.to_states())
        LOGGER.info(
            "Executed %s on %s: %s",
            request.command,
            device_id,
            new_state.cooking_mode.value,
        )
        return new_state

    async def execute_devices(
        self,
        user_id: str,
        device_ids: list[str],
        request: ExecutionRequest,
    ) -> list[dict[str, Any]]:
        """Execute ``request`` on each device in turn and build command results.

        Successful devices are grouped into a single SUCCESS entry placed after
        the per-device errors.
        """
        self.store.require_user(user_id)
        commands: list[dict[str, Any]] = []
        succeeded: list[str] = []
        states: dict[str, Any] = {}
        for device_id in device_ids:
            try:
                new_state = await self.execute(user_id, device_id, request)
            except BrewctlError as exc:
                LOGGER.warning("Execution on %s failed: %s", device_id, exc)
                commands.append(command_error(device_id, exc))
                continue
            succeeded.append(device_id)
            states = new_state.to_states()
        if succeeded:
            commands.append(command_success(succeeded, states))
        return commands

    def query(self, user_id: str, device_ids: list[str]) -> dict[str, dict[str, Any]]:
        self.store.require_user(user_id)
        results: dict[str, dict[str, Any]] = {}
        for device_id in device_ids:
            try:
                record = self.store.fetch_device(user_id, device_id)
            except BrewctlError as exc:
                LOGGER.warning("Query on %s failed: %s", device_id, exc)
                results[device_id] = query_error()
                continue
            states = record.state.to_states()
            results[device_id] = {**states, "status": "SUCCESS"}
            self._report(user_id, device_id, states)
        return results

    def sync(self, user_id: str) -> list[dict[str, Any]]:
        self.store.set_homegraph(user_id, True)
        return self.store.list_devices(user_id)

    def register(self, user_id: str, device_id: str, name: str) -> DeviceRecord:
        return self.store.add_device(user_id, device_id, name)

    def update_device(self, user_id: str, device_id: str, **changes: Any) -> DeviceRecord:
        record = self.store.update_device(user_id, device_id, **changes)
        if changes.get("states") is not None:
            self._report(user_id, device_id, record.state.to_states())
        return record

    def disconnect(self, user_id: str) -> None:
        self.store.disconnect(user_id)
        LOGGER.info("User %s disconnected", user_id)
