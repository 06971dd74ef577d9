"""Stable public API for building tooling on top of brewctl.

This module is the supported integration surface for request handlers and
other callers. Avoid importing from private/internal modules unless
intentionally depending on non-stable internals.
"""

from __future__ import annotations

from typing import Any

from brewctl.core.controller import ApplianceController
from brewctl.core.encoder import encode
from brewctl.core.errors import (
    AckNeededError,
    ActionNotAvailableError,
    AdapterError,
    BrewctlError,
    BusyError,
    ChallengeFailedPinNeededError,
    ChallengeNeededError,
    ChallengeType,
    ConnectError,
    ControllerError,
    DeviceFaultError,
    DeviceNotFoundError,
    DeviceOfflineError,
    DisconnectedError,
    ExecutionError,
    NotReadyError,
    PinNeededError,
    ServiceDiscoveryError,
    SettingsError,
    StorageError,
    UserNotFoundError,
)
from brewctl.core.gate import evaluate
from brewctl.core.model import (
    ChallengeKind,
    ChallengeResponse,
    ControllerState,
    CookingMode,
    CookParams,
    DeviceChallenge,
    DeviceRecord,
    DeviceRuntimeState,
    DiscoveredAppliance,
    ExecutionRequest,
    GattProfile,
)
from brewctl.core.service import BrewService, StateReporter
from brewctl.core.settings_loader import Settings
from brewctl.core.store import DeviceStore, FileDeviceStore
from brewctl.transports.base import BLEAdapter
from brewctl.transports.ble_gatt import BleakAdapter

__all__ = [
    "BrewctlError",
    "SettingsError",
    "StorageError",
    "UserNotFoundError",
    "DeviceNotFoundError",
    "ExecutionError",
    "DeviceOfflineError",
    "DeviceFaultError",
    "ActionNotAvailableError",
    "ChallengeNeededError",
    "ChallengeType",
    "PinNeededError",
    "AckNeededError",
    "ChallengeFailedPinNeededError",
    "ControllerError",
    "NotReadyError",
    "BusyError",
    "AdapterError",
    "ConnectError",
    "ServiceDiscoveryError",
    "DisconnectedError",
    "ChallengeKind",
    "ChallengeResponse",
    "ControllerState",
    "CookingMode",
    "CookParams",
    "DeviceChallenge",
    "DeviceRecord",
    "DeviceRuntimeState",
    "DiscoveredAppliance",
    "ExecutionRequest",
    "GattProfile",
    "Settings",
    "DeviceStore",
    "FileDeviceStore",
    "ApplianceController",
    "BLEAdapter",
    "BleakAdapter",
    "StateReporter",
    "encode",
    "evaluate",
    "Client",
]


class Client:
    """Public client for interacting with brewctl core capabilities.

    A `Client` instance wraps settings, the device store, the authorization
    gate, and the appliance controller behind a stable API intended for
    request handlers (smart home fulfillment, scripts, services).
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        store: DeviceStore | None = None,
        adapter: BLEAdapter | None = None,
        reporter: StateReporter | None = None,
    ) -> None:
        self._service = BrewService(
            settings=settings,
            store=store,
            adapter=adapter,
            reporter=reporter,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def controller_state(self) -> ControllerState:
        return self._service.controller.state

    async def discover(self) -> DiscoveredAppliance | None:
        return await self._service.discover()

    async def execute(
        self,
        user_id: str,
        device_id: str,
        request: ExecutionRequest,
    ) -> DeviceRuntimeState:
        return await self._service.execute(user_id, device_id, request)

    async def execute_commands(
        self,
        user_id: str,
        device_ids: list[str],
        execution: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Run one platform ``execution`` entry and return its command results."""
        request = ExecutionRequest.from_execution(execution)
        return await self._service.execute_devices(user_id, device_ids, request)

    def query(self, user_id: str, device_ids: list[str]) -> dict[str, dict[str, Any]]:
        return self._service.query(user_id, device_ids)

    def sync(self, user_id: str) -> list[dict[str, Any]]:
        return self._service.sync(user_id)

    def register(self, user_id: str, device_id: str, name: str) -> DeviceRecord:
        return self._service.register(user_id, device_id, name)

    def update_device(self, user_id: str, device_id: str, **changes: Any) -> DeviceRecord:
        return self._service.update_device(user_id, device_id, **changes)

    def disconnect(self, user_id: str) -> None:
        self._service.disconnect(user_id)
