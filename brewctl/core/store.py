"""Device and user records backing the execution flow."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from brewctl.core.errors import DeviceNotFoundError, StorageError, UserNotFoundError
from brewctl.core.model import (
    DeviceChallenge,
    DeviceRecord,
    DeviceRuntimeState,
)

LOGGER = logging.getLogger(__name__)

DEVICE_TYPE = "action.devices.types.COFFEE_MAKER"
DEVICE_TRAITS = ("action.devices.traits.Cook",)
SUPPORTED_COOKING_MODES = ("BREW",)


class DeviceStore:
    """In-memory store of users and their devices.

    The layout mirrors the documents the smart home platform syncs: each device
    keeps its platform ``states`` mapping plus the ``errorCode`` and ``tfa``
    fields that gate execution.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data if data is not None else {"users": {}}
        self._data.setdefault("users", {})

    def _save(self) -> None:
        pass

    def _user(self, user_id: str) -> dict[str, Any]:
        user = self._data["users"].get(user_id)
        if user is None:
            raise UserNotFoundError(
                f"User {user_id} has not created an account, so there are no devices"
            )
        return user

    def _device(self, user_id: str, device_id: str) -> dict[str, Any]:
        device = self._user(user_id)["devices"].get(device_id)
        if device is None:
            raise DeviceNotFoundError(f"Device '{device_id}' not found for user {user_id}")
        return device

    def user_exists(self, user_id: str) -> bool:
        return user_id in self._data["users"]

    def require_user(self, user_id: str) -> None:
        self._user(user_id)

    def add_user(self, user_id: str) -> None:
        if self.user_exists(user_id):
            return
        self._data["users"][user_id] = {"homegraph": False, "devices": {}}
        self._save()

    def add_device(self, user_id: str, device_id: str, name: str) -> DeviceRecord:
        self.add_user(user_id)
        devices = self._user(user_id)["devices"]
        if device_id not in devices:
            devices[device_id] = {
                "name": name,
                "nicknames": [],
                "type": DEVICE_TYPE,
                "traits": list(DEVICE_TRAITS),
                "willReportState": True,
                "states": DeviceRuntimeState().to_states(),
                "errorCode": "",
                "tfa": "",
                "attributes": {"supportedCookingModes": list(SUPPORTED_COOKING_MODES)},
            }
            self._save()
            LOGGER.info("Registered device %s for user %s", device_id, user_id)
        return self.fetch_device(user_id, device_id)

    def homegraph_enabled(self, user_id: str) -> bool:
        return bool(self._user(user_id).get("homegraph"))

    def set_homegraph(self, user_id: str, enabled: bool) -> None:
        self._user(user_id)["homegraph"] = enabled
        self._save()

    def list_devices(self, user_id: str) -> list[dict[str, Any]]:
        """Return the sync descriptors for every device of ``user_id``."""
        descriptors: list[dict[str, Any]] = []
        for device_id, doc in sorted(self._user(user_id)["devices"].items()):
            descriptors.append(
                {
                    "id": device_id,
                    "type": doc.get("type", DEVICE_TYPE),
                    "traits": list(doc.get("traits", DEVICE_TRAITS)),
                    "name": {
                        "defaultNames": [doc["name"]],
                        "name": doc["name"],
                        "nicknames": list(doc.get("nicknames", [])),
                    },
                    "willReportState": bool(doc.get("willReportState", True)),
                    "attributes": dict(doc.get("attributes", {})),
                }
            )
        return descriptors

    def fetch_device(self, user_id: str, device_id: str) -> DeviceRecord:
        doc = self._device(user_id, device_id)
        attributes = doc.get("attributes") or {}
        return DeviceRecord(
            id=device_id,
            name=doc.get("name", device_id),
            state=DeviceRuntimeState.from_states(doc.get("states"), doc.get("errorCode")),
            challenge=DeviceChallenge.from_tfa(doc.get("tfa")),
            nicknames=tuple(doc.get("nicknames", [])),
            food_presets=tuple(attributes.get("foodPresets", [])),
        )

    def persist_device_state(self, user_id: str, device_id: str, state: DeviceRuntimeState) -> None:
        doc = self._device(user_id, device_id)
        doc["states"] = state.to_states()
        self._save()

    def update_device(
        self,
        user_id: str,
        device_id: str,
        *,
        name: str | None = None,
        nickname: str | None = None,
        states: dict[str, Any] | None = None,
        error_code: str | None = None,
        tfa: str | None = None,
        food_presets: list[dict[str, Any]] | None = None,
    ) -> DeviceRecord:
        """Apply an out-of-band device update.

        ``error_code`` is always written, so omitting it clears a persisted
        fault. ``tfa`` is only touched when given; an empty string removes the
        challenge.
        """
        doc = self._device(user_id, device_id)
        if name:
            doc["name"] = name
        if nickname:
            doc["nicknames"] = [nickname]
        if states:
            doc["states"] = {**doc.get("states", {}), **states}
        doc["errorCode"] = error_code or ""
        if tfa is not None:
            doc["tfa"] = tfa
        if food_presets:
            doc["attributes"] = {
                "foodPresets": food_presets,
                "supportedCookingModes": list(SUPPORTED_COOKING_MODES),
            }
        self._save()
        return self.fetch_device(user_id, device_id)

    def disconnect(self, user_id: str) -> None:
        """Unlink the account and reset every device to its idle state."""
        user = self._user(user_id)
        user["homegraph"] = False
        for doc in user["devices"].values():
            current = DeviceRuntimeState.from_states(doc.get("states"))
            doc["states"] = current.reset().to_states()
        self._save()


class FileDeviceStore(DeviceStore):
    """Device store persisted as a YAML document after every change."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(self._load(path))

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {"users": {}}
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Could not read device store {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise StorageError(f"Invalid YAML in device store {path}: {exc}") from exc
        if loaded is None:
            return {"users": {}}
        if not isinstance(loaded, dict) or not isinstance(loaded.get("users", {}), dict):
            raise StorageError(f"Device store {path} must contain a 'users' mapping")
        return loaded

    def _save(self) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(yaml.safe_dump(self._data, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Could not write device store {self.path}: {exc}") from exc
