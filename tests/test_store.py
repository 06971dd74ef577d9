from __future__ import annotations

from pathlib import Path

import pytest

from brewctl.core.errors import DeviceNotFoundError, StorageError, UserNotFoundError
from brewctl.core.model import ChallengeKind, CookingMode, DeviceRuntimeState
from brewctl.core.store import DeviceStore, FileDeviceStore


def test_register_and_fetch_device() -> None:
    store = DeviceStore()
    record = store.add_device("owner", "coffee-machine", "Kitchen")

    assert store.user_exists("owner")
    assert record.id == "coffee-machine"
    assert record.name == "Kitchen"
    assert record.state.online is True
    assert record.state.cooking_mode is CookingMode.NONE
    assert record.challenge.kind is ChallengeKind.NONE


def test_unknown_user_and_device() -> None:
    store = DeviceStore()
    with pytest.raises(UserNotFoundError):
        store.fetch_device("ghost", "coffee-machine")

    store.add_user("owner")
    with pytest.raises(DeviceNotFoundError):
        store.fetch_device("owner", "coffee-machine")


def test_update_device_sets_challenge_and_fault() -> None:
    store = DeviceStore()
    store.add_device("owner", "coffee-machine", "Kitchen")

    record = store.update_device("owner", "coffee-machine", tfa="1234", error_code="jammed")
    assert record.challenge.kind is ChallengeKind.PIN
    assert record.challenge.pin == "1234"
    assert record.state.error_code == "jammed"

    record = store.update_device("owner", "coffee-machine", tfa="ack")
    assert record.challenge.kind is ChallengeKind.ACK
    assert record.state.error_code is None

    record = store.update_device("owner", "coffee-machine", tfa="", states={"online": False})
    assert record.challenge.kind is ChallengeKind.NONE
    assert record.state.online is False


def test_update_device_food_presets_and_sync_descriptor() -> None:
    store = DeviceStore()
    store.add_device("owner", "coffee-machine", "Kitchen")
    presets = [{"food_preset_name": "espresso", "supported_units": ["CUPS"]}]
    store.update_device("owner", "coffee-machine", nickname="Nespresso", food_presets=presets)

    [descriptor] = store.list_devices("owner")
    assert descriptor["id"] == "coffee-machine"
    assert descriptor["name"]["nicknames"] == ["Nespresso"]
    assert descriptor["attributes"]["foodPresets"] == presets
    assert descriptor["attributes"]["supportedCookingModes"] == ["BREW"]


def test_disconnect_resets_state_and_keeps_record() -> None:
    store = DeviceStore()
    store.add_device("owner", "coffee-machine", "Kitchen")
    store.set_homegraph("owner", True)
    store.persist_device_state(
        "owner",
        "coffee-machine",
        DeviceRuntimeState(cooking_mode=CookingMode.BREW, food_preset="lungo", food_quantity=1),
    )

    store.disconnect("owner")

    record = store.fetch_device("owner", "coffee-machine")
    assert record.state.cooking_mode is CookingMode.NONE
    assert record.state.food_preset == "NONE"
    assert store.homegraph_enabled("owner") is False


def test_file_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "data" / "devices.yaml"
    store = FileDeviceStore(path)
    store.add_device("owner", "coffee-machine", "Kitchen")
    store.persist_device_state(
        "owner",
        "coffee-machine",
        DeviceRuntimeState(cooking_mode=CookingMode.BREW, food_preset="espresso", food_quantity=1),
    )

    reloaded = FileDeviceStore(path).fetch_device("owner", "coffee-machine")
    assert reloaded.state.cooking_mode is CookingMode.BREW
    assert reloaded.state.food_preset == "espresso"
    assert not (tmp_path / "data" / "devices.yaml.tmp").exists()


def test_file_store_missing_file_is_empty(tmp_path: Path) -> None:
    store = FileDeviceStore(tmp_path / "devices.yaml")
    assert store.user_exists("owner") is False


def test_file_store_rejects_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "devices.yaml"
    path.write_text("users: [unclosed", encoding="utf-8")
    with pytest.raises(StorageError):
        FileDeviceStore(path)
