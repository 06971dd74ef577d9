"""Settings loading and validation for YAML-based brewctl configuration."""

from __future__ import annotations

import json
import logging
import os
import platform
import re
from dataclasses import dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from brewctl.core.device_match import format_address, normalize_address
from brewctl.core.encoder import TEMPERATURES, VOLUMES, parse_auth_key
from brewctl.core.errors import SettingsError
from brewctl.core.model import GattProfile

LOGGER = logging.getLogger(__name__)

AUTH_KEY_ENV = "NESPRESSO_MACHINE_KEY"
ADDRESS_ENV = "BREWCTL_MACHINE_ADDRESS"
STORE_PATH_ENV = "BREWCTL_STORE_PATH"

_ADDRESS_RE = re.compile(r"^[0-9a-f]{12}$")

AUTH_SERVICE_UUID = "06aa1910-f22a-11e3-9daa-0002a5d5c51b"
AUTH_CHAR_UUID = "06aa3a41-f22a-11e3-9daa-0002a5d5c51b"
COMMAND_SERVICE_UUID = "06aa1920-f22a-11e3-9daa-0002a5d5c51b"
COMMAND_CHAR_UUID = "06aa3a42-f22a-11e3-9daa-0002a5d5c51b"


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise SettingsError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Settings:
    machine_address: str
    auth_key: bytes = field(repr=False)
    gatt: GattProfile
    temperature: str
    volume: str
    auth_settle_s: float
    disconnect_settle_s: float
    scan_timeout_s: float
    store_path: Path
    user: str
    device: str


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    warnings: tuple[str, ...]


def gatt_profile_for(system: str) -> GattProfile:
    """Pick the UUID rendering the host Bluetooth stack reports.

    CoreBluetooth reports hyphenated UUIDs; other stacks use compact hex.
    """
    uuids = (AUTH_SERVICE_UUID, AUTH_CHAR_UUID, COMMAND_SERVICE_UUID, COMMAND_CHAR_UUID)
    if system != "Darwin":
        uuids = tuple(u.replace("-", "") for u in uuids)
    return GattProfile(*uuids)


def _load_schema_validator() -> Any:
    schema_text = resources.files("brewctl.schemas").joinpath("settings.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "brewctl/settings.yaml"


def _default_store_path() -> Path:
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_data / "brewctl/devices.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise SettingsError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise SettingsError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise SettingsError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_settings(doc: dict[str, Any], system: str) -> Settings:
    machine = doc["machine"]
    address = os.environ.get(ADDRESS_ENV) or machine["address"]
    if not _ADDRESS_RE.match(normalize_address(address)):
        raise SettingsError(f"machine.address '{address}' is not a Bluetooth hardware address")
    auth_key_hex = os.environ.get(AUTH_KEY_ENV) or machine["auth_key"]
    try:
        auth_key = parse_auth_key(auth_key_hex)
    except ValueError as exc:
        raise SettingsError(f"machine.auth_key is invalid: {exc}") from None

    store = doc["store"]
    store_path = os.environ.get(STORE_PATH_ENV) or store.get("path")

    return Settings(
        machine_address=format_address(address),
        auth_key=auth_key,
        gatt=gatt_profile_for(system),
        temperature=doc["brew"]["temperature"],
        volume=doc["brew"]["volume"],
        auth_settle_s=float(doc["timing"]["auth_settle_s"]),
        disconnect_settle_s=float(doc["timing"]["disconnect_settle_s"]),
        scan_timeout_s=float(doc["timing"]["scan_timeout_s"]),
        store_path=Path(store_path).expanduser() if store_path else _default_store_path(),
        user=store["user"],
        device=store["device"],
    )


def load_settings(system: str | None = None) -> LoadedSettings:
    warnings: list[str] = []

    defaults_path = resources.files("brewctl.defaults").joinpath("settings.yaml")
    doc = _read_yaml(defaults_path)
    _validate(doc, defaults_path)

    user_path = _config_path()
    if user_path.is_file():
        user_doc = _read_yaml(user_path)
        _validate(user_doc, user_path)
        doc = _merge(doc, user_doc)
        LOGGER.debug("Loaded user settings from %s", user_path)

    if os.environ.get(AUTH_KEY_ENV):
        LOGGER.debug("Auth key taken from %s", AUTH_KEY_ENV)

    settings = _build_settings(doc, system or platform.system())
    if settings.temperature not in TEMPERATURES:
        warnings.append(f"Unknown temperature '{settings.temperature}', the machine default is used")
    if settings.volume not in VOLUMES:
        warnings.append(f"Unknown volume '{settings.volume}', the machine default is used")
    for warning in warnings:
        LOGGER.warning(warning)
    return LoadedSettings(settings=settings, warnings=tuple(warnings))
