"""Binary command encoding for the appliance command characteristic."""

from __future__ import annotations

import re

COMMAND_HEADER = bytes.fromhex("03050704")
RESERVED = bytes(4)

TEMPERATURES: dict[str, int] = {
    "morno": 0x01,
    "quente": 0x00,
    "muito quente": 0x02,
}
VOLUMES: dict[str, int] = {
    "ristretto": 0x00,
    "espresso": 0x01,
    "lungo": 0x02,
    "agua quente": 0x04,
    "americano": 0x05,
    "receita": 0x07,
}
DEFAULT_TEMPERATURE_CODE = 0x00
DEFAULT_VOLUME_CODE = 0x00

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def temperature_code(temperature: str | None) -> int:
    return TEMPERATURES.get(temperature or "", DEFAULT_TEMPERATURE_CODE)


def volume_code(volume: str | None) -> int:
    return VOLUMES.get(volume or "", DEFAULT_VOLUME_CODE)


def encode(volume: str | None, temperature: str | None) -> bytes:
    """Build the brew command for a named volume and temperature.

    Unknown names fall back to the default codes instead of failing.
    """
    return COMMAND_HEADER + RESERVED + bytes((temperature_code(temperature), volume_code(volume)))


def parse_auth_key(value: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if not normalized:
        raise ValueError("auth key must not be empty")
    if len(normalized) % 2 != 0:
        raise ValueError("auth key must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise ValueError("auth key must contain only [0-9a-f]")
    return bytes.fromhex(normalized)
