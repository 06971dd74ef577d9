"""Hardware address matching for scan results."""

from __future__ import annotations

import re

_SEPARATOR_RE = re.compile(r"[:\-]")


def normalize_address(address: str) -> str:
    return _SEPARATOR_RE.sub("", address.strip()).lower()


def addresses_match(candidate: str, target: str) -> bool:
    return normalize_address(candidate) == normalize_address(target)


def format_address(address: str) -> str:
    compact = normalize_address(address).upper()
    return ":".join(compact[i : i + 2] for i in range(0, len(compact), 2))
