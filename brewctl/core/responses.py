"""Mapping of execution outcomes to smart home command results."""

from __future__ import annotations

from typing import Any

from brewctl.core.errors import BrewctlError, ChallengeNeededError


def command_error(device_id: str, exc: BrewctlError) -> dict[str, Any]:
    result: dict[str, Any] = {
        "ids": [device_id],
        "status": "ERROR",
        "errorCode": exc.code,
    }
    if isinstance(exc, ChallengeNeededError):
        result["challengeNeeded"] = {"type": exc.challenge_type.value}
    return result


def command_success(device_ids: list[str], states: dict[str, Any]) -> dict[str, Any]:
    return {
        "ids": list(device_ids),
        "status": "SUCCESS",
        "states": dict(states),
    }


def query_error() -> dict[str, Any]:
    return {"status": "ERROR", "errorCode": "deviceOffline"}
