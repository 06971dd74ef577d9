"""Core data models used across the gate, controller, store, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

COOK_COMMAND = "action.devices.commands.Cook"
NO_PRESET = "NONE"


class CookingMode(str, Enum):
    NONE = "NONE"
    BREW = "BREW"


class ChallengeKind(str, Enum):
    NONE = "none"
    ACK = "ack"
    PIN = "pin"


class ControllerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SERVICE_DISCOVERY = "service_discovery"
    AUTHENTICATING = "authenticating"
    COMMAND_PENDING = "command_pending"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class DeviceChallenge:
    kind: ChallengeKind = ChallengeKind.NONE
    pin: str | None = None

    @classmethod
    def from_tfa(cls, tfa: str | None) -> DeviceChallenge:
        """Build the challenge from the stored ``tfa`` field.

        An empty value disables the challenge, ``"ack"`` asks for an
        acknowledgement and any other value is the expected PIN.
        """
        if not tfa:
            return cls()
        if tfa == ChallengeKind.ACK.value:
            return cls(kind=ChallengeKind.ACK)
        return cls(kind=ChallengeKind.PIN, pin=tfa)

    def to_tfa(self) -> str:
        if self.kind is ChallengeKind.ACK:
            return ChallengeKind.ACK.value
        if self.kind is ChallengeKind.PIN:
            return self.pin or ""
        return ""


@dataclass(frozen=True)
class DeviceRuntimeState:
    online: bool = True
    error_code: str | None = None
    cooking_mode: CookingMode = CookingMode.NONE
    food_preset: str = NO_PRESET
    food_quantity: int = 0

    @classmethod
    def from_states(
        cls,
        states: dict[str, Any] | None,
        error_code: str | None = None,
    ) -> DeviceRuntimeState:
        states = states or {}
        return cls(
            online=bool(states.get("online", False)),
            error_code=error_code or None,
            cooking_mode=CookingMode(states.get("currentCookingMode", CookingMode.NONE.value)),
            food_preset=states.get("currentFoodPreset") or NO_PRESET,
            food_quantity=int(states.get("currentFoodQuantity", 0)),
        )

    def to_states(self) -> dict[str, Any]:
        return {
            "online": self.online,
            "currentCookingMode": self.cooking_mode.value,
            "currentFoodPreset": self.food_preset,
            "currentFoodQuantity": self.food_quantity,
        }

    def reset(self) -> DeviceRuntimeState:
        return replace(
            self,
            error_code=None,
            cooking_mode=CookingMode.NONE,
            food_preset=NO_PRESET,
            food_quantity=0,
        )


@dataclass(frozen=True)
class DeviceRecord:
    id: str
    name: str
    state: DeviceRuntimeState
    challenge: DeviceChallenge = DeviceChallenge()
    nicknames: tuple[str, ...] = ()
    food_presets: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class CookParams:
    start: bool = False
    food_preset: str | None = None


@dataclass(frozen=True)
class ChallengeResponse:
    pin: str | None = None
    ack: bool = False


@dataclass(frozen=True)
class ExecutionRequest:
    command: str = COOK_COMMAND
    params: CookParams = field(default_factory=CookParams)
    challenge: ChallengeResponse | None = None

    @classmethod
    def from_execution(cls, execution: dict[str, Any]) -> ExecutionRequest:
        """Build a request from a platform ``execution`` entry."""
        params = execution.get("params") or {}
        challenge = execution.get("challenge")
        return cls(
            command=execution.get("command", ""),
            params=CookParams(
                start=bool(params.get("start", False)),
                food_preset=params.get("foodPreset"),
            ),
            challenge=ChallengeResponse(
                pin=challenge.get("pin"),
                ack=bool(challenge.get("ack", False)),
            )
            if challenge is not None
            else None,
        )


@dataclass(frozen=True)
class GattProfile:
    auth_service_uuid: str
    auth_char_uuid: str
    command_service_uuid: str
    command_char_uuid: str


@dataclass(frozen=True)
class DiscoveredAppliance:
    address: str
    name: str | None
    handle: Any = field(default=None, compare=False, repr=False)
