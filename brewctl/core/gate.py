"""Authorization gate evaluated before any command reaches the appliance."""

from __future__ import annotations

from dataclasses import replace

from brewctl.core.errors import (
    AckNeededError,
    ActionNotAvailableError,
    ChallengeFailedPinNeededError,
    DeviceFaultError,
    DeviceOfflineError,
    PinNeededError,
)
from brewctl.core.model import (
    COOK_COMMAND,
    NO_PRESET,
    ChallengeKind,
    CookingMode,
    DeviceRecord,
    DeviceRuntimeState,
    ExecutionRequest,
)


def _check_challenge(record: DeviceRecord, request: ExecutionRequest) -> None:
    challenge = record.challenge
    if challenge.kind is ChallengeKind.NONE:
        return
    if request.challenge is None:
        if challenge.kind is ChallengeKind.PIN:
            raise PinNeededError("PIN required to operate this device")
        raise AckNeededError("Acknowledgement required to operate this device")
    if challenge.kind is ChallengeKind.PIN and request.challenge.pin != challenge.pin:
        raise ChallengeFailedPinNeededError("Incorrect PIN")


def evaluate(record: DeviceRecord, request: ExecutionRequest) -> DeviceRuntimeState:
    """Return the device state that results from executing ``request``.

    Raises the matching ``ExecutionError`` when the device is offline, has a
    persisted fault, needs a challenge, or does not support the command.
    Nothing is persisted here.
    """
    current = record.state
    if not current.online:
        raise DeviceOfflineError(f"Device '{record.id}' is offline")
    if current.error_code:
        raise DeviceFaultError(current.error_code)

    _check_challenge(record, request)

    if request.command != COOK_COMMAND:
        raise ActionNotAvailableError(
            f"Command '{request.command}' is not available on device '{record.id}'"
        )

    if request.params.start:
        return replace(
            current,
            online=True,
            error_code=None,
            cooking_mode=CookingMode.BREW,
            food_preset=request.params.food_preset or NO_PRESET,
            food_quantity=1,
        )
    return replace(
        current,
        online=True,
        error_code=None,
        cooking_mode=CookingMode.NONE,
        food_preset=NO_PRESET,
    )
