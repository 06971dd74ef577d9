"""Domain-specific errors for brewctl."""

from __future__ import annotations

from enum import Enum


class ChallengeType(str, Enum):
    PIN_NEEDED = "pinNeeded"
    ACK_NEEDED = "ackNeeded"
    CHALLENGE_FAILED_PIN_NEEDED = "challengeFailedPinNeeded"


class BrewctlError(Exception):
    """Base error for brewctl."""

    code = "hardError"


class SettingsError(BrewctlError):
    """Raised when the settings files or environment overrides are invalid."""


class StorageError(BrewctlError):
    """Raised when the device store cannot be read or written."""


class UserNotFoundError(StorageError):
    """Raised when a user has no account in the device store."""


class DeviceNotFoundError(StorageError):
    """Raised when a device record does not exist for a user."""

    code = "deviceNotFound"


class ExecutionError(BrewctlError):
    """Base error for execution requests rejected by the gate."""


class DeviceOfflineError(ExecutionError):
    code = "deviceOffline"


class DeviceFaultError(ExecutionError):
    """Raised with the error code persisted on the device record."""

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


class ActionNotAvailableError(ExecutionError):
    code = "actionNotAvailable"


class ChallengeNeededError(ExecutionError):
    """Base error for requests that need a secondary user confirmation."""

    code = "challengeNeeded"
    challenge_type: ChallengeType


class PinNeededError(ChallengeNeededError):
    challenge_type = ChallengeType.PIN_NEEDED


class AckNeededError(ChallengeNeededError):
    challenge_type = ChallengeType.ACK_NEEDED


class ChallengeFailedPinNeededError(ChallengeNeededError):
    challenge_type = ChallengeType.CHALLENGE_FAILED_PIN_NEEDED


class ControllerError(BrewctlError):
    """Base error for the physical appliance link."""

    code = "deviceUnreachable"


class NotReadyError(ControllerError):
    """Raised when no appliance has been discovered yet."""


class BusyError(ControllerError):
    """Raised when another actuation is already in flight."""


class AdapterError(ControllerError):
    """Raised when the Bluetooth adapter cannot scan."""


class ConnectError(ControllerError):
    """Raised when the link to the appliance cannot be opened."""


class ServiceDiscoveryError(ControllerError):
    """Raised when the auth or command characteristic is missing."""


class DisconnectedError(ControllerError):
    """Raised when the appliance drops the link mid-sequence."""


class WriteError(ControllerError):
    """Raised when a GATT write or disconnect fails on an open link."""
