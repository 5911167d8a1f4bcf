"""Error taxonomy shared by the relay and the studio client."""

from typing import Optional


class StudioError(Exception):
    """Base class for errors surfaced to the user as a notification."""

    title = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StudioError):
    """Bad local input. Never reaches the network."""

    title = "Invalid Input"


class DeviceAccessError(StudioError):
    """Microphone or audio output unavailable or denied."""

    title = "Device Unavailable"


class DecodeError(StudioError):
    """Audio bytes could not be decoded."""

    title = "Playback Failed"


class RemoteOperationError(StudioError):
    """Network or HTTP failure while talking to the relay."""

    title = "Request Failed"

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.operation = operation
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.operation} failed ({self.status}): {self.message}"
        return f"{self.operation} failed: {self.message}"


class ProviderContractError(RemoteOperationError):
    """The provider answered with success but left out a required field."""

    title = "Unexpected Response"


class StorageParseError(StudioError):
    """Persisted local state could not be parsed. Recovered silently."""

    title = "Corrupt Local State"

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class GatewayError(Exception):
    """Relay-side failure reported by (or while reaching) the provider."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ConfigurationError(Exception):
    """The relay is missing its provider credential."""
