"""Custom exception types."""

from __future__ import annotations


class RelayStationError(Exception):
    """Base class for relay station failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StationNotFoundError(RelayStationError):
    """Raised when a station or token id does not exist."""

    def __init__(self, station_id: str, kind: str = "Station") -> None:
        super().__init__(f"{kind} not found")
        self.station_id = station_id


class StationProtocolError(RelayStationError):
    """Raised when a relay answers with a non-2xx status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        if status_code is not None:
            message = f"{message}: HTTP {status_code}"
        super().__init__(message)
        self.status_code = status_code


class StationTransportError(RelayStationError):
    """Raised when the request never produced a response."""

    def __init__(self, message: str, cause: str) -> None:
        super().__init__(f"{message}: {cause}")
        self.cause = cause


class StorageError(RelayStationError):
    """Raised when the local station store cannot complete a query."""


class StoreNotInitializedError(StorageError):
    def __init__(self) -> None:
        super().__init__("Relay station manager not initialized")


class SettingsDocumentError(RelayStationError):
    """Raised when the active-credential settings document cannot be read or written."""


class PresetError(RelayStationError):
    """Raised for invalid provider preset operations."""
