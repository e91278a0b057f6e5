"""Error taxonomy for Refuel."""

from enum import Enum


class ErrorKind(Enum):
    """Kinds of error the tracker can surface as its last error"""
    PERMISSION_DENIED = "permission-denied"
    POSITION_UNAVAILABLE = "position-unavailable"
    ACQUISITION_TIMEOUT = "acquisition-timeout"
    ACQUISITION_FAILED = "acquisition-failed"
    TRACKING_TIMEOUT = "tracking-timeout"
    TRACKING_ERROR = "tracking-error"
    STATION_NOT_FOUND = "station-not-found"


class PositionErrorCode(Enum):
    """Failure codes reported by a position source"""
    PERMISSION_DENIED = "permission-denied"
    POSITION_UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class RefuelError(Exception):
    """Base exception for Refuel"""
    pass


class StationNotFoundError(RefuelError):
    """Raised when navigation is started for an unknown station id"""

    def __init__(self, station_id: str):
        super().__init__(f"Station not found: {station_id}")
        self.station_id = station_id


class InvalidTransitionError(RefuelError):
    """Raised when a tracker operation is not valid in the current mode"""

    def __init__(self, operation: str, mode):
        super().__init__(f"Cannot {operation} while {mode.value}")
        self.operation = operation
        self.mode = mode


class CatalogError(RefuelError):
    """Raised when a station catalog file cannot be read"""
    pass


class PositionError(RefuelError):
    """A failed position request, handed to a source's error callback"""

    def __init__(self, code: PositionErrorCode, message: str = ""):
        super().__init__(message or code.value)
        self.code = code
        self.message = message or code.value
