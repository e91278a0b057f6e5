"""Data classes for Refuel."""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Optional

from .exceptions import ErrorKind


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float
    accuracy: Optional[float] = field(default=None, compare=False)
    timestamp: Optional[float] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Coordinate":
        return cls(**d)


class ManeuverKind(Enum):
    START = "start"
    STRAIGHT = "straight"
    TURN_RIGHT = "turn-right"
    TURN_LEFT = "turn-left"
    KEEP_LANE = "keep-lane"
    ARRIVE = "arrive"


class TrackerMode(Enum):
    IDLE = "idle"
    ACQUIRING_POSITION = "acquiring-position"
    LIVE_TRACKING = "live-tracking"
    SIMULATED = "simulated"
    RECOVERING_FROM_ERROR = "recovering-from-error"


@dataclass(frozen=True)
class Trip:
    """One navigation attempt from the user's origin to a station"""
    station_id: str
    station_name: str
    origin: Coordinate
    destination: Coordinate
    nominal_distance_km: float

    @property
    def nominal_distance_m(self) -> float:
        return self.nominal_distance_km * 1000


@dataclass(frozen=True)
class InstructionStep:
    index: int
    text: str
    street: str
    leg_distance_m: float
    maneuver: ManeuverKind


@dataclass(frozen=True)
class PositionOptions:
    timeout_ms: int
    high_accuracy: bool = False


@dataclass(frozen=True)
class TrackerError:
    """Error descriptor kept for display"""
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class TrackerState:
    """Mutable navigation state, owned by NavigationTracker"""
    mode: TrackerMode = TrackerMode.IDLE
    current_position: Optional[Coordinate] = None
    progress_percent: float = 0.0
    current_step_index: int = 0
    remaining_distance_m: float = 0.0
    eta_minutes: int = 0
    last_error: Optional[TrackerError] = None
    high_accuracy_requested: bool = False
    arrival_announced: bool = False


@dataclass(frozen=True)
class TrackerView:
    """Read model of the tracker for display"""
    mode: TrackerMode
    current_position: Optional[Coordinate]
    progress_percent: float
    current_step_index: int
    remaining_distance_display: str
    eta_display: str
    next_step_distance_display: str
    instruction: Optional[InstructionStep]
    last_error: Optional[TrackerError]
    active_source: Optional[str]

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "location": self.current_position.to_dict() if self.current_position else None,
            "progress": round(self.progress_percent, 1),
            "step_index": self.current_step_index,
            "remaining": self.remaining_distance_display,
            "eta": self.eta_display,
            "next_step_distance": self.next_step_distance_display,
            "instruction": self.instruction.text if self.instruction else None,
            "street": self.instruction.street if self.instruction else None,
            "maneuver": self.instruction.maneuver.value if self.instruction else None,
            "error": self.last_error.to_dict() if self.last_error else None,
            "source": self.active_source,
        }
