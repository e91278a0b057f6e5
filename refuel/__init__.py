"""Refuel - Turn-by-turn guidance to nearby fuel stations."""

from .config import CONFIG
from .models import (
    Coordinate,
    Trip,
    InstructionStep,
    ManeuverKind,
    TrackerMode,
    TrackerState,
    TrackerView,
    TrackerError,
    PositionOptions,
)
from .exceptions import (
    ErrorKind,
    PositionErrorCode,
    RefuelError,
    StationNotFoundError,
    InvalidTransitionError,
    CatalogError,
    PositionError,
)
from .logger import Logger
from .geo import (
    haversine_distance,
    bearing_between,
    bearing_to_compass,
    interpolate,
    point_to_segment_distance,
)
from .route import generate_route, distance_to_route, point_along_route
from .instructions import build_script, step_index_for_progress, maneuver_symbol
from .stations import Station, StationDirectory, waze_url
from .gps import TermuxGPS, FixedPosition, GPSRecorder, GPSPlayback
from .audio import Audio
from .tracker import NavigationTracker
from .trip_map import create_trip_map, save_trip_map
from .debug_gui import DebugServer, WebSocketGPS
from .app import Refuel
from .__main__ import main

__all__ = [
    "CONFIG",
    "Coordinate",
    "Trip",
    "InstructionStep",
    "ManeuverKind",
    "TrackerMode",
    "TrackerState",
    "TrackerView",
    "TrackerError",
    "PositionOptions",
    "ErrorKind",
    "PositionErrorCode",
    "RefuelError",
    "StationNotFoundError",
    "InvalidTransitionError",
    "CatalogError",
    "PositionError",
    "Logger",
    "haversine_distance",
    "bearing_between",
    "bearing_to_compass",
    "interpolate",
    "point_to_segment_distance",
    "generate_route",
    "distance_to_route",
    "point_along_route",
    "build_script",
    "step_index_for_progress",
    "maneuver_symbol",
    "Station",
    "StationDirectory",
    "waze_url",
    "TermuxGPS",
    "FixedPosition",
    "GPSRecorder",
    "GPSPlayback",
    "Audio",
    "NavigationTracker",
    "create_trip_map",
    "save_trip_map",
    "DebugServer",
    "WebSocketGPS",
    "Refuel",
    "main",
]
