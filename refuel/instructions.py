"""Turn-by-turn instruction script for a trip."""

import math
from dataclasses import dataclass

from .config import CONFIG
from .models import InstructionStep, ManeuverKind

ARRIVAL_MESSAGE = "You have arrived at your destination"
ARRIVING_LABEL = "Arriving"


@dataclass(frozen=True)
class ManeuverSymbol:
    """How a maneuver is drawn: glyph, rotation in degrees, badge colour"""
    glyph: str
    rotation: int
    color: str


# Every ManeuverKind must have an entry; tests enforce it.
MANEUVER_SYMBOLS = {
    ManeuverKind.START: ManeuverSymbol("pin", 0, "green"),
    ManeuverKind.STRAIGHT: ManeuverSymbol("chevron", 90, "blue"),
    ManeuverKind.TURN_RIGHT: ManeuverSymbol("chevron", 0, "blue"),
    ManeuverKind.TURN_LEFT: ManeuverSymbol("chevron", 180, "blue"),
    ManeuverKind.KEEP_LANE: ManeuverSymbol("navigation", 0, "orange"),
    ManeuverKind.ARRIVE: ManeuverSymbol("pin", 0, "red"),
}


def maneuver_symbol(kind: ManeuverKind) -> ManeuverSymbol:
    return MANEUVER_SYMBOLS[kind]


def build_script(station_name: str) -> list[InstructionStep]:
    """Fixed instruction sequence for a trip to the named station.

    The steps do not follow the real geometry; they are advanced by progress.
    """
    rows = [
        ("Start at your current location", "Your location", 0, ManeuverKind.START),
        ("Continue straight on the current street", "Main Street", 300, ManeuverKind.STRAIGHT),
        ("Turn right at the next intersection", "Carrera 15", 500, ManeuverKind.TURN_RIGHT),
        ("Keep in the left lane", "Carrera 15", 400, ManeuverKind.KEEP_LANE),
        ("Turn left onto the main avenue", "Avenida Ciudad", 600, ManeuverKind.TURN_LEFT),
        ("Your destination is on the right", station_name or "Destination", 100, ManeuverKind.ARRIVE),
    ]
    return [
        InstructionStep(index=i, text=text, street=street, leg_distance_m=leg, maneuver=kind)
        for i, (text, street, leg, kind) in enumerate(rows)
    ]


def step_index_for_progress(progress_percent: float, step_count: int) -> int:
    """Map progress (0-100) onto a step index, clamped to the last step"""
    if step_count <= 0:
        return 0
    index = math.floor(progress_percent / 100 * step_count)
    return max(0, min(step_count - 1, index))


def eta_minutes(distance_km: float) -> int:
    """ETA at the fixed pace, rounded up to whole minutes"""
    return math.ceil(distance_km * CONFIG["minutes_per_km"])


def format_eta(minutes: int) -> str:
    return f"{minutes} min"


def next_step_distance(progress_percent: float, step_index: int,
                       steps: list[InstructionStep]) -> int:
    """Meters left on the current step's leg, estimated from progress"""
    if not steps or step_index >= len(steps) - 1:
        return 0
    per_step = 100 / len(steps)
    ratio = (progress_percent % per_step) / per_step
    return round(steps[step_index].leg_distance_m * (1 - ratio))


def format_next_step_distance(progress_percent: float, step_index: int,
                              steps: list[InstructionStep]) -> str:
    if step_index >= len(steps) - 1:
        return ARRIVING_LABEL
    return f"{next_step_distance(progress_percent, step_index, steps)} m"


def start_announcement(station_name: str, steps: list[InstructionStep]) -> str:
    first = steps[0].text if steps else ""
    return f"Starting navigation to {station_name}. {first}".strip()
