"""Shared fakes: a manual event loop, scripted position sources, a voice sink."""

import pytest

from refuel.exceptions import PositionError, PositionErrorCode
from refuel.logger import Logger
from refuel.models import Coordinate
from refuel.stations import Station, StationDirectory
from refuel.tracker import NavigationTracker

BOGOTA = Coordinate(lat=4.6097, lon=-74.0817)
STATION_POSITION = Coordinate(lat=4.6200, lon=-74.0700)


class FakeTimer:
    def __init__(self, when: float, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop: call_soon/call_later driven by advance()"""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback, *args) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def call_soon(self, callback, *args) -> FakeTimer:
        return self.call_later(0, callback, *args)

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float):
        target = self.now + seconds
        while True:
            due = [t for t in self.pending() if t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.now = max(self.now, timer.when)
            timer.callback(*timer.args)
        self.now = target


class FakeHandle:
    def __init__(self, source, kind):
        self.source = source
        self.kind = kind
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ScriptedSource:
    """Position source whose callbacks the test fires by hand.

    fix_result, when set, is delivered synchronously from
    get_current_position: a Coordinate, a PositionErrorCode, or an exception
    instance to raise.
    """

    def __init__(self, fix_result=None):
        self.fix_result = fix_result
        self.fix_requests = []
        self.watches = []
        self.watch_error = None

    def get_current_position(self, on_success, on_error, options):
        if isinstance(self.fix_result, Exception):
            raise self.fix_result
        handle = FakeHandle(self, "fix")
        self.fix_requests.append((handle, on_success, on_error, options))
        if isinstance(self.fix_result, Coordinate):
            on_success(self.fix_result)
        elif isinstance(self.fix_result, PositionErrorCode):
            on_error(PositionError(self.fix_result))
        return handle

    def watch_position(self, on_success, on_error, options):
        if self.watch_error:
            raise self.watch_error
        handle = FakeHandle(self, "watch")
        self.watches.append((handle, on_success, on_error, options))
        return handle

    # Helpers for tests

    @property
    def active_watches(self):
        return [w for w in self.watches if not w[0].cancelled]

    def resolve_fix(self, location: Coordinate, index: int = -1):
        _, on_success, _, _ = self.fix_requests[index]
        on_success(location)

    def fail_fix(self, code: PositionErrorCode, index: int = -1):
        _, _, on_error, _ = self.fix_requests[index]
        on_error(PositionError(code))

    def push(self, location: Coordinate, index: int = -1):
        _, on_success, _, _ = self.watches[index]
        on_success(location)

    def push_error(self, code: PositionErrorCode, message: str = "", index: int = -1):
        _, _, on_error, _ = self.watches[index]
        on_error(PositionError(code, message))


class RecordingVoice:
    def __init__(self):
        self.spoken: list[str] = []
        self.cancels = 0

    def speak(self, text: str):
        self.spoken.append(text)

    def cancel_all(self):
        self.cancels += 1


def straight_route(start: Coordinate, end: Coordinate) -> list[Coordinate]:
    return [start, end]


@pytest.fixture
def station():
    return Station(
        id="station-0",
        name="Terpel Chapinero",
        brand="Terpel",
        position=STATION_POSITION,
        price="$9500",
        distance="1.2 km",
        address="Calle 45 # 10-20",
        rating=4.5,
        services=["Shop", "Air"],
    )


@pytest.fixture
def directory(station):
    return StationDirectory([station], BOGOTA)


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def voice():
    return RecordingVoice()


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def make_tracker(directory, loop, voice):
    def factory(source, route_generator=straight_route):
        return NavigationTracker(
            directory, source, voice, loop,
            logger=Logger(echo=False),
            route_generator=route_generator,
        )
    return factory
