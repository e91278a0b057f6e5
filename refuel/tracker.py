"""Real-time navigation tracker.

The tracker owns a TrackerState and is driven by exactly one input source
at a time: a pending one-shot fix, a live position watch, or the simulation
ticker. Acquiring a source always releases the previous one first, and
callbacks from a released source are ignored, so nothing can mutate state
after stop() or after a mode switch.

Modes:

    IDLE -> ACQUIRING_POSITION -> LIVE_TRACKING | SIMULATED
    LIVE_TRACKING -> SIMULATED (tracking timeout)
    LIVE_TRACKING -> RECOVERING_FROM_ERROR (other tracking error)
    RECOVERING_FROM_ERROR -> LIVE_TRACKING (retry) | SIMULATED (switch)
    any -> IDLE (stop)

Permission-denied and position-unavailable leave the tracker in
ACQUIRING_POSITION with no active source until the user decides.
"""

from dataclasses import replace
from typing import Callable, Optional

from .config import CONFIG
from .exceptions import (
    ErrorKind, PositionError, PositionErrorCode, StationNotFoundError, InvalidTransitionError,
)
from .geo import haversine_distance, format_distance_km
from .instructions import (
    ARRIVAL_MESSAGE, build_script, eta_minutes, format_eta, format_next_step_distance,
    start_announcement, step_index_for_progress,
)
from .logger import Logger
from .models import (
    Coordinate, InstructionStep, PositionOptions, TrackerError, TrackerMode, TrackerState,
    TrackerView, Trip,
)
from .route import generate_route, distance_to_route, point_along_route


class _Lease:
    """Ownership of the single active input source"""

    def __init__(self, kind: str):
        self.kind = kind
        self.handle = None
        self.active = True

    def release(self):
        if not self.active:
            return
        self.active = False
        handle, self.handle = self.handle, None
        if handle is not None:
            handle.cancel()


class NavigationTracker:
    """Turn-by-turn progress tracker for one trip at a time.

    Collaborators:
        directory: has find_by_id(station_id) and user_location
        position_source: see refuel.gps
        voice: has speak(text) and cancel_all()
        loop: has call_later(delay, callback) returning a cancellable handle
            (an asyncio event loop, or a fake in tests)
    """

    def __init__(self, directory, position_source, voice, loop,
                 logger: Optional[Logger] = None,
                 route_generator: Callable[[Coordinate, Coordinate], list[Coordinate]] = generate_route):
        self.directory = directory
        self.position_source = position_source
        self.voice = voice
        self.loop = loop
        self.logger = logger or Logger()
        self.route_generator = route_generator

        self.state = TrackerState()
        self.trip: Optional[Trip] = None
        self.steps: list[InstructionStep] = []
        self.route: list[Coordinate] = []
        self.trace: list[Coordinate] = []
        self.route_regenerations = 0
        self.voice_enabled = True
        self.listeners: list[Callable[[TrackerView], None]] = []

        self._lease: Optional[_Lease] = None
        self._simulation_base_progress = 0.0

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start(self, station_id: str, high_accuracy: bool = False,
              origin: Optional[Coordinate] = None):
        """Begin a new trip to the station and request a position fix.

        Raises StationNotFoundError before touching any state.
        """
        station = self.directory.find_by_id(station_id)
        if station is None:
            self.logger.log("Station not found", {"station_id": station_id})
            raise StationNotFoundError(station_id)

        self._reset()

        self.trip = Trip(
            station_id=station.id,
            station_name=station.name,
            origin=origin or self.directory.user_location,
            destination=station.position,
            nominal_distance_km=station.distance_km,
        )
        self.steps = build_script(station.name)
        self.state = TrackerState(
            high_accuracy_requested=high_accuracy,
            remaining_distance_m=self.trip.nominal_distance_m,
            eta_minutes=eta_minutes(self.trip.nominal_distance_km),
        )
        self.logger.log("Navigation started", {
            "station": station.id,
            "name": station.name,
            "distance": station.distance,
            "high_accuracy": high_accuracy,
        })
        self._transition(TrackerMode.ACQUIRING_POSITION, "start")
        self._request_fix()
        self._notify()

    def stop(self):
        """Cancel everything and return to IDLE. Safe from any mode."""
        previous = self.state.mode
        self._reset()
        if previous is not TrackerMode.IDLE:
            self.logger.log("MODE", {"from": previous.value, "to": TrackerMode.IDLE.value,
                                     "reason": "stop"})
        self._notify()

    def retry(self):
        """Restart live tracking after a tracking error"""
        if self.state.mode is not TrackerMode.RECOVERING_FROM_ERROR:
            raise InvalidTransitionError("retry", self.state.mode)
        self._transition(TrackerMode.LIVE_TRACKING, "retry")
        self._start_watch()
        self._notify()

    def switch_to_simulation(self):
        """Continue the trip in simulated mode at the user's request"""
        mode = self.state.mode
        if mode not in (TrackerMode.ACQUIRING_POSITION, TrackerMode.RECOVERING_FROM_ERROR):
            raise InvalidTransitionError("switch to simulation", mode)
        self.state.last_error = None
        self._enter_simulation("user request", announce_start=mode is TrackerMode.ACQUIRING_POSITION)
        self._notify()

    def set_voice_enabled(self, enabled: bool):
        self.voice_enabled = enabled
        if not enabled:
            self.voice.cancel_all()

    def preview(self, station_id: str) -> dict:
        """Nominal distance and ETA shown before navigation starts"""
        station = self.directory.find_by_id(station_id)
        if station is None:
            raise StationNotFoundError(station_id)
        return {
            "station": station.name,
            "distance": station.distance,
            "eta": format_eta(eta_minutes(station.distance_km)),
        }

    def add_listener(self, listener: Callable[[TrackerView], None]):
        """Call listener with the read model after every state change"""
        self.listeners.append(listener)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def active_source(self) -> Optional[str]:
        """'fix', 'watch', 'ticker' or None"""
        return self._lease.kind if self._lease else None

    @property
    def arrived(self) -> bool:
        return self.state.arrival_announced

    def view(self) -> TrackerView:
        s = self.state
        if self.trip is None:
            return TrackerView(
                mode=s.mode,
                current_position=None,
                progress_percent=0.0,
                current_step_index=0,
                remaining_distance_display="-",
                eta_display="-",
                next_step_distance_display="-",
                instruction=None,
                last_error=s.last_error,
                active_source=self.active_source,
            )
        return TrackerView(
            mode=s.mode,
            current_position=s.current_position,
            progress_percent=s.progress_percent,
            current_step_index=s.current_step_index,
            remaining_distance_display=format_distance_km(s.remaining_distance_m),
            eta_display=format_eta(s.eta_minutes),
            next_step_distance_display=format_next_step_distance(
                s.progress_percent, s.current_step_index, self.steps),
            instruction=self.steps[s.current_step_index],
            last_error=s.last_error,
            active_source=self.active_source,
        )

    # ------------------------------------------------------------------
    # Source ownership
    # ------------------------------------------------------------------

    def _acquire(self, kind: str, starter: Callable[[_Lease], object]) -> _Lease:
        """Release the current source, then start a new one under a fresh lease.

        starter may fire callbacks synchronously; if those already moved the
        tracker on to another source, the handle it returns is cancelled.
        """
        self._release_source()
        lease = _Lease(kind)
        self._lease = lease
        try:
            handle = starter(lease)
        except Exception:
            self._release(lease)
            raise
        if lease.active:
            lease.handle = handle
        elif handle is not None:
            handle.cancel()
        return lease

    def _release(self, lease: _Lease):
        lease.release()
        if self._lease is lease:
            self._lease = None

    def _release_source(self):
        if self._lease:
            self._release(self._lease)

    def _guard(self, lease: _Lease, handler: Callable) -> Callable:
        """Wrap a source callback so it is ignored once the lease is released"""
        def callback(*args):
            if lease.active and self._lease is lease:
                handler(*args)
        return callback

    def _reset(self):
        self._release_source()
        self.voice.cancel_all()
        self.state = TrackerState()
        self.trip = None
        self.steps = []
        self.route = []
        self.trace = []
        self.route_regenerations = 0
        self._simulation_base_progress = 0.0

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _request_fix(self):
        options = PositionOptions(
            timeout_ms=CONFIG["fix_timeout_ms"],
            high_accuracy=self.state.high_accuracy_requested,
        )
        try:
            self._acquire("fix", lambda lease: self.position_source.get_current_position(
                self._guard(lease, self._on_fix),
                self._guard(lease, self._on_fix_error),
                options,
            ))
        except Exception as e:
            self._fail(ErrorKind.ACQUISITION_FAILED,
                       f"Could not start location services ({e}). Using simulation mode.")
            self._enter_simulation("acquisition failed", announce_start=True)

    def _on_fix(self, location: Coordinate):
        self._release_source()
        self.state.current_position = location
        self.state.last_error = None
        self.trace.append(location)
        self.trip = replace(self.trip, origin=location)
        self._transition(TrackerMode.LIVE_TRACKING, "fix")
        self.route = self.route_generator(location, self.trip.destination)
        self._announce(start_announcement(self.trip.station_name, self.steps))
        self._start_watch()
        self._notify()

    def _on_fix_error(self, error: PositionError):
        self._release_source()
        if error.code is PositionErrorCode.TIMEOUT:
            self._fail(ErrorKind.ACQUISITION_TIMEOUT,
                       "Timed out getting your location. Using simulation mode.")
            self._enter_simulation("acquisition timeout", announce_start=True)
        elif error.code is PositionErrorCode.PERMISSION_DENIED:
            self._fail(ErrorKind.PERMISSION_DENIED,
                       "Location permission denied. Please enable access to your location.")
        else:
            self._fail(ErrorKind.POSITION_UNAVAILABLE, "Location information is unavailable.")
        self._notify()

    # ------------------------------------------------------------------
    # Live tracking
    # ------------------------------------------------------------------

    def _start_watch(self):
        options = PositionOptions(
            timeout_ms=CONFIG["watch_timeout_ms"],
            high_accuracy=self.state.high_accuracy_requested,
        )
        try:
            self._acquire("watch", lambda lease: self.position_source.watch_position(
                self._guard(lease, self._on_position),
                self._guard(lease, self._on_watch_error),
                options,
            ))
        except Exception as e:
            self._fail(ErrorKind.TRACKING_ERROR,
                       f"Could not follow your location ({e}). Switching to simulation mode.")
            self._enter_simulation("watch failed")

    def _on_position(self, location: Coordinate):
        self.state.last_error = None
        self._check_deviation(location)

        remaining = haversine_distance(location, self.trip.destination)
        nominal = self.trip.nominal_distance_m
        progress = 100 * (1 - remaining / nominal) if nominal > 0 else 100.0
        self._apply_progress(progress, remaining, location)

    def _on_watch_error(self, error: PositionError):
        if error.code is PositionErrorCode.TIMEOUT:
            self._fail(ErrorKind.TRACKING_TIMEOUT,
                       "Location updates timed out. Switching to simulation mode.")
            self._enter_simulation("tracking timeout")
        else:
            self._release_source()
            self._fail(ErrorKind.TRACKING_ERROR,
                       f"Error following your location ({error.message}). "
                       "Retry or continue in simulation mode.")
            self._transition(TrackerMode.RECOVERING_FROM_ERROR, "tracking error")
        self._notify()

    def _check_deviation(self, location: Coordinate):
        """Redraw the route from here if we strayed too far from it.

        Only the drawn route changes; progress stays straight-line based.
        """
        if not self.route:
            return
        deviation = distance_to_route(location, self.route)
        if deviation > CONFIG["route_deviation_threshold"]:
            self.route = self.route_generator(location, self.trip.destination)
            self.route_regenerations += 1
            self.logger.log("Route recalculated", {
                "deviation": round(deviation, 1),
                "points": len(self.route),
            })

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _enter_simulation(self, reason: str, announce_start: bool = False):
        start = self.state.current_position or self.trip.origin
        self.state.current_position = start
        self.route = self.route_generator(start, self.trip.destination)
        self._simulation_base_progress = self.state.progress_percent
        self._start_ticker()
        self._transition(TrackerMode.SIMULATED, reason)
        if announce_start:
            self._announce(start_announcement(self.trip.station_name, self.steps))

    def _start_ticker(self):
        interval = CONFIG["simulation_tick_interval"]

        def starter(lease: _Lease):
            def tick():
                # Re-arm first so the ticker keeps running at 100%
                lease.handle = self.loop.call_later(interval, guarded)
                self._on_tick()

            guarded = self._guard(lease, tick)
            return self.loop.call_later(interval, guarded)

        self._acquire("ticker", starter)

    def _on_tick(self):
        progress = min(100.0, self.state.progress_percent + CONFIG["simulation_progress_step"])
        remaining = self.trip.nominal_distance_m * (1 - progress / 100)

        span = 100 - self._simulation_base_progress
        fraction = 1.0 if span <= 0 else (progress - self._simulation_base_progress) / span
        self._apply_progress(progress, remaining, point_along_route(self.route, fraction))

    # ------------------------------------------------------------------
    # Progress pipeline (both modes)
    # ------------------------------------------------------------------

    def _apply_progress(self, progress: float, remaining_m: float, location: Coordinate):
        s = self.state
        s.current_position = location
        s.progress_percent = max(0.0, min(100.0, progress))
        s.remaining_distance_m = max(0.0, remaining_m)
        s.eta_minutes = eta_minutes(s.remaining_distance_m / 1000)
        self.trace.append(location)

        # Step index only moves forward, even if progress drops
        step_index = step_index_for_progress(s.progress_percent, len(self.steps))
        if step_index > s.current_step_index:
            s.current_step_index = step_index
            self._announce(self.steps[step_index].text)

        if s.progress_percent >= CONFIG["arrival_progress"] and not s.arrival_announced:
            s.arrival_announced = True
            self.logger.log("Arrived", {"station": self.trip.station_id})
            self._announce(ARRIVAL_MESSAGE)

        self._notify()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, mode: TrackerMode, reason: str):
        self.logger.log("MODE", {"from": self.state.mode.value, "to": mode.value,
                                 "reason": reason})
        self.state.mode = mode

    def _fail(self, kind: ErrorKind, message: str):
        self.state.last_error = TrackerError(kind=kind, message=message)
        self.logger.log("ERROR", {"kind": kind.value, "message": message})

    def _announce(self, text: str):
        self.logger.log(f"AUDIO: {text}")
        if self.voice_enabled:
            self.voice.speak(text)

    def _notify(self):
        if not self.listeners:
            return
        view = self.view()
        for listener in list(self.listeners):
            listener(view)
