"""Main Refuel application."""

import asyncio
import sys
from typing import Optional

from .audio import Audio
from .debug_gui import DebugServer, WebSocketGPS
from .exceptions import InvalidTransitionError, ErrorKind
from .gps import TermuxGPS, FixedPosition, GPSRecorder, GPSPlayback
from .logger import Logger
from .models import Coordinate, TrackerMode, TrackerView
from .stations import StationDirectory, waze_url
from .tracker import NavigationTracker
from .trip_map import save_trip_map

ARRIVAL_GRACE = 2.0  # seconds to let the arrival announcement play


class Refuel:
    """Main application: wires the tracker to real collaborators on one event loop"""

    def __init__(self, directory: StationDirectory,
                 log_path: Optional[str] = None,
                 high_accuracy: bool = False,
                 simulate: bool = False,
                 fixed_location: Optional[Coordinate] = None,
                 record_path: Optional[str] = None,
                 playback_path: Optional[str] = None,
                 speed: float = 1.0,
                 html_output: Optional[str] = None,
                 debug_gui: bool = False,
                 voice: bool = True):
        self.directory = directory
        self.log_path = log_path
        self.high_accuracy = high_accuracy
        self.simulate = simulate
        self.fixed_location = fixed_location
        self.record_path = record_path
        self.playback_path = playback_path
        self.speed = speed
        self.html_output = html_output
        self.debug_gui = debug_gui
        self.voice = voice

        self.debug_server: Optional[DebugServer] = None
        self.tracker: Optional[NavigationTracker] = None
        self.logger: Optional[Logger] = None
        self.gps_source = None
        self._done: Optional[asyncio.Event] = None
        self._last_status = None
        self._last_route = None
        self._finishing = False

    def _build_source(self, loop):
        """Pick the position source from the options"""
        if self.debug_server:
            source = WebSocketGPS(self.debug_server, loop)
        elif self.playback_path:
            source = GPSPlayback(self.playback_path, loop, speed=self.speed)
        elif self.fixed_location:
            source = FixedPosition(self.fixed_location)
        else:
            source = TermuxGPS()

        if self.record_path:
            source = GPSRecorder(source, self.record_path)
        return source

    async def run(self, station_id: str):
        """Navigate to the station until arrival, stop or Ctrl+C"""
        loop = asyncio.get_running_loop()
        self._done = asyncio.Event()

        if self.debug_gui:
            self.debug_server = DebugServer(center=self.directory.user_location)
            self.debug_server.start()
            self.debug_server.on_command = self.handle_command

        log_callback = self.debug_server.send_log if self.debug_server else None
        self.logger = Logger(self.log_path, callback=log_callback)
        if self.debug_server:
            self.debug_server.backlog = lambda: list(self.logger.recent)
        audio = Audio(callback=self.debug_server.send_audio if self.debug_server else None)

        self.gps_source = self._build_source(loop)
        self.tracker = NavigationTracker(self.directory, self.gps_source, audio, loop, self.logger)
        self.tracker.set_voice_enabled(self.voice)
        self.tracker.add_listener(self._on_update)

        preview = self.tracker.preview(station_id)
        print(f"\n=== Refuel ===")
        print(f"Destination: {preview['station']} ({preview['distance']}, about {preview['eta']})")
        print("Commands: r = retry GPS, s = simulate, q = quit (Ctrl+C also quits)")
        print()

        self._listen_stdin(loop)
        try:
            self.tracker.start(station_id, high_accuracy=self.high_accuracy)
            if self.simulate and self.tracker.state.mode is TrackerMode.ACQUIRING_POSITION:
                self.tracker.switch_to_simulation()
            await self._done.wait()
        finally:
            self._finish(loop)

    def handle_command(self, name: str):
        """Retry / simulate / stop requested from stdin or the debug GUI"""
        try:
            if name in ("r", "retry"):
                self.tracker.retry()
            elif name in ("s", "simulate"):
                self.tracker.switch_to_simulation()
            elif name in ("q", "stop", "quit"):
                self._done.set()
            elif name:
                print(f"Unknown command: {name}")
        except InvalidTransitionError as e:
            self.logger.log("Command ignored", {"command": name, "reason": str(e)})

    def _listen_stdin(self, loop):
        def on_input():
            line = sys.stdin.readline()
            if not line:
                loop.remove_reader(sys.stdin)
                return
            self.handle_command(line.strip().lower())

        try:
            loop.add_reader(sys.stdin, on_input)
        except (NotImplementedError, ValueError, OSError):
            pass  # no interactive commands on this platform

    def _on_update(self, view: TrackerView):
        if self.debug_server:
            self.debug_server.publish("state", view.to_dict())
            if self.tracker.route is not self._last_route and self.tracker.trip:
                trip = self.tracker.trip
                self.debug_server.publish("route", {
                    "route": [[p.lat, p.lon] for p in self.tracker.route],
                    "destination": [trip.destination.lat, trip.destination.lon],
                    "station": trip.station_name,
                })
        self._last_route = self.tracker.route

        status = (view.mode, view.current_step_index, view.remaining_distance_display,
                  view.last_error)
        if status != self._last_status:
            self._last_status = status
            self._print_status(view)

        if self.tracker.arrived and not self._finishing:
            self._finishing = True
            asyncio.get_running_loop().call_later(ARRIVAL_GRACE, self._done.set)

        if (isinstance(self.gps_source, GPSPlayback) and self.gps_source.is_finished()
                and view.mode is TrackerMode.RECOVERING_FROM_ERROR and not self._finishing):
            print("Playback finished")
            self._finishing = True
            self._done.set()

        # Without the GUI nobody can grant a permission, so give up with a hint
        error = view.last_error
        if (not self.debug_server and view.mode is TrackerMode.ACQUIRING_POSITION and error
                and error.kind in (ErrorKind.PERMISSION_DENIED, ErrorKind.POSITION_UNAVAILABLE)):
            print("Type s to continue in simulation mode, or q to quit.")

    def _print_status(self, view: TrackerView):
        line = f"[{view.mode.value}] {view.progress_percent:5.1f}% | {view.remaining_distance_display} | ETA {view.eta_display}"
        if view.instruction:
            line += f" | {view.instruction.text} ({view.instruction.street}, {view.next_step_distance_display})"
        print(line)
        if view.last_error:
            print(f"  ! {view.last_error.message}")

    def _finish(self, loop):
        try:
            loop.remove_reader(sys.stdin)
        except (NotImplementedError, ValueError, OSError):
            pass

        tracker = self.tracker
        if self.html_output and tracker.trip and tracker.route:
            save_trip_map(self.html_output, tracker.trip, tracker.route, tracker.trace)
            print(f"Trip map saved to: {self.html_output}")

        summary = {
            "station": tracker.trip.station_id if tracker.trip else None,
            "progress": round(tracker.state.progress_percent, 1),
            "arrived": tracker.arrived,
            "route_recalculations": tracker.route_regenerations,
        }
        if tracker.trip:
            station = self.directory.find_by_id(tracker.trip.station_id)
            if station:
                summary["waze"] = waze_url(station)
        tracker.stop()
        self.logger.log("Trip summary", summary)

        if isinstance(self.gps_source, GPSRecorder):
            self.gps_source.save()
        if self.debug_server:
            self.debug_server.stop()
        self.logger.close()
