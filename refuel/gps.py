"""Position sources: device GPS, fixed position, recording and playback.

Every source offers the same two calls:

    get_current_position(on_success, on_error, options) -> handle
    watch_position(on_success, on_error, options) -> handle

on_success receives a Coordinate, on_error a PositionError. The returned
handle has cancel(); after cancel() no further callbacks are made.
Callbacks always run on the asyncio event loop thread.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Callable, Optional

from .config import CONFIG
from .exceptions import PositionError, PositionErrorCode
from .models import Coordinate, PositionOptions

SuccessCallback = Callable[[Coordinate], None]
ErrorCallback = Callable[[PositionError], None]


class _Finished:
    """Handle for a request that already completed"""

    def cancel(self):
        pass


class TermuxGPS:
    """GPS access via Termux API"""

    def __init__(self):
        self.last_location: Optional[Coordinate] = None
        self.consecutive_failures = 0

    async def read_location(self, options: PositionOptions) -> Coordinate:
        """Get current location using termux-location, raising PositionError"""
        provider = "gps" if options.high_accuracy else "network"
        try:
            process = await asyncio.create_subprocess_exec(
                "termux-location", "-p", provider, "-r", "once",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE,
                                "termux-location is not installed")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=options.timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            await self._reap(process)
            raise PositionError(PositionErrorCode.TIMEOUT, "GPS fix timed out")
        except asyncio.CancelledError:
            # The request was cancelled (stop, mode switch); the child must not outlive it
            await self._reap(process)
            raise

        if process.returncode != 0:
            error_msg = stderr.decode().strip() if stderr else "unknown error"
            code = (PositionErrorCode.PERMISSION_DENIED if "permission" in error_msg.lower()
                    else PositionErrorCode.POSITION_UNAVAILABLE)
            raise PositionError(code, error_msg)

        if not stdout or not stdout.strip():
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, "empty GPS response")

        try:
            data = json.loads(stdout)
            return Coordinate(
                lat=data["latitude"],
                lon=data["longitude"],
                accuracy=data.get("accuracy"),
                timestamp=time.time(),
            )
        except (json.JSONDecodeError, KeyError) as e:
            raise PositionError(PositionErrorCode.POSITION_UNAVAILABLE, f"bad GPS response: {e}")

    @staticmethod
    async def _reap(process):
        """Kill a termux-location child that is still running and wait for it"""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def _attempt(self, options: PositionOptions, on_success: SuccessCallback,
                       on_error: ErrorCallback):
        try:
            location = await self.read_location(options)
        except PositionError as e:
            self.consecutive_failures += 1
            on_error(e)
            return
        self.last_location = location
        self.consecutive_failures = 0
        on_success(location)

    def get_current_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                             options: PositionOptions) -> asyncio.Task:
        return asyncio.ensure_future(self._attempt(options, on_success, on_error))

    def watch_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                       options: PositionOptions) -> asyncio.Task:
        async def poll():
            while True:
                await self._attempt(options, on_success, on_error)
                await asyncio.sleep(CONFIG["gps_poll_interval"])

        return asyncio.ensure_future(poll())

    def get_status(self) -> str:
        """Get GPS status string"""
        if self.consecutive_failures == 0:
            acc = f", accuracy {self.last_location.accuracy:.0f}m" if self.last_location and self.last_location.accuracy else ""
            return f"GPS OK{acc}"
        else:
            return f"GPS: {self.consecutive_failures} consecutive failures"


class FixedPosition:
    """Reports one fixed location (for testing without GPS)"""

    def __init__(self, location: Coordinate):
        self.location = location

    def get_current_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                             options: PositionOptions):
        on_success(self.location)
        return _Finished()

    def watch_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                       options: PositionOptions):
        on_success(self.location)
        return _Finished()

    def get_status(self) -> str:
        return f"Fixed location {self.location.lat:.5f}, {self.location.lon:.5f}"


class GPSRecorder:
    """Records every fix and error from a source to a trace file"""

    def __init__(self, source, record_path: str):
        self.source = source
        self.record_path = record_path
        self.trace: list[dict] = []
        self.start_time = time.time()

    def _record(self, location: Optional[Coordinate], error: Optional[PositionError]):
        # Record failed attempts too
        self.trace.append({
            "elapsed": time.time() - self.start_time,
            "timestamp": time.time(),
            "location": location.to_dict() if location else None,
            "error": error.code.value if error else None,
            "status": self.get_status(),
        })

    def _wrap(self, on_success: SuccessCallback, on_error: ErrorCallback):
        def success(location):
            self._record(location, None)
            on_success(location)

        def failure(error):
            self._record(None, error)
            on_error(error)

        return success, failure

    def get_current_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                             options: PositionOptions):
        return self.source.get_current_position(*self._wrap(on_success, on_error), options)

    def watch_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                       options: PositionOptions):
        return self.source.watch_position(*self._wrap(on_success, on_error), options)

    def get_status(self) -> str:
        if hasattr(self.source, "get_status"):
            return self.source.get_status()
        return "recording"

    def save(self):
        """Save trace to file"""
        with open(self.record_path, "w") as f:
            json.dump({
                "recorded_at": datetime.now().isoformat(),
                "trace": self.trace
            }, f, indent=2)
        print(f"GPS trace saved to {self.record_path} ({len(self.trace)} entries)")


class _PlaybackHandle:
    def __init__(self):
        self.timer = None
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        if self.timer:
            self.timer.cancel()
            self.timer = None


class GPSPlayback:
    """Plays back a recorded GPS trace on the event loop"""

    def __init__(self, playback_path: str, loop, speed: float = 1.0):
        self.playback_path = playback_path
        self.loop = loop
        self.speed = speed
        self.trace: list[dict] = []
        self.index = 0
        self.last_location: Optional[Coordinate] = None
        self.consecutive_failures = 0

        # Load trace
        with open(playback_path) as f:
            data = json.load(f)
            self.trace = data["trace"]
        print(f"Loaded GPS trace from {playback_path} ({len(self.trace)} entries)")

    def _deliver(self, on_success: SuccessCallback, on_error: ErrorCallback):
        """Hand the next trace entry to the callbacks"""
        if self.index >= len(self.trace):
            on_error(PositionError(PositionErrorCode.POSITION_UNAVAILABLE, "playback finished"))
            return

        entry = self.trace[self.index]
        self.index += 1

        if entry.get("location"):
            location = Coordinate.from_dict(entry["location"])
            self.last_location = location
            self.consecutive_failures = 0
            on_success(location)
        else:
            self.consecutive_failures += 1
            code = PositionErrorCode(entry.get("error") or PositionErrorCode.POSITION_UNAVAILABLE.value)
            on_error(PositionError(code, "recorded failure"))

    def get_poll_interval(self) -> float:
        """Interval before the next entry, based on trace timing and speed"""
        if self.index <= 0 or self.index >= len(self.trace):
            return CONFIG["gps_poll_interval"] / self.speed

        prev_elapsed = self.trace[self.index - 1].get("elapsed", 0)
        curr_elapsed = self.trace[self.index].get("elapsed", 0)
        interval = (curr_elapsed - prev_elapsed) / self.speed
        return max(0.1, min(interval, 5.0))

    def get_current_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                             options: PositionOptions):
        return self.loop.call_soon(self._deliver, on_success, on_error)

    def watch_position(self, on_success: SuccessCallback, on_error: ErrorCallback,
                       options: PositionOptions):
        handle = _PlaybackHandle()

        def step():
            if handle.cancelled:
                return
            # Past the end _deliver reports "playback finished" and the watch ends
            exhausted = self.is_finished()
            self._deliver(on_success, on_error)
            if not handle.cancelled and not exhausted:
                handle.timer = self.loop.call_later(self.get_poll_interval(), step)

        handle.timer = self.loop.call_later(self.get_poll_interval(), step)
        return handle

    def is_finished(self) -> bool:
        """Check if playback is complete"""
        return self.index >= len(self.trace)

    def get_status(self) -> str:
        progress = f"{self.index}/{len(self.trace)}"
        if self.consecutive_failures == 0:
            return f"Playback OK ({progress})"
        else:
            return f"Playback: {self.consecutive_failures} failures ({progress})"
