import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from refuel.exceptions import PositionError, PositionErrorCode
from refuel.gps import FixedPosition, GPSPlayback, GPSRecorder, TermuxGPS
from refuel.models import Coordinate, PositionOptions

from conftest import BOGOTA, FakeLoop

OPTIONS = PositionOptions(timeout_ms=10000)


def write_trace(path, entries):
    path.write_text(json.dumps({"recorded_at": "2024-01-01T00:00:00", "trace": entries}))
    return str(path)


@pytest.fixture
def trace_file(tmp_path):
    return write_trace(tmp_path / "trace.json", [
        {"elapsed": 0.0, "location": {"lat": 4.6097, "lon": -74.0817}, "error": None},
        {"elapsed": 1.0, "location": None, "error": "timeout"},
        {"elapsed": 2.0, "location": {"lat": 4.6110, "lon": -74.0800}, "error": None},
    ])


class Collector:
    def __init__(self):
        self.events = []

    def success(self, location):
        self.events.append(("ok", location))

    def error(self, error):
        self.events.append(("error", error.code))


def test_fixed_position_reports_synchronously():
    collector = Collector()
    source = FixedPosition(BOGOTA)

    handle = source.get_current_position(collector.success, collector.error, OPTIONS)
    handle.cancel()

    assert collector.events == [("ok", BOGOTA)]


def test_playback_fix_is_delivered_on_the_loop(trace_file):
    loop = FakeLoop()
    collector = Collector()
    playback = GPSPlayback(trace_file, loop)

    playback.get_current_position(collector.success, collector.error, OPTIONS)
    assert collector.events == []

    loop.advance(0)
    assert collector.events == [("ok", Coordinate(lat=4.6097, lon=-74.0817))]


def test_playback_watch_replays_errors_then_reports_the_end(trace_file):
    loop = FakeLoop()
    collector = Collector()
    playback = GPSPlayback(trace_file, loop)

    playback.watch_position(collector.success, collector.error, OPTIONS)
    loop.advance(10)

    assert collector.events == [
        ("ok", Coordinate(lat=4.6097, lon=-74.0817)),
        ("error", PositionErrorCode.TIMEOUT),
        ("ok", Coordinate(lat=4.6110, lon=-74.0800)),
        ("error", PositionErrorCode.POSITION_UNAVAILABLE),
    ]
    assert playback.is_finished()
    assert loop.pending() == []


def test_playback_watch_stops_when_cancelled(trace_file):
    loop = FakeLoop()
    collector = Collector()
    playback = GPSPlayback(trace_file, loop)

    handle = playback.watch_position(collector.success, collector.error, OPTIONS)
    loop.advance(3)
    handle.cancel()
    loop.advance(10)

    assert len(collector.events) == 1
    assert playback.get_status() == "Playback OK (1/3)"


def test_playback_follows_recorded_timing(trace_file):
    playback = GPSPlayback(trace_file, FakeLoop(), speed=2.0)
    playback.index = 1

    assert playback.get_poll_interval() == pytest.approx(0.5)


def test_playback_past_the_end_reports_unavailable(trace_file):
    loop = FakeLoop()
    collector = Collector()
    playback = GPSPlayback(trace_file, loop)
    playback.index = 3

    playback.get_current_position(collector.success, collector.error, OPTIONS)
    loop.advance(0)

    assert collector.events == [("error", PositionErrorCode.POSITION_UNAVAILABLE)]


class ErrorSource:
    def get_current_position(self, on_success, on_error, options):
        on_error(PositionError(PositionErrorCode.PERMISSION_DENIED, "denied"))

    def watch_position(self, on_success, on_error, options):
        on_success(BOGOTA)


def test_recorder_records_fixes_and_failures(tmp_path):
    path = tmp_path / "recorded.json"
    collector = Collector()
    recorder = GPSRecorder(ErrorSource(), str(path))

    recorder.get_current_position(collector.success, collector.error, OPTIONS)
    recorder.watch_position(collector.success, collector.error, OPTIONS)
    recorder.save()

    assert collector.events == [("error", PositionErrorCode.PERMISSION_DENIED), ("ok", BOGOTA)]
    data = json.loads(path.read_text())
    assert [e["error"] for e in data["trace"]] == ["permission-denied", None]
    assert data["trace"][1]["location"]["lat"] == BOGOTA.lat


def test_recorded_trace_plays_back(tmp_path):
    path = tmp_path / "roundtrip.json"
    recorder = GPSRecorder(ErrorSource(), str(path))
    recorder.get_current_position(lambda loc: None, lambda err: None, OPTIONS)
    recorder.watch_position(lambda loc: None, lambda err: None, OPTIONS)
    recorder.save()

    loop = FakeLoop()
    collector = Collector()
    playback = GPSPlayback(str(path), loop)
    playback.watch_position(collector.success, collector.error, OPTIONS)
    loop.advance(20)

    assert collector.events == [("error", PositionErrorCode.PERMISSION_DENIED), ("ok", BOGOTA),
                                ("error", PositionErrorCode.POSITION_UNAVAILABLE)]


class HangingTermuxProcess:
    """A termux-location child that never answers"""

    def __init__(self):
        self.returncode = None
        self.killed = False
        self.reaped = False

    async def communicate(self):
        await asyncio.Event().wait()

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        self.reaped = True
        return self.returncode


def test_cancelled_termux_request_kills_the_child():
    process = HangingTermuxProcess()
    collector = Collector()

    async def scenario():
        with patch("refuel.gps.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            handle = TermuxGPS().get_current_position(collector.success, collector.error, OPTIONS)
            for _ in range(5):
                await asyncio.sleep(0)
            handle.cancel()
            with pytest.raises(asyncio.CancelledError):
                await handle

    asyncio.run(scenario())

    assert process.killed
    assert process.reaped
    assert collector.events == []


def test_termux_timeout_kills_the_child_and_reports_timeout():
    process = HangingTermuxProcess()
    collector = Collector()

    async def scenario():
        with patch("refuel.gps.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            await TermuxGPS().get_current_position(
                collector.success, collector.error, PositionOptions(timeout_ms=10))

    asyncio.run(scenario())

    assert process.killed
    assert process.reaped
    assert collector.events == [("error", PositionErrorCode.TIMEOUT)]
