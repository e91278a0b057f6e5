"""Browser dashboard for watching and steering a trip.

A small HTTP server hands out one page; everything after that goes over a
websocket. The browser receives the tracker's read model, the drawn route,
log lines and spoken prompts. It sends back map clicks (used as device
positions by WebSocketGPS) and the retry / simulate / stop commands.
"""

import asyncio
import http.server
import json
import threading
import webbrowser
from typing import Callable, Iterable, Optional

import websockets

from .config import CONFIG
from .exceptions import PositionError, PositionErrorCode
from .instructions import MANEUVER_SYMBOLS
from .models import Coordinate, PositionOptions

PAGE_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Refuel</title>
<link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
<script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
<style>
  html, body { margin: 0; height: 100%; font: 14px/1.4 system-ui, sans-serif; color: #0f172a; }
  body { display: grid; grid-template-rows: auto 1fr; grid-template-columns: 1fr 340px; }
  #bar { grid-column: 1 / 3; display: flex; align-items: center; gap: 16px; padding: 10px 16px; background: #0f766e; color: #f0fdfa; }
  #bar .station { font-weight: 700; font-size: 16px; flex: 1; }
  #bar .link { width: 10px; height: 10px; border-radius: 50%; background: #f87171; }
  #bar .link.up { background: #a7f3d0; }
  #map { grid-row: 2; }
  aside { grid-row: 2; overflow-y: auto; background: #f1f5f9; border-left: 1px solid #cbd5e1; }
  .card { margin: 10px; padding: 12px; background: #fff; border-radius: 8px; box-shadow: 0 1px 2px rgba(15, 23, 42, .12); }
  .turn { display: flex; gap: 12px; align-items: center; }
  .glyph { width: 44px; height: 44px; border-radius: 8px; color: #fff; display: grid; place-items: center; font-size: 24px; }
  .turn .text { font-weight: 600; }
  .turn .street, .muted { color: #64748b; font-size: 12px; }
  .meter { height: 8px; border-radius: 4px; background: #e2e8f0; overflow: hidden; margin: 8px 0; }
  .meter div { height: 100%; width: 0; background: #14b8a6; transition: width .4s; }
  .figures { display: flex; justify-content: space-between; }
  .figures b { display: block; font-size: 18px; }
  .problem { display: none; background: #fef2f2; color: #991b1b; }
  .problem.shown { display: block; }
  .actions button { margin: 6px 6px 0 0; padding: 6px 12px; border: 0; border-radius: 6px; background: #0f766e; color: #fff; cursor: pointer; }
  .actions button.quiet { background: #94a3b8; }
  #spoken { font-style: italic; }
  #log { max-height: 260px; overflow-y: auto; font: 11px/1.5 ui-monospace, monospace; white-space: pre-wrap; }
  .you { width: 14px; height: 14px; border-radius: 50%; background: #0ea5e9; border: 3px solid #fff; box-shadow: 0 0 4px rgba(0, 0, 0, .4); }
</style>
</head>
<body>
<div id="bar"><span class="station" id="station">No trip</span><span id="mode">idle</span><span class="link" id="link"></span></div>
<div id="map"></div>
<aside>
  <div class="card">
    <div class="turn">
      <div class="glyph" id="glyph">&bull;</div>
      <div><div class="text" id="instruction">Waiting for a trip</div><div class="street" id="street"></div></div>
    </div>
    <div class="meter"><div id="meter"></div></div>
    <div class="figures">
      <span><b id="progress">0%</b><span class="muted">progress</span></span>
      <span><b id="remaining">-</b><span class="muted">remaining</span></span>
      <span><b id="eta">-</b><span class="muted">eta</span></span>
      <span><b id="next">-</b><span class="muted">next step</span></span>
    </div>
    <div class="muted">source: <span id="source">-</span></div>
  </div>
  <div class="card problem" id="problem"><span id="problem-text"></span></div>
  <div class="card actions">
    <button onclick="command('retry')">Retry GPS</button>
    <button onclick="command('simulate')">Simulate</button>
    <button class="quiet" onclick="command('stop')">Stop</button>
    <div class="muted">Click the map to report a position.</div>
  </div>
  <div class="card"><div class="muted">Last prompt</div><div id="spoken">-</div></div>
  <div class="card"><div class="muted">Log</div><div id="log"></div></div>
</aside>
<script>
const SYMBOLS = {{SYMBOLS}};
const GLYPHS = {pin: '&#9679;', chevron: '&#10148;', navigation: '&#8679;'};
const $ = (id) => document.getElementById(id);

const map = L.map('map').setView({{CENTER}}, 15);
L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {attribution: '&copy; OpenStreetMap contributors'}).addTo(map);
const you = L.marker({{CENTER}}, {icon: L.divIcon({className: 'you', iconSize: [14, 14]})});
let routeLine = null, stationPin = null, socket = null;

function open() {
  socket = new WebSocket('ws://localhost:{{WS_PORT}}');
  socket.onopen = () => $('link').classList.add('up');
  socket.onclose = () => { $('link').classList.remove('up'); setTimeout(open, 2000); };
  socket.onmessage = (event) => {
    const {type, data} = JSON.parse(event.data);
    if (type === 'state') showState(data);
    else if (type === 'route') showRoute(data);
    else if (type === 'audio') $('spoken').textContent = data.text;
    else if (type === 'log') appendLog(data);
  };
}

function post(type, data) {
  if (socket && socket.readyState === WebSocket.OPEN) socket.send(JSON.stringify({type, data}));
}

function command(name) { post('command', {name}); }

function showState(s) {
  $('mode').textContent = s.mode;
  $('instruction').textContent = s.instruction || 'Waiting for a trip';
  $('street').textContent = s.street || '';
  $('progress').textContent = s.progress + '%';
  $('meter').style.width = s.progress + '%';
  $('remaining').textContent = s.remaining;
  $('eta').textContent = s.eta;
  $('next').textContent = s.next_step_distance;
  $('source').textContent = s.source || 'none';
  const symbol = SYMBOLS[s.maneuver];
  if (symbol) {
    $('glyph').innerHTML = GLYPHS[symbol.glyph] || '&bull;';
    $('glyph').style.background = symbol.color;
    $('glyph').style.transform = 'rotate(' + symbol.rotation + 'deg)';
  }
  $('problem').classList.toggle('shown', !!s.error);
  $('problem-text').textContent = s.error ? s.error.message : '';
  if (s.location) you.setLatLng([s.location.lat, s.location.lon]).addTo(map);
}

function showRoute(r) {
  $('station').textContent = r.station;
  if (routeLine) routeLine.remove();
  if (stationPin) stationPin.remove();
  routeLine = L.polyline(r.route, {color: '#0f766e', weight: 5, opacity: 0.75}).addTo(map);
  stationPin = L.marker(r.destination).bindPopup(r.station).addTo(map);
  map.fitBounds(routeLine.getBounds(), {padding: [40, 40]});
}

function appendLog(entry) {
  const line = document.createElement('div');
  line.textContent = entry.message + (entry.data ? ' ' + JSON.stringify(entry.data) : '');
  $('log').appendChild(line);
  $('log').scrollTop = $('log').scrollHeight;
}

map.on('click', (e) => post('location', {lat: e.latlng.lat, lon: e.latlng.lng}));
open();
</script>
</body>
</html>
'''


def render_page(ws_port: int, center: Optional[Coordinate] = None) -> str:
    """The dashboard page wired to the given websocket port"""
    if center is None:
        lat, lon = CONFIG["default_location"]
        center = Coordinate(lat=lat, lon=lon)
    symbols = {
        kind.value: {"glyph": s.glyph, "rotation": s.rotation, "color": s.color}
        for kind, s in MANEUVER_SYMBOLS.items()
    }
    return (PAGE_TEMPLATE
            .replace("{{SYMBOLS}}", json.dumps(symbols))
            .replace("{{CENTER}}", json.dumps([center.lat, center.lon]))
            .replace("{{WS_PORT}}", str(ws_port)))


def _page_handler(page: bytes):
    class PageHandler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path.split("?")[0] not in ("/", "/index.html"):
                self.send_error(404)
                return
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(page)))
            self.end_headers()
            self.wfile.write(page)

        def log_message(self, format, *args):
            pass

    return PageHandler


class DebugServer:
    """Serves the dashboard and talks to it over a websocket.

    The page is served from a background thread. The websocket server runs
    on the application's event loop, so clicks and commands reach the
    tracker on the same thread as every other callback.

    The latest state and route are remembered, and together with the
    logger's backlog they are replayed to each browser that connects, so a
    page opened mid-trip is not blank.
    """

    def __init__(self, http_port: Optional[int] = None, ws_port: Optional[int] = None,
                 center: Optional[Coordinate] = None):
        self.http_port = http_port or CONFIG["debug_http_port"]
        self.ws_port = ws_port or CONFIG["debug_ws_port"]
        self.center = center
        self.clients: set = set()
        self.latest: dict[str, dict] = {}
        self.on_location: Optional[Callable[[Coordinate], None]] = None
        self.on_command: Optional[Callable[[str], None]] = None
        self.backlog: Optional[Callable[[], Iterable[tuple[str, Optional[dict]]]]] = None
        self._httpd: Optional[http.server.ThreadingHTTPServer] = None
        self._stopped: Optional[asyncio.Event] = None

    def start(self, open_browser: bool = True):
        """Start both servers; must be called from the running event loop"""
        page = render_page(self.ws_port, self.center).encode()
        self._httpd = http.server.ThreadingHTTPServer(("", self.http_port), _page_handler(page))
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()

        self._stopped = asyncio.Event()
        asyncio.ensure_future(self._serve_websocket())

        url = f"http://localhost:{self.http_port}"
        print(f"Debug GUI available at: {url}")
        if open_browser:
            webbrowser.open(url)

    async def _serve_websocket(self):
        try:
            async with websockets.serve(self._client, "localhost", self.ws_port):
                await self._stopped.wait()
        except OSError as e:
            print(f"WebSocket server error: {e}")

    async def _client(self, websocket):
        for message in self.snapshot():
            await websocket.send(message)
        self.clients.add(websocket)
        try:
            async for raw in websocket:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if isinstance(message, dict):
                    self.dispatch(message)
        finally:
            self.clients.discard(websocket)

    def snapshot(self) -> list[str]:
        """Encoded messages that bring a freshly opened page up to date"""
        messages = []
        if self.backlog:
            messages += [self._encode("log", {"message": m, "data": d}) for m, d in self.backlog()]
        for msg_type in ("route", "state"):
            if msg_type in self.latest:
                messages.append(self._encode(msg_type, self.latest[msg_type]))
        return messages

    def dispatch(self, message: dict):
        """Handle one message from the browser"""
        payload = message.get("data") or {}
        if message.get("type") == "location" and self.on_location:
            try:
                location = Coordinate(lat=float(payload["lat"]), lon=float(payload["lon"]), accuracy=0)
            except (KeyError, TypeError, ValueError):
                return
            self.on_location(location)
        elif message.get("type") == "command" and self.on_command:
            self.on_command(str(payload.get("name", "")))

    @staticmethod
    def _encode(msg_type: str, data: dict) -> str:
        return json.dumps({"type": msg_type, "data": data}, default=str)

    def publish(self, msg_type: str, data: dict):
        """Push a message to every open page; state and route are also remembered"""
        if msg_type in ("state", "route"):
            self.latest[msg_type] = data
        if not self.clients:
            return
        message = self._encode(msg_type, data)
        for client in list(self.clients):
            asyncio.ensure_future(self._deliver(client, message))

    async def _deliver(self, client, message: str):
        try:
            await client.send(message)
        except websockets.ConnectionClosed:
            self.clients.discard(client)

    def send_log(self, message: str, data: Optional[dict] = None):
        """Logger callback"""
        self.publish("log", {"message": message, "data": data})

    def send_audio(self, text: str):
        """Audio callback"""
        self.publish("audio", {"text": text})

    def stop(self):
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        if self._stopped:
            self._stopped.set()


class _ClickSubscription:
    """A pending one-shot request or a watch fed by map clicks"""

    def __init__(self, gps: "WebSocketGPS", on_success, on_error, timeout_s: float, once: bool):
        self.gps = gps
        self.on_success = on_success
        self.on_error = on_error
        self.timeout_s = timeout_s
        self.once = once
        self.timer = None
        self._arm()

    def _arm(self):
        if self.timer:
            self.timer.cancel()
        self.timer = self.gps.loop.call_later(self.timeout_s, self._timed_out)

    def _timed_out(self):
        self.timer = None
        self.cancel()
        self.on_error(PositionError(PositionErrorCode.TIMEOUT, "no location clicked in time"))

    def deliver(self, location: Coordinate):
        if self.once:
            self.cancel()
        else:
            self._arm()
        self.on_success(location)

    def cancel(self):
        if self.timer:
            self.timer.cancel()
            self.timer = None
        if self in self.gps.subscriptions:
            self.gps.subscriptions.remove(self)


class WebSocketGPS:
    """Position source fed by clicks on the debug GUI map"""

    def __init__(self, debug_server: DebugServer, loop):
        self.server = debug_server
        self.loop = loop
        self.subscriptions: list[_ClickSubscription] = []
        self.last_location: Optional[Coordinate] = None
        self.server.on_location = self.handle_click

    def handle_click(self, location: Coordinate):
        self.last_location = location
        for subscription in list(self.subscriptions):
            subscription.deliver(location)

    def _subscribe(self, on_success, on_error, options: PositionOptions, once: bool):
        subscription = _ClickSubscription(self, on_success, on_error,
                                          options.timeout_ms / 1000, once)
        self.subscriptions.append(subscription)
        return subscription

    def get_current_position(self, on_success, on_error, options: PositionOptions):
        return self._subscribe(on_success, on_error, options, once=True)

    def watch_position(self, on_success, on_error, options: PositionOptions):
        return self._subscribe(on_success, on_error, options, once=False)

    def get_status(self) -> str:
        return f"Map clicks ({len(self.subscriptions)} waiting)"
