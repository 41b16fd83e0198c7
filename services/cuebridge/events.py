# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
EventSource — how player events from the DJ host reach the bridge.

The host (whatever watches the CDJs) reports four kinds of event per player:

    track   – new metadata: cue list + beat grid (or no track loaded)
    beat    – player crossed a beat boundary; exact time within the track
    status  – periodic update: playing?, current beat, precise time known?
    stop    – playback stopped / trigger deactivated

Events arrive over HTTP or as JSON frames on a websocket:

    POST /player/{device}/track   {"cues": [{"time_ms": 1000, "name": "QLC:5"}],
                                   "beat_grid": [0, 500, 1000, ...]}
    POST /player/{device}/beat    {"beat": 3, "time_ms": 1000}
    POST /player/{device}/status  {"playing": true, "beat": 3, "precise": true,
                                   "beat_time_ms": 1000}
    POST /player/{device}/stop
    GET  /ws                      {"type": "beat", "device": 2, "beat": 3, ...}
    GET  /status

Track events go to listeners registered with ``add_track_listener``; the
other three go to the single ``PlayerEventHandler`` bound with
``set_trigger``.  A failing listener is logged, never reported to the host.
"""

import json
import logging
from abc import ABC, abstractmethod

from aiohttp import web

from .cue_index import Cue

log = logging.getLogger(__name__)

DEFAULT_PORT = 8780
EVENT_TYPES = ("track", "beat", "status", "stop")


class EventError(ValueError):
    """A host event that cannot be understood."""


class TrackInfo:
    """Metadata for the track a player just loaded.  ``cues=None``: no track."""

    def __init__(self, cues: list | None, beat_grid=None):
        self.cues = cues
        self.beat_grid = list(beat_grid) if beat_grid else []

    @property
    def loaded(self) -> bool:
        return self.cues is not None


class PlayerStatus:
    """One periodic status update from a player."""

    def __init__(self, device_id: int, playing: bool, beat: int | None,
                 precise: bool = False, beat_time_ms: int | None = None):
        self.device_id = device_id
        self.playing = playing
        self.beat = beat
        self.precise = precise
        self.beat_time_ms = beat_time_ms


class PlayerEventHandler(ABC):
    """Trigger slots an EventSource delivers to."""

    @abstractmethod
    async def on_beat(self, device_id: int, beat: int, time_ms: int,
                      precise: bool = True): ...

    @abstractmethod
    async def on_status(self, status: PlayerStatus): ...

    @abstractmethod
    async def on_stop(self, device_id: int): ...


# ── Payload parsing ──

def _whole(value, key: str) -> int:
    if isinstance(value, bool):
        raise EventError(f"'{key}' must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise EventError(f"'{key}' must be a whole number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise EventError(f"'{key}' must be an integer, got {value!r}")


def _int(payload: dict, key: str, *, required: bool = True) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise EventError(f"missing '{key}'")
        return None
    return _whole(value, key)


def _bool(payload: dict, key: str, default: bool) -> bool:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise EventError(f"'{key}' must be true or false, got {value!r}")
    return value


def parse_device(value) -> int:
    if value is None:
        raise EventError("missing player number")
    return _whole(value, "device")


def parse_track(payload: dict) -> TrackInfo:
    """Build TrackInfo from ``{"cues": [...], "beat_grid": [...]}``."""
    raw_cues = payload.get("cues")
    if raw_cues is None:
        return TrackInfo(None)
    if not isinstance(raw_cues, list):
        raise EventError("'cues' must be a list")

    cues = []
    for entry in raw_cues:
        if not isinstance(entry, dict):
            log.warning("Skipping cue entry that is not an object: %r", entry)
            continue
        try:
            time_ms = _int(entry, "time_ms")
        except EventError as e:
            log.warning("Skipping cue %r: %s", entry.get("name"), e)
            continue
        cues.append(Cue(time_ms, entry.get("name"), entry.get("kind", "memory")))

    grid = payload.get("beat_grid") or []
    if not isinstance(grid, list):
        raise EventError("'beat_grid' must be a list")
    beat_grid = [_whole(t, "beat_grid") for t in grid]
    return TrackInfo(cues, beat_grid)


def parse_status(device_id: int, payload: dict) -> PlayerStatus:
    return PlayerStatus(
        device_id,
        playing=_bool(payload, "playing", False),
        beat=_int(payload, "beat", required=False),
        precise=_bool(payload, "precise", False),
        beat_time_ms=_int(payload, "beat_time_ms", required=False),
    )


class EventSource:
    """Adapter between the DJ host and the dispatch core."""

    def __init__(self, host: str = "0.0.0.0", port: int = DEFAULT_PORT,
                 status_provider=None):
        self.host = host
        self.port = port
        self._status_provider = status_provider
        self._track_listeners: list = []
        self._trigger: PlayerEventHandler | None = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None

    # ── Registration ──

    def add_track_listener(self, callback):
        """Register ``async callback(device_id, TrackInfo)`` for metadata changes."""
        if callback not in self._track_listeners:
            self._track_listeners.append(callback)

    def remove_track_listener(self, callback):
        if callback in self._track_listeners:
            self._track_listeners.remove(callback)

    def set_trigger(self, handler: PlayerEventHandler | None):
        self._trigger = handler

    @property
    def running(self) -> bool:
        return self._runner is not None

    # ── Delivery ──

    async def deliver(self, event: dict) -> dict:
        """Route one parsed host event.  Raises EventError if it is malformed."""
        if not isinstance(event, dict):
            raise EventError("event must be a JSON object")
        kind = event.get("type")
        if kind not in EVENT_TYPES:
            raise EventError(f"unknown event type {kind!r}")
        device_id = parse_device(event.get("device"))

        if kind == "track":
            track = parse_track(event)
            for callback in list(self._track_listeners):
                try:
                    await callback(device_id, track)
                except Exception as e:
                    log.error("Track listener failed for player %s: %s", device_id, e)
            return {"status": "ok", "loaded": track.loaded}

        if kind == "beat":
            beat = _int(event, "beat")
            time_ms = _int(event, "time_ms")
            precise = _bool(event, "precise", True)
            fired = await self._call_trigger(
                "on_beat", device_id, beat, time_ms, precise)
            return {"status": "ok", "fired": fired or []}

        if kind == "status":
            status = parse_status(device_id, event)
            fired = await self._call_trigger("on_status", status)
            return {"status": "ok", "fired": fired or []}

        await self._call_trigger("on_stop", device_id)
        return {"status": "ok"}

    async def _call_trigger(self, slot: str, *args):
        if self._trigger is None:
            log.debug("No trigger bound, ignoring %s", slot)
            return None
        try:
            return await getattr(self._trigger, slot)(*args)
        except Exception as e:
            log.error("Trigger %s failed: %s", slot, e)
            return None

    # ── HTTP + WebSocket server ──

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/player/{device}/{kind}", self._handle_event)
        app.router.add_get("/status", self._handle_status)
        app.router.add_get("/ws", self._handle_ws)
        return app

    async def start(self):
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        # with port 0 the OS picks one; keep the real number
        self.port = self._runner.addresses[0][1]
        log.info("Event ingest listening on http://%s:%d", self.host, self.port)

    async def stop(self):
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        log.info("Event ingest stopped")

    async def _handle_event(self, request: web.Request) -> web.Response:
        kind = request.match_info["kind"]
        if kind not in EVENT_TYPES:
            raise web.HTTPNotFound()
        try:
            payload = await request.json() if request.can_read_body else {}
        except ValueError:
            return self._error("body is not valid JSON")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return self._error("body must be a JSON object")

        event = dict(payload, type=kind, device=request.match_info["device"])
        try:
            result = await self.deliver(event)
        except EventError as e:
            log.warning("Rejected %s event: %s", kind, e)
            return self._error(str(e))
        return web.json_response(result)

    def _error(self, reason: str) -> web.Response:
        return web.json_response({"status": "error", "reason": reason}, status=400)

    async def _handle_status(self, request: web.Request) -> web.Response:
        status = {"ws_clients": len(self._ws_clients)}
        if self._status_provider is not None:
            status.update(self._status_provider())
        return web.json_response(status)

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("Host feed connected (%d total)", len(self._ws_clients))

        try:
            async for msg in ws:
                if msg.type != web.WSMsgType.TEXT:
                    continue
                try:
                    result = await self.deliver(json.loads(msg.data))
                except ValueError as e:  # EventError or bad JSON
                    log.warning("Rejected websocket event: %s", e)
                    result = {"status": "error", "reason": str(e)}
                await ws.send_json(result)
        finally:
            self._ws_clients.discard(ws)
            log.info("Host feed disconnected (%d remaining)", len(self._ws_clients))

        return ws
