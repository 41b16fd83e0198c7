# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Cue dispatch — fire each beat's cues once per play segment.

Two channels tell us a player reached beat N:

  * the beat packet, sent when the player plays through the beat boundary
    (carries the exact time within the track), and
  * the periodic status update (~5/s), which is the only way to notice a
    start or a jump that landed past a boundary.

Both funnel into ``DispatchTracker.claim`` so whichever arrives first fires
the beat and the other one is a no-op.  Stopping a player or loading a new
track clears its entry, so starting again on the same beat fires again.

Per player:  Idle ──claim(N)──▶ Handled(N) ──claim(M≠N)──▶ Handled(M)
                ▲                     │
                └─── stop / track ────┘
"""

import logging
import threading

from .cue_index import CueIndex, TOLERANCE_MS
from .events import PlayerEventHandler, PlayerStatus, TrackInfo
from .sinks.base import ACTIVATE, ActionSink

log = logging.getLogger(__name__)


class DispatchTracker:
    """Last beat already dispatched, per player.

    Each player has its own lock so players never wait on each other; the
    lock itself is created with ``dict.setdefault``, which is atomic.
    """

    def __init__(self):
        self._handled: dict[int, int] = {}
        self._locks: dict[int, threading.Lock] = {}

    def _lock(self, device_id: int) -> threading.Lock:
        return self._locks.setdefault(device_id, threading.Lock())

    def claim(self, device_id: int, beat: int) -> bool:
        """Record *beat* as handled.  False if it already was."""
        with self._lock(device_id):
            if self._handled.get(device_id) == beat:
                return False
            self._handled[device_id] = beat
            return True

    def clear(self, device_id: int) -> None:
        with self._lock(device_id):
            self._handled.pop(device_id, None)

    def handled(self, device_id: int) -> int | None:
        return self._handled.get(device_id)

    def snapshot(self) -> dict:
        return dict(self._handled)


class CueDispatcher(PlayerEventHandler):
    """Turns player events into action-sink presses."""

    def __init__(self, index: CueIndex, sink: ActionSink,
                 tracker: DispatchTracker | None = None,
                 tolerance_ms: int = TOLERANCE_MS):
        self.index = index
        self.sink = sink
        self.tracker = tracker or DispatchTracker()
        self.tolerance_ms = tolerance_ms

    async def fire_near(self, device_id: int, time_ms: int) -> list:
        """Press every action cued within tolerance of *time_ms*.  Returns the ids."""
        actions = self.index.actions_near(device_id, time_ms, self.tolerance_ms)
        for action_id in actions:
            try:
                ok = await self.sink.send(action_id, ACTIVATE)
            except Exception as e:
                log.error("Player %s: sending action %s failed: %s", device_id, action_id, e)
                continue
            if ok:
                log.info("Player %s @ %dms: fired action %s", device_id, time_ms, action_id)
        return actions

    # ── Metadata listener ──

    async def on_track_changed(self, device_id: int, track: TrackInfo) -> None:
        self.index.update(device_id, track.cues, track.beat_grid)
        # beat numbers restart with the new track
        self.tracker.clear(device_id)

    # ── Trigger slots ──

    async def on_beat(self, device_id: int, beat: int, time_ms: int,
                      precise: bool = True) -> list:
        if not precise:
            return []
        if not self.tracker.claim(device_id, beat):
            return []
        return await self.fire_near(device_id, time_ms)

    async def on_status(self, status: PlayerStatus) -> list:
        if not (status.playing and status.precise) or status.beat is None:
            return []
        if self.tracker.handled(status.device_id) == status.beat:
            return []

        # No finer reading than "somewhere in this beat": assume playback
        # started right at the beat's first millisecond.
        start_ms = status.beat_time_ms
        if start_ms is None:
            track = self.index.get(status.device_id)
            start_ms = track.beat_time(status.beat) if track else None
        if start_ms is None:
            log.debug("Player %s: no start time for beat %s, skipping poll",
                      status.device_id, status.beat)
            return []

        if not self.tracker.claim(status.device_id, status.beat):
            return []
        log.debug("Player %s: caught up with beat %s at %dms",
                  status.device_id, status.beat, start_ms)
        return await self.fire_near(status.device_id, start_ms)

    async def on_stop(self, device_id: int) -> None:
        self.tracker.clear(device_id)
