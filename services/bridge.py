#!/usr/bin/env python3
# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
CueBridge service (cue-bridge)

Listens for player events from the DJ host and presses QLC+ virtual-console
buttons when playback reaches a cue labelled ``QLC:<id>[,<id>...]``.

  POST /player/{n}/track|beat|status|stop  — host events (port 8780)
  GET  /ws                                 — same events as a websocket feed
  GET  /status                             — indexed players, handled beats, sink

Setup opens the QLC+ websocket (best effort, later sends reopen it);
shutdown closes the websocket and then its client session.
"""

import asyncio
import logging
import os
import signal
import sys

# Ensure services/ is on the path for sibling imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from cuebridge.config import cfg
from cuebridge.cue_index import CueIndex, DEFAULT_PREFIX, TOLERANCE_MS
from cuebridge.dispatch import CueDispatcher, DispatchTracker
from cuebridge.events import DEFAULT_PORT, EventSource
from cuebridge.sinks import create_action_sink
from cuebridge.watchdog import sd_notify, watchdog_loop

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('cue-bridge')


class CueBridge:
    def __init__(self, sink=None, events=None):
        self.index = CueIndex(prefix=cfg("cues", "prefix", default=DEFAULT_PREFIX))
        self.tracker = DispatchTracker()
        self.sink = sink or create_action_sink()
        self.dispatcher = CueDispatcher(
            self.index, self.sink, self.tracker,
            tolerance_ms=int(cfg("cues", "tolerance_ms", default=TOLERANCE_MS)),
        )
        self.events = events or EventSource(
            host=cfg("events", "host", default="0.0.0.0"),
            port=int(cfg("events", "port", default=DEFAULT_PORT)),
            status_provider=self.get_status,
        )
        self._watchdog_task: asyncio.Task | None = None

    def get_status(self) -> dict:
        devices = {}
        for device_id in self.index.devices():
            track = self.index.get(device_id)
            devices[str(device_id)] = {
                "cue_times": len(track) if track else 0,
                "handled_beat": self.tracker.handled(device_id),
            }
        return {"devices": devices, "sink": self.sink.status()}

    async def start(self):
        self.events.add_track_listener(self.dispatcher.on_track_changed)
        self.events.set_trigger(self.dispatcher)
        await self.events.start()

        if cfg("qlc", "connect_on_start", default=True):
            if not await self.sink.connect():
                logger.warning("Lighting console not reachable yet — will retry on first cue")

        self._watchdog_task = asyncio.create_task(
            watchdog_loop(alive=lambda: self.events.running))
        logger.info("CueBridge ready")

    async def shutdown(self):
        sd_notify("STOPPING=1")
        self.events.remove_track_listener(self.dispatcher.on_track_changed)
        self.events.set_trigger(None)

        if self._watchdog_task:
            self._watchdog_task.cancel()
            try:
                await self._watchdog_task
            except asyncio.CancelledError:
                pass
            self._watchdog_task = None

        try:
            await self.events.stop()
        finally:
            await self.sink.close()
        logger.info("CueBridge stopped")

    async def run(self):
        """Start, wait for SIGTERM/SIGINT, shut down."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()


async def main():
    """Main entry point."""
    level = str(cfg("logging", "level", default="INFO")).upper()
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))
    bridge = CueBridge()
    await bridge.run()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
