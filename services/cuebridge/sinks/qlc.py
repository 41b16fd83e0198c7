# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
QLC+ sink — presses virtual-console widgets over the QLC+ web API.

QLC+ started with ``--web`` listens on ``ws://<host>:9999/qlcplusWS`` and
treats a text frame ``"<widget id>|<value>"`` as a widget change; value 255
presses a button.

One websocket is shared by the whole process.  It is opened on first use,
reopened on the next send after the console drops it, and closed together
with its ClientSession on shutdown.  An unreachable console never raises:
the press is logged and dropped.
"""

import asyncio
import logging

import aiohttp

from .base import ACTIVATE, ActionSink, format_action

log = logging.getLogger(__name__)

DEFAULT_URL = "ws://127.0.0.1:9999/qlcplusWS"
CONNECT_TIMEOUT = 2.0  # seconds for TCP connect + websocket handshake


class QlcConnection:
    """Lazily-created, process-wide websocket to QLC+.

    ``get()`` is create-if-absent: while one connect attempt is in flight,
    every other caller awaits that same attempt instead of starting its own.
    """

    def __init__(self, url: str = DEFAULT_URL, *, connect_timeout: float = CONNECT_TIMEOUT,
                 session_factory=aiohttp.ClientSession):
        self.url = url
        self.connect_timeout = connect_timeout
        self._session_factory = session_factory
        self._session = None
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._connecting: asyncio.Future | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def get(self):
        """Return the open websocket, connecting if needed.  None if unreachable."""
        if self.connected:
            return self._ws
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._open())
            self._connecting.add_done_callback(self._connect_done)
        connecting = self._connecting
        try:
            return await asyncio.shield(connecting)
        except asyncio.CancelledError:
            # close() abandoned the attempt; our own task was not cancelled
            if connecting.cancelled():
                log.info("QLC+ connect to %s abandoned on close", self.url)
                return None
            raise

    def _connect_done(self, task: asyncio.Future):
        if self._connecting is task:
            self._connecting = None

    async def _open(self):
        if self._session is None or self._session.closed:
            self._session = self._session_factory()
        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(self.url), self.connect_timeout)
        except asyncio.TimeoutError:
            log.warning("QLC+ at %s did not answer within %.1fs", self.url, self.connect_timeout)
            return None
        except (aiohttp.ClientError, OSError) as e:
            log.warning("Could not connect to QLC+ at %s: %s", self.url, e)
            return None
        except Exception as e:
            log.error("Unexpected error connecting to QLC+ at %s: %s", self.url, e)
            return None

        self._ws = ws
        self._reader = asyncio.create_task(self._read_loop(ws))
        log.info("Connected to QLC+ at %s", self.url)
        return ws

    async def _read_loop(self, ws):
        """Log whatever the console says; forget the socket once it closes."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    log.debug("QLC+ says: %s", msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    log.warning("QLC+ websocket error: %s", ws.exception())
        finally:
            if self._ws is ws:
                self._ws = None
                log.warning("QLC+ closed the connection (code %s), will reconnect on next cue",
                            ws.close_code)

    async def send_text(self, message: str) -> bool:
        """Send one frame via the current or a new connection.  Never retried."""
        ws = await self.get()
        if ws is None:
            log.info("QLC+ unavailable, dropping %s", message)
            return False
        try:
            await ws.send_str(message)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            log.warning("QLC+ send of %s failed: %s", message, e)
            return False
        log.debug("Sent %s to QLC+", message)
        return True

    async def close(self):
        """Close the websocket (if any), then always close the ClientSession."""
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None
        connecting, self._connecting = self._connecting, None
        try:
            if connecting is not None and not connecting.done():
                connecting.cancel()
            if ws is not None and not ws.closed:
                await ws.close()
        except Exception as e:
            log.warning("Error closing QLC+ websocket: %s", e)
        finally:
            if reader is not None:
                reader.cancel()
                try:
                    await reader
                except (asyncio.CancelledError, Exception):
                    pass
            session, self._session = self._session, None
            if session is not None:
                await session.close()
        log.info("QLC+ connection released")


class QlcSink(ActionSink):
    type = "qlc"

    def __init__(self, connection: QlcConnection):
        self.connection = connection

    async def send(self, action_id: int, value: int = ACTIVATE) -> bool:
        return await self.connection.send_text(format_action(action_id, value))

    async def connect(self) -> bool:
        return await self.connection.get() is not None

    async def close(self) -> None:
        await self.connection.close()

    def status(self) -> dict:
        return {
            "type": self.type,
            "url": self.connection.url,
            "connected": self.connection.connected,
        }
