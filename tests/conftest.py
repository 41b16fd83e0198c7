import asyncio

import aiohttp
import pytest

from cuebridge.sinks.base import ACTIVATE, ActionSink


class RecordingSink(ActionSink):
    """Collects every (action_id, value) it is asked to send."""

    type = "recording"

    def __init__(self, fail_ids=()):
        self.sent = []
        self.fail_ids = set(fail_ids)
        self.connected = False
        self.closed = False

    async def send(self, action_id, value=ACTIVATE):
        if action_id in self.fail_ids:
            raise RuntimeError(f"cannot send {action_id}")
        self.sent.append((action_id, value))
        return True

    async def connect(self):
        self.connected = True
        return True

    async def close(self):
        self.closed = True

    @property
    def ids(self):
        return [action_id for action_id, _ in self.sent]


class FakeWS:
    """Stands in for aiohttp's ClientWebSocketResponse."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self._closed_event = asyncio.Event()

    async def send_str(self, data):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent.append(data)

    async def close(self):
        self.closed = True
        self.close_code = 1000
        self._closed_event.set()

    def drop(self):
        """Simulate the console going away."""
        self.closed = True
        self.close_code = 1006
        self._closed_event.set()

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._closed_event.wait()
        raise StopAsyncIteration


class FakeSession:
    def __init__(self, factory):
        self.factory = factory
        self.closed = False

    async def ws_connect(self, url):
        self.factory.connect_calls += 1
        await asyncio.sleep(self.factory.delay)
        if self.factory.fail:
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWS()
        self.factory.sockets.append(ws)
        return ws

    async def close(self):
        self.closed = True


class FakeSessionFactory:
    def __init__(self, fail=False, delay=0):
        self.fail = fail
        self.delay = delay
        self.connect_calls = 0
        self.sessions = []
        self.sockets = []

    def __call__(self):
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture()
def recording_sink():
    return RecordingSink()


@pytest.fixture()
def session_factory():
    return FakeSessionFactory()
