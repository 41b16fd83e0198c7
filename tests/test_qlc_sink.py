import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from cuebridge.sinks import LogSink, QlcConnection, QlcSink, format_action

from conftest import FakeSessionFactory


def make_sink(factory, **kwargs):
    return QlcSink(QlcConnection("ws://console:9999/qlcplusWS", session_factory=factory, **kwargs))


def test_format_action():
    assert format_action(5) == "5|255"
    assert format_action(42, 0) == "42|0"


@pytest.mark.asyncio
async def test_concurrent_sends_share_one_connection(session_factory):
    sink = make_sink(session_factory)

    results = await asyncio.gather(sink.send(1), sink.send(2))

    assert results == [True, True]
    assert session_factory.connect_calls == 1
    assert sorted(session_factory.sockets[0].sent) == ["1|255", "2|255"]
    assert sink.status()["connected"] is True
    await sink.close()


@pytest.mark.asyncio
async def test_concurrent_sends_drop_when_console_unreachable():
    factory = FakeSessionFactory(fail=True)
    sink = make_sink(factory)

    results = await asyncio.gather(sink.send(1), sink.send(2))

    assert results == [False, False]
    assert factory.connect_calls == 1

    # next cue tries again
    assert await sink.send(3) is False
    assert factory.connect_calls == 2
    await sink.close()


@pytest.mark.asyncio
async def test_connect_timeout_is_not_fatal():
    factory = FakeSessionFactory(delay=1.0)
    sink = make_sink(factory, connect_timeout=0.01)
    assert await sink.connect() is False
    assert await sink.send(1) is False
    await sink.close()


@pytest.mark.asyncio
async def test_reconnects_after_console_closes(session_factory):
    sink = make_sink(session_factory)
    conn = sink.connection

    assert await sink.send(1)
    first = session_factory.sockets[0]
    reader = conn._reader
    first.drop()
    await asyncio.wait_for(reader, 1)
    assert not conn.connected

    assert await sink.send(2)
    assert session_factory.connect_calls == 2
    assert first.sent == ["1|255"]
    assert session_factory.sockets[1].sent == ["2|255"]
    await sink.close()


@pytest.mark.asyncio
async def test_close_releases_socket_then_session(session_factory):
    sink = make_sink(session_factory)
    await sink.send(1)

    await sink.close()

    assert session_factory.sockets[0].closed
    assert session_factory.sessions[0].closed
    assert not sink.connection.connected


@pytest.mark.asyncio
async def test_close_releases_session_without_socket():
    factory = FakeSessionFactory(fail=True)
    sink = make_sink(factory)
    await sink.send(1)

    await sink.close()

    assert factory.sockets == []
    assert factory.sessions[0].closed


@pytest.mark.asyncio
async def test_close_during_connect_drops_waiting_sends():
    factory = FakeSessionFactory(delay=1.0)
    sink = make_sink(factory, connect_timeout=5.0)
    waiting = [asyncio.create_task(sink.send(1)), asyncio.create_task(sink.connect())]
    await asyncio.sleep(0.01)
    assert factory.connect_calls == 1

    await sink.close()

    assert await asyncio.wait_for(asyncio.gather(*waiting), 1) == [False, False]
    assert factory.sessions[0].closed
    assert factory.sockets == []


@pytest.mark.asyncio
async def test_cancelling_a_sender_leaves_the_connect_running(session_factory):
    session_factory.delay = 0.05
    sink = make_sink(session_factory)
    first = asyncio.create_task(sink.send(1))
    second = asyncio.create_task(sink.send(2))
    await asyncio.sleep(0.01)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert await second is True
    assert session_factory.connect_calls == 1
    assert session_factory.sockets[0].sent == ["2|255"]
    await sink.close()


@pytest.mark.asyncio
async def test_close_before_first_use(session_factory):
    sink = make_sink(session_factory)
    await sink.close()
    assert session_factory.sessions == []


@pytest.mark.asyncio
async def test_send_after_close_opens_a_new_connection(session_factory):
    sink = make_sink(session_factory)
    await sink.send(1)
    await sink.close()

    assert await sink.send(2)
    assert len(session_factory.sessions) == 2
    assert session_factory.sockets[1].sent == ["2|255"]
    await sink.close()


@pytest.mark.asyncio
async def test_frames_reach_a_real_websocket_endpoint():
    received = []
    got_both = asyncio.Event()

    async def handle_ws(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_str("QLC+ hello")
        async for msg in ws:
            received.append(msg.data)
            if len(received) == 2:
                got_both.set()
        return ws

    app = web.Application()
    app.router.add_get("/qlcplusWS", handle_ws)
    server = TestServer(app)
    await server.start_server()
    try:
        sink = QlcSink(QlcConnection(str(server.make_url("/qlcplusWS"))))
        assert await sink.send(5)
        assert await sink.send(42, 0)
        await asyncio.wait_for(got_both.wait(), 2)
        assert received == ["5|255", "42|0"]
        await sink.close()
        assert not sink.connection.connected
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_unreachable_real_endpoint_is_dropped():
    sink = QlcSink(QlcConnection("ws://127.0.0.1:1/qlcplusWS", connect_timeout=1.0))
    assert await sink.send(5) is False
    await sink.close()


@pytest.mark.asyncio
async def test_log_sink_counts_presses():
    sink = LogSink()
    assert await sink.send(7)
    assert await sink.connect()
    assert sink.status() == {"type": "log", "sent": 1}
