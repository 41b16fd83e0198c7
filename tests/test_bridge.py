import json

import pytest
from aiohttp import ClientSession

import bridge
from cuebridge import config
from cuebridge.events import EventSource

from conftest import RecordingSink


@pytest.fixture()
def bridge_config(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "qlc": {"connect_on_start": True},
        "cues": {"prefix": "LX", "tolerance_ms": 100},
        "events": {"host": "127.0.0.1", "port": 0},
    }))
    monkeypatch.setenv("CUEBRIDGE_CONFIG", str(path))
    config.reload_config()
    yield path
    monkeypatch.delenv("CUEBRIDGE_CONFIG")
    config.reload_config()


@pytest.mark.asyncio
async def test_bridge_wires_events_to_sink(bridge_config):
    sink = RecordingSink()
    events = EventSource(host="127.0.0.1", port=0)
    cue_bridge = bridge.CueBridge(sink=sink, events=events)

    assert cue_bridge.dispatcher.tolerance_ms == 100

    await cue_bridge.start()
    try:
        assert sink.connected
        assert events.running
        await events.deliver({"type": "track", "device": 1, "cues": [
            {"time_ms": 1000, "name": "LX:3 QLC:4"}]})
        result = await events.deliver({"type": "beat", "device": 1, "beat": 3, "time_ms": 1080})
        assert result["fired"] == [3]

        status = cue_bridge.get_status()
        assert status["devices"] == {"1": {"cue_times": 1, "handled_beat": 3}}
        assert status["sink"] == {"type": "recording"}
    finally:
        await cue_bridge.shutdown()

    assert sink.closed
    assert not events.running
    # listeners are gone after shutdown
    await events.deliver({"type": "track", "device": 1, "cues": []})
    assert cue_bridge.index.get(1) is not None
    assert len(cue_bridge.index.get(1)) == 1


@pytest.mark.asyncio
async def test_bridge_serves_status_over_http(bridge_config):
    sink = RecordingSink()
    cue_bridge = bridge.CueBridge(sink=sink)
    await cue_bridge.start()
    try:
        assert cue_bridge.events.port != 0
        base = f"http://127.0.0.1:{cue_bridge.events.port}"
        async with ClientSession() as session:
            async with session.post(f"{base}/player/2/track",
                                    json={"cues": [{"time_ms": 0, "name": "LX:1"}]}) as resp:
                assert resp.status == 200
            async with session.get(f"{base}/status") as resp:
                body = await resp.json()
        assert body["devices"] == {"2": {"cue_times": 1, "handled_beat": None}}
    finally:
        await cue_bridge.shutdown()
