import json
from unittest.mock import MagicMock

import pytest

from fashion_prompts.schemas import CurrentItem, EventType, ProgressEvent
from fashion_prompts.services.progress_broadcaster import (
    NullProgressSink,
    ProgressBroadcaster,
    SessionProgressSink,
    encode_frame,
)


def _decode(frame):
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


async def _collect(channel):
    return [_decode(frame) async for frame in channel.stream()]


def test_encode_frame_uses_sse_data_framing():
    assert encode_frame({"type": "ping"}) == 'data: {"type": "ping"}\n\n'


@pytest.mark.anyio
async def test_publish_without_channel_is_dropped():
    broadcaster = ProgressBroadcaster()

    assert broadcaster.publish("missing", {"type": "batch_started"}) is False


@pytest.mark.anyio
async def test_stream_delivers_connected_then_events_in_order_and_closes_on_terminal():
    broadcaster = ProgressBroadcaster(close_grace=0)
    channel = broadcaster.attach("s1")

    assert broadcaster.publish("s1", ProgressEvent(
        type=EventType.PROGRESS_UPDATE,
        total=2,
        completed=0,
        processing=1,
        current_item=CurrentItem(id="a", file_name="a.png", clothing_part="top", prompt_type="outfit"),
        status="Processing image 1 of 2...",
    ))
    assert broadcaster.publish("s1", {"type": "batch_completed", "total": 2, "timestamp": 123})
    # Anything after the terminal event is never delivered
    broadcaster.publish("s1", {"type": "progress_update"})

    events = await _collect(channel)

    assert [e["type"] for e in events] == ["connected", "progress_update", "batch_completed"]
    assert events[0]["sessionId"] == "s1"
    assert events[1]["currentItem"] == {
        "id": "a", "fileName": "a.png", "clothingPart": "top", "promptType": "outfit",
    }
    assert events[1]["completed"] == 0
    assert isinstance(events[1]["timestamp"], int)
    assert events[2]["timestamp"] == 123
    assert broadcaster.is_attached("s1") is False


@pytest.mark.anyio
async def test_attach_replaces_previous_channel():
    broadcaster = ProgressBroadcaster()
    first = broadcaster.attach("s1")
    second = broadcaster.attach("s1")

    assert first.closed is True
    assert second.closed is False
    assert broadcaster.publish("s1", {"type": "batch_started"}) is True

    broadcaster.detach("s1")
    assert second.closed is True


@pytest.mark.anyio
async def test_detach_of_stale_channel_keeps_newer_registration():
    broadcaster = ProgressBroadcaster()
    first = broadcaster.attach("s1")
    broadcaster.attach("s1")

    broadcaster.detach("s1", first)

    assert broadcaster.is_attached("s1") is True
    broadcaster.detach("s1")


@pytest.mark.anyio
async def test_publish_to_closed_channel_removes_registration():
    broadcaster = ProgressBroadcaster()
    channel = broadcaster.attach("s1")
    channel.close()

    assert broadcaster.publish("s1", {"type": "batch_started"}) is False
    assert broadcaster.is_attached("s1") is False


@pytest.mark.anyio
async def test_keep_alive_ping_is_sent_while_attached():
    broadcaster = ProgressBroadcaster(ping_interval=0.01)
    channel = broadcaster.attach("s1")
    stream = channel.stream()

    connected = _decode(await stream.__anext__())
    ping = _decode(await stream.__anext__())

    assert connected["type"] == "connected"
    assert ping["type"] == "ping"
    assert isinstance(ping["timestamp"], int)

    await stream.aclose()
    assert channel.closed is True
    assert broadcaster.is_attached("s1") is False


@pytest.mark.anyio
async def test_session_sink_publishes_error_typed_events_with_snapshot():
    broadcaster = MagicMock()
    sink = SessionProgressSink(
        broadcaster,
        "s1",
        snapshot=lambda: {"total": 3, "completed": 1, "processing": 1, "status": "ignored"},
    )

    await sink.report("timeout", {
        "promptIndex": 2,
        "totalPrompts": 3,
        "status": "Prompt 2/3 timed out after 4 minutes",
        "details": {"errorType": "midjourney_timeout", "timeoutDuration": "4 minutes"},
    })
    await sink.report("sent", {"promptIndex": 3, "totalPrompts": 3, "status": "Prompt 3/3 sent successfully"})

    (sid1, timeout_event), _ = broadcaster.publish.call_args_list[0]
    (sid2, progress_event), _ = broadcaster.publish.call_args_list[1]

    assert sid1 == sid2 == "s1"
    assert timeout_event.type == EventType.MIDJOURNEY_TIMEOUT
    assert timeout_event.total == 3
    assert timeout_event.completed == 1
    assert timeout_event.status == "Prompt 2/3 timed out after 4 minutes"
    assert timeout_event.midjourney_progress.prompt_index == 2
    assert timeout_event.midjourney_progress.stage == "timeout"
    assert timeout_event.details["timeoutDuration"] == "4 minutes"
    assert progress_event.type == EventType.MIDJOURNEY_PROGRESS
    assert progress_event.details is None


@pytest.mark.anyio
async def test_session_sink_swallows_broadcaster_failures():
    broadcaster = MagicMock()
    broadcaster.publish.side_effect = RuntimeError("socket gone")
    sink = SessionProgressSink(broadcaster, "s1")

    await sink.report("sent", {"promptIndex": 1, "totalPrompts": 1, "status": "ok"})

    assert broadcaster.publish.call_count == 1


@pytest.mark.anyio
async def test_null_sink_accepts_reports():
    assert await NullProgressSink().report("sent", {}) is None
