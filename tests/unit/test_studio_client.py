import json

import httpx
import pytest

from fashion_prompts_client.services.studio_client import StudioClientService

BASE_URL = "http://studio.test/api"


def _sse(*events):
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: {not json\n\n"


SESSION_EVENTS = [
    {"type": "connected", "sessionId": "s1", "timestamp": 1},
    {"type": "batch_started", "total": 1, "completed": 0, "processing": 0, "status": "Starting batch processing..."},
    {
        "type": "progress_update",
        "total": 1,
        "completed": 0,
        "processing": 1,
        "currentItem": {"id": "a", "fileName": "a.png", "clothingPart": "top", "promptType": "outfit"},
    },
    {
        "type": "item_completed",
        "total": 1,
        "completed": 1,
        "processing": 0,
        "itemResult": {"id": "a", "success": True, "midjourneyPrompts": ["look"]},
    },
    {"type": "batch_completed", "total": 1, "completed": 1, "successCount": 1, "errorCount": 0},
]

SUMMARY = {
    "success": True,
    "sessionId": "s1",
    "results": [{"id": "a", "success": True, "midjourneyPrompts": ["look"]}],
    "totalProcessed": 1,
    "successCount": 1,
    "errorCount": 0,
    "aborted": False,
}


def _client(handler):
    return StudioClientService(base_url=BASE_URL, timeout=5.0, transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_stream_progress_parses_data_frames_and_skips_malformed():
    def handler(request):
        assert request.url.path == "/api/batches/progress"
        assert request.url.params["sessionId"] == "s1"
        return httpx.Response(200, text=_sse(*SESSION_EVENTS), headers={"Content-Type": "text/event-stream"})

    events = [event async for event in _client(handler).stream_progress("s1")]

    assert [e["type"] for e in events] == [e["type"] for e in SESSION_EVENTS]


@pytest.mark.anyio
async def test_abort_posts_session_id():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "message": "Abort signal set for session s1", "sessionId": "s1"})

    response = await _client(handler).abort("s1")

    assert seen == {"path": "/api/batches/abort", "body": {"sessionId": "s1"}}
    assert response["success"] is True


@pytest.mark.anyio
async def test_follow_batch_returns_summary_and_projected_state():
    posted = {}

    def handler(request):
        if request.url.path == "/api/batches/progress":
            return httpx.Response(200, text=_sse(*SESSION_EVENTS))
        if request.url.path == "/api/batches/process":
            posted.update(json.loads(request.content))
            return httpx.Response(200, json=SUMMARY)
        return httpx.Response(404)

    request = {"sessionId": "s1", "items": [{"id": "a", "imageBase64": "aGVsbG8=", "fileName": "a.png"}]}
    summary, state = await _client(handler).follow_batch(request)

    assert posted["sessionId"] == "s1"
    assert summary["successCount"] == 1
    assert state.connected is True
    assert state.finished is True
    assert state.items["a"].midjourney_prompts == ["look"]
    assert [i.id for i in state.completed_items] == ["a"]


@pytest.mark.anyio
async def test_health_is_served_outside_api_prefix():
    def handler(request):
        assert request.url.path == "/health"
        return httpx.Response(200, json={"status": "healthy"})

    assert await _client(handler).health() == {"status": "healthy"}


@pytest.mark.anyio
async def test_http_errors_propagate():
    def handler(request):
        return httpx.Response(400, json={"detail": "No items provided for batch processing"})

    with pytest.raises(httpx.HTTPStatusError):
        await _client(handler).process_batch({"items": []})
