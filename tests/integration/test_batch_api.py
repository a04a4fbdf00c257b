from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from fashion_prompts.config.settings import get_settings
from fashion_prompts.controllers import BatchController, PromptController
from fashion_prompts.core import (
    create_app,
    get_abort_registry,
    get_batch_controller,
    get_prompt_controller,
)
from fashion_prompts.schemas import GeneratedPrompts
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.midjourney_relay import MidjourneyRelay
from fashion_prompts.services.progress_broadcaster import ProgressBroadcaster
from fashion_prompts.utils.exceptions import PolicyRefusalError

GENERATED = GeneratedPrompts(
    raw_text="PROMPT1: look one --ar 2:3\nNAME1: Rosa (로사)",
    prompts=["look one --ar 2:3"],
    names=["Rosa (로사)"],
)


@pytest.fixture
def generator():
    mock = MagicMock()
    mock.generate = AsyncMock(return_value=GENERATED)
    return mock


@pytest.fixture
def registry():
    return AbortRegistry()


@pytest.fixture
def app(monkeypatch, tmp_path, settings, generator, registry):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    get_settings.cache_clear()

    application = create_app()
    relay = MidjourneyRelay(registry, settings)
    batch_controller = BatchController(generator, relay, registry, ProgressBroadcaster(close_grace=0), settings)
    prompt_controller = PromptController(generator, relay, settings)

    application.dependency_overrides[get_batch_controller] = lambda: batch_controller
    application.dependency_overrides[get_prompt_controller] = lambda: prompt_controller
    application.dependency_overrides[get_abort_registry] = lambda: registry
    yield application

    application.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
async def async_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.anyio
async def test_process_batch_returns_camel_case_summary(async_client: AsyncClient, generator):
    response = await async_client.post("/api/batches/process", json={
        "sessionId": "batch_test",
        "items": [
            {"id": "a", "imageBase64": "aGVsbG8=", "clothingPart": "dress", "fileName": "a.png"},
            {"id": "b", "imageBase64": "aGVsbG8=", "clothingPart": "other", "customClothingPart": "scarf"},
        ],
    })

    assert response.status_code == 200
    body = response.json()
    assert body["sessionId"] == "batch_test"
    assert body["successCount"] == 2
    assert body["totalProcessed"] == 2
    assert body["results"][0]["midjourneyPrompts"] == ["look one --ar 2:3"]
    assert body["results"][0]["outfitNames"] == ["Rosa (로사)"]
    assert "abortedAt" not in body
    assert generator.generate.await_args_list[1].args[1] == "scarf"


@pytest.mark.anyio
async def test_empty_batch_is_rejected(async_client: AsyncClient):
    response = await async_client.post("/api/batches/process", json={"items": []})

    assert response.status_code == 400
    assert response.json()["detail"] == "No items provided for batch processing"


@pytest.mark.anyio
async def test_abort_is_idempotent_and_accepts_unknown_sessions(async_client: AsyncClient, registry):
    for _ in range(2):
        response = await async_client.post("/api/batches/abort", json={"sessionId": "never-started"})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Abort signal set for session never-started",
            "sessionId": "never-started",
        }

    assert registry.should_abort("never-started") is True


@pytest.mark.anyio
async def test_abort_requires_session_id(async_client: AsyncClient):
    response = await async_client.post("/api/batches/abort", json={})

    assert response.status_code == 422


@pytest.mark.anyio
async def test_progress_requires_session_id(async_client: AsyncClient):
    response = await async_client.get("/api/batches/progress")

    assert response.status_code == 422


@pytest.mark.anyio
async def test_generate_prompt(async_client: AsyncClient):
    response = await async_client.post("/api/prompts/generate", json={
        "imageBase64": "aGVsbG8=",
        "clothingPart": "top",
        "promptType": "texture",
    })

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "prompt": GENERATED.raw_text,
        "midjourneyPrompts": ["look one --ar 2:3"],
        "outfitNames": ["Rosa (로사)"],
    }


@pytest.mark.anyio
async def test_generate_prompt_refusal_is_reported(async_client: AsyncClient, generator):
    generator.generate.side_effect = PolicyRefusalError("I'm sorry, I can't help with that.")

    response = await async_client.post("/api/prompts/generate", json={"imageBase64": "aGVsbG8=", "clothingPart": "top"})

    assert response.status_code == 422
    body = response.json()
    assert body["errorKind"] == "policy_refusal"
    assert body["rawText"] == "I'm sorry, I can't help with that."


@pytest.mark.anyio
async def test_send_to_midjourney_without_token_is_rejected(async_client: AsyncClient):
    response = await async_client.post("/api/midjourney/send", json={"prompts": ["look one"]})

    assert response.status_code == 400
    assert response.json()["detail"].startswith("No Discord user token provided")


@pytest.mark.anyio
async def test_send_to_midjourney_requires_prompts(async_client: AsyncClient):
    response = await async_client.post("/api/midjourney/send", json={"prompts": ["  "], "discordToken": "tok"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing or invalid prompts array"


@pytest.mark.anyio
async def test_health(async_client: AsyncClient):
    response = await async_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert "llm" in body["services"]
