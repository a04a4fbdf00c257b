import asyncio
import json

import httpx
import pytest

from fashion_prompts.schemas import DiscordCredentials, ErrorKind
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.midjourney_relay import (
    RECOVERY_INSTRUCTIONS,
    TIMEOUT_ERROR,
    MidjourneyRelay,
    MidjourneySession,
    format_duration,
    prompt_key,
    with_fast_mode,
)
from fashion_prompts.utils.exceptions import RelayConfigurationError, RelayConnectionError

CDN_URL = "https://cdn.discordapp.com/attachments/1/2/reference.png"
MJ_APP_ID = "936929561302675456"


class FakeSession:
    """Stands in for MidjourneySession; outcomes are consumed one per imagine()."""

    def __init__(self, outcomes=(), connect_delay=0.0, upload_error=None, on_imagine=None):
        self.outcomes = list(outcomes)
        self.connect_delay = connect_delay
        self.upload_error = upload_error
        self.on_imagine = on_imagine
        self.submitted = []
        self.closed = False

    async def connect(self):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)

    async def upload_reference(self, image_bytes, mime_type):
        if self.upload_error:
            raise self.upload_error
        return CDN_URL

    async def imagine(self, prompt):
        self.submitted.append(prompt)
        if self.on_imagine:
            self.on_imagine(prompt)
        outcome = self.outcomes.pop(0)
        if outcome == "hang":
            await asyncio.sleep(10)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


class RecordingSink:
    def __init__(self):
        self.reports = []

    async def report(self, stage, detail):
        self.reports.append((stage, detail))

    @property
    def stages(self):
        return [stage for stage, _ in self.reports]


@pytest.fixture
def credentials():
    return DiscordCredentials(token="user-token-abcdefghij", server_id="@me", channel_id="555")


def _relay(settings, session, registry=None):
    return MidjourneyRelay(registry or AbortRegistry(), settings, session_factory=lambda creds: session)


def test_helpers():
    assert format_duration(240) == "4 minutes"
    assert format_duration(60) == "1 minute"
    assert format_duration(0.2) == "0.2 seconds"
    assert with_fast_mode("a dress --ar 2:3") == "a dress --ar 2:3 --fast"
    assert with_fast_mode("a dress --fast") == "a dress --fast"
    assert prompt_key(f"{CDN_URL} Red Silk  Dress --v 6") == "red silk dress"


@pytest.mark.anyio
async def test_timeout_on_first_prompt_does_not_stop_the_rest(settings, credentials):
    session = FakeSession(outcomes=["hang", "m2", "m3"])
    sink = RecordingSink()
    relay = _relay(settings, session)

    result = await relay.relay_batch(["p1", "p2", "p3"], credentials=credentials, sink=sink, session_id="s1")

    assert result.aborted is False
    assert [r.message_id for r in result.results] == [None, "m2", "m3"]
    first = result.results[0]
    assert first.error == TIMEOUT_ERROR
    assert first.error_kind == ErrorKind.RELAY_TIMEOUT
    assert first.recovery_instructions == RECOVERY_INSTRUCTIONS
    assert all(r.error is None for r in result.results[1:])
    assert session.closed is True

    _, timeout_detail = next(r for r in sink.reports if r[0] == "timeout")
    assert timeout_detail["promptIndex"] == 1
    assert timeout_detail["details"]["errorType"] == "midjourney_timeout"
    assert timeout_detail["details"]["failedPrompt"] == "p1"
    # One pause between the two successful submissions, none after the last
    assert sink.stages.count("pausing") == 1


@pytest.mark.anyio
async def test_prompt_failure_is_recorded_and_loop_continues(settings, credentials):
    session = FakeSession(outcomes=[RuntimeError("Discord API error: 500"), "m2"])
    sink = RecordingSink()

    result = await _relay(settings, session).relay_batch(["p1", "p2"], credentials=credentials, sink=sink)

    assert result.results[0].error == "Discord API error: 500"
    assert result.results[0].error_kind == ErrorKind.RELAY_PROMPT_FAILED
    assert result.results[1].message_id == "m2"
    _, failed = next(r for r in sink.reports if r[0] == "failed")
    assert failed["details"]["errorType"] == "midjourney_prompt_failed"
    assert failed["status"] == "Prompt 1/2 failed with error: Discord API error: 500"


@pytest.mark.anyio
async def test_abort_is_checked_before_each_prompt(settings, credentials):
    registry = AbortRegistry()
    session = FakeSession(outcomes=["m1", "m2", "m3"], on_imagine=lambda p: registry.request_abort("s1"))
    sink = RecordingSink()

    result = await _relay(settings, session, registry).relay_batch(
        ["p1", "p2", "p3"], credentials=credentials, sink=sink, session_id="s1"
    )

    assert result.aborted is True
    assert len(result.results) == 1
    assert result.results[0].message_id == "m1"
    assert session.submitted == ["p1"]
    assert sink.reports[-1][1]["status"] == "Processing aborted by user at prompt 2/3"
    assert session.closed is True


@pytest.mark.anyio
async def test_missing_token_is_a_configuration_failure(settings):
    created = []
    relay = MidjourneyRelay(AbortRegistry(), settings, session_factory=lambda creds: created.append(creds))

    with pytest.raises(RelayConfigurationError, match="No Discord user token provided"):
        await relay.relay_batch(["p1"], credentials=DiscordCredentials(channel_id="555"))

    assert created == []


@pytest.mark.anyio
async def test_connect_timeout_raises_connection_error(settings, credentials):
    session = FakeSession(connect_delay=5)
    relay = _relay(settings.model_copy(update={"relay_connect_timeout_seconds": 0.01}), session)

    with pytest.raises(RelayConnectionError, match="Connection timeout"):
        await relay.relay_batch(["p1"], credentials=credentials)

    assert session.closed is True


@pytest.mark.anyio
async def test_reference_image_is_uploaded_once_and_prefixed(settings, credentials, png_base64):
    session = FakeSession(outcomes=["m1", "m2"])
    sink = RecordingSink()

    result = await _relay(settings, session).relay_batch(
        ["p1", "p2"], reference_image=png_base64, credentials=credentials, sink=sink
    )

    assert result.cdn_image_url == CDN_URL
    assert session.submitted == [f"{CDN_URL} p1", f"{CDN_URL} p2"]
    assert [r.prompt for r in result.results] == ["p1", "p2"]
    assert sink.reports[0] == ("uploading", {
        "promptIndex": 0,
        "totalPrompts": 2,
        "status": "Uploading reference image to Discord...",
    })


@pytest.mark.anyio
async def test_upload_failure_is_not_fatal(settings, credentials, png_base64):
    session = FakeSession(outcomes=["m1"], upload_error=RuntimeError("413 Payload Too Large"))

    result = await _relay(settings, session).relay_batch(["p1"], reference_image=png_base64, credentials=credentials)

    assert result.cdn_image_url is None
    assert session.submitted == ["p1"]
    assert result.results[0].message_id == "m1"


# --- MidjourneySession against a mocked Discord REST API ---

def _discord_handler(captured, me_status=200, commands=None):
    if commands is None:
        commands = [{"id": "cmd-1", "version": "v-1", "name": "imagine", "application_id": MJ_APP_ID}]

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/users/@me"):
            return httpx.Response(me_status, json={"id": "42"})
        if path.endswith("/application-commands/search"):
            return httpx.Response(200, json={"application_commands": commands})
        if path.endswith("/interactions"):
            captured["interaction"] = json.loads(request.content)
            return httpx.Response(204)
        if path.endswith("/channels/555/messages") and request.method == "POST":
            captured["upload"] = request.content
            return httpx.Response(200, json={"id": "up-1", "attachments": [{"url": CDN_URL}]})
        if path.endswith("/channels/555/messages"):
            return httpx.Response(200, json=[
                {
                    "id": "other-user",
                    "author": {"id": "42"},
                    "content": "red silk dress",
                    "attachments": [{"url": "x"}],
                },
                {
                    "id": "in-progress",
                    "author": {"id": MJ_APP_ID},
                    "content": "**<https://s.mj.run/abc> red silk dress --v 6** - <@42> (50%) (fast)",
                    "attachments": [{"url": "partial"}],
                },
                {
                    "id": "final",
                    "author": {"id": MJ_APP_ID},
                    "content": "**<https://s.mj.run/abc> red silk dress --v 6** - <@42> (fast)",
                    "attachments": [{"url": "grid"}],
                },
            ])
        return httpx.Response(404)

    return handler


@pytest.mark.anyio
async def test_session_connects_submits_and_finds_finished_render(settings, credentials):
    captured = {}
    session = MidjourneySession(credentials, settings, transport=httpx.MockTransport(_discord_handler(captured)))

    await session.connect()
    message_id = await session.imagine(f"{CDN_URL} red silk dress --v 6")
    await session.close()

    assert message_id == "final"
    interaction = captured["interaction"]
    assert interaction["type"] == 2
    assert interaction["guild_id"] is None
    assert interaction["channel_id"] == "555"
    assert interaction["application_id"] == MJ_APP_ID
    assert interaction["data"]["id"] == "cmd-1"
    assert interaction["data"]["options"][0]["value"] == f"{CDN_URL} red silk dress --v 6"


@pytest.mark.anyio
async def test_session_uses_guild_id_outside_dm_mode(settings):
    captured = {}
    creds = DiscordCredentials(token="tok", server_id="999", channel_id="555")
    session = MidjourneySession(creds, settings, transport=httpx.MockTransport(_discord_handler(captured)))

    await session.connect()
    await session.imagine("red silk dress")
    await session.close()

    assert captured["interaction"]["guild_id"] == "999"


@pytest.mark.anyio
async def test_session_upload_returns_attachment_url(settings, credentials, png_base64):
    import base64

    captured = {}
    session = MidjourneySession(credentials, settings, transport=httpx.MockTransport(_discord_handler(captured)))
    await session.connect()

    url = await session.upload_reference(base64.b64decode(png_base64), "image/png")
    await session.close()

    assert url == CDN_URL
    assert b"payload_json" in captured["upload"]
    assert b"files[0]" in captured["upload"]
    assert b"reference.png" in captured["upload"]


@pytest.mark.anyio
async def test_session_rejected_token_is_a_configuration_failure(settings, credentials):
    session = MidjourneySession(credentials, settings, transport=httpx.MockTransport(_discord_handler({}, me_status=401)))

    with pytest.raises(RelayConfigurationError, match="401"):
        await session.connect()
    await session.close()


@pytest.mark.anyio
async def test_session_without_imagine_command_fails_to_connect(settings, credentials):
    session = MidjourneySession(credentials, settings, transport=httpx.MockTransport(_discord_handler({}, commands=[])))

    with pytest.raises(RelayConnectionError, match="/imagine"):
        await session.connect()
    await session.close()


@pytest.mark.anyio
async def test_session_server_and_channel_fall_back_to_settings(settings):
    configured = settings.model_copy(update={"discord_server_id": "777", "discord_channel_id": "888"})
    session = MidjourneySession(DiscordCredentials(token="tok"), configured)

    assert session.guild_id == "777"
    assert session.channel_id == "888"
