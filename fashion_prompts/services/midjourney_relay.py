"""
Discord / Midjourney relay.

Submits prompts to the Midjourney bot as `/imagine` interactions on behalf of
a Discord user token, over the Discord REST API.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import random
import re
import time
import uuid

import httpx

from fashion_prompts.config.settings import Settings, get_settings
from fashion_prompts.schemas import DiscordCredentials, ErrorKind, RelayBatchResult, RelayPromptResult
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.progress_broadcaster import NullProgressSink, ProgressSink
from fashion_prompts.utils.exceptions import RelayConfigurationError, RelayConnectionError, RelayError
from fashion_prompts.utils.image_utils import decode_image, detect_mime_type, reference_filename

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = (
    "No Discord user token provided. Please sign in with Discord to extract your user token."
)
TIMEOUT_ERROR = "Midjourney response timeout - possible Discord anti-bot check"
RECOVERY_INSTRUCTIONS = (
    "Go to Discord and manually run /imagine to pass anti-bot verification, then restart processing"
)

DM_SERVER_ID = "@me"
DISCORD_EPOCH_MS = 1420070400000

_URL = re.compile(r"<?https?://\S+>?")
_WHITESPACE = re.compile(r"\s+")


def snowflake_at(timestamp_ms: int) -> int:
    """Smallest Discord snowflake id created at the given time."""
    return (timestamp_ms - DISCORD_EPOCH_MS) << 22


def prompt_key(text: str) -> str:
    """Normalised prompt text used to match the bot's echo of a submission."""
    text = text.replace("**", "")
    text = _URL.sub(" ", text)
    text = text.split(" --", 1)[0]
    return _WHITESPACE.sub(" ", text).strip().lower()


def with_fast_mode(prompt: str, suffix: str = "--fast") -> str:
    """Append the fast-mode parameter unless the prompt already carries it."""
    if suffix in prompt.split():
        return prompt
    return f"{prompt} {suffix}"


def format_duration(seconds: float) -> str:
    """'4 minutes', '1 minute', '30 seconds'."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds:g} seconds"


class MidjourneySession:
    """
    One authenticated Discord session used for a single relay call.

    Not shared between concurrent relay calls.
    """

    def __init__(
        self,
        credentials: DiscordCredentials,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.token = credentials.token_value
        self.server_id = credentials.server_id or self.settings.discord_server_id
        self.channel_id = credentials.channel_id or self.settings.discord_channel_id
        self.application_id = self.settings.midjourney_application_id
        self.masked_token = credentials.masked_token

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._command: Optional[Dict[str, Any]] = None
        self._session_id = uuid.uuid4().hex
        self.user_id: Optional[str] = None

    @property
    def guild_id(self) -> Optional[str]:
        """Guild id for interactions; None in direct-message mode."""
        if not self.server_id or self.server_id == DM_SERVER_ID:
            return None
        return self.server_id

    @property
    def connected(self) -> bool:
        return self._client is not None and self._command is not None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RelayConnectionError("Discord session is not connected")
        return self._client

    async def connect(self) -> None:
        """Validate the token and resolve the Midjourney `/imagine` command."""
        if not self.token:
            raise RelayConfigurationError(MISSING_TOKEN_MESSAGE)
        if not self.channel_id:
            raise RelayConfigurationError("No Discord channel ID available")

        logger.info(
            f"Connecting to Discord (server: {self.guild_id or 'DM mode'}, "
            f"channel: {self.channel_id}, token: {self.masked_token})"
        )

        self._client = httpx.AsyncClient(
            base_url=self.settings.discord_api_base,
            headers={"Authorization": self.token},
            timeout=httpx.Timeout(self.settings.relay_connect_timeout_seconds),
            transport=self._transport,
        )

        try:
            me = await self._client.get("/users/@me")
            me.raise_for_status()
            self.user_id = me.json().get("id")

            response = await self._client.get(
                f"/channels/{self.channel_id}/application-commands/search",
                params={"type": 1, "query": "imagine", "limit": 10, "include_applications": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Discord API error during connect: {status} {e.response.text[:200]}")
            if status == 401:
                raise RelayConfigurationError("Discord rejected the user token (401 Unauthorized)") from e
            raise RelayConnectionError(f"Discord API error: {status}") from e
        except httpx.HTTPError as e:
            raise RelayConnectionError(f"Could not reach Discord: {e}") from e

        commands = response.json().get("application_commands") or []
        self._command = next(
            (
                command for command in commands
                if command.get("name") == "imagine"
                and str(command.get("application_id")) == self.application_id
            ),
            None,
        )
        if self._command is None:
            raise RelayConnectionError("Midjourney /imagine command is not available in this channel")

        logger.info(f"Connected to Discord as user {self.user_id}")

    async def upload_reference(self, image_bytes: bytes, mime_type: str) -> str:
        """Post the reference image to the channel and return its CDN URL."""
        client = self._require_client()
        filename = reference_filename(mime_type)
        payload = {
            "content": "Reference image for Midjourney",
            "attachments": [{"id": 0, "filename": filename}],
        }

        logger.info(f"Uploading reference image to channel {self.channel_id} ({len(image_bytes) // 1024}KB)")
        response = await client.post(
            f"/channels/{self.channel_id}/messages",
            data={"payload_json": json.dumps(payload)},
            files={"files[0]": (filename, image_bytes, mime_type)},
        )
        response.raise_for_status()

        attachments = response.json().get("attachments") or []
        if not attachments:
            raise RelayError("No attachments found in Discord message response")
        url = attachments[0]["url"]
        logger.info(f"Reference image uploaded: {url}")
        return url

    async def imagine(self, prompt: str) -> str:
        """
        Submit `/imagine` and wait for the finished render.

        Returns the id of the bot message carrying the render. Polls until
        found; callers bound the wait.
        """
        client = self._require_client()
        if self._command is None:
            raise RelayConnectionError("Discord session is not connected")

        after = snowflake_at(int(time.time() * 1000))
        payload = {
            "type": 2,
            "application_id": self.application_id,
            "guild_id": self.guild_id,
            "channel_id": self.channel_id,
            "session_id": self._session_id,
            "nonce": str(random.getrandbits(60)),
            "data": {
                "version": self._command.get("version"),
                "id": self._command.get("id"),
                "name": "imagine",
                "type": 1,
                "options": [{"type": 3, "name": "prompt", "value": prompt}],
                "application_command": self._command,
                "attachments": [],
            },
        }

        response = await client.post("/interactions", json=payload)
        response.raise_for_status()
        logger.debug(f"Imagine interaction accepted for prompt: {prompt[:80]}")

        return await self._await_render(prompt_key(prompt), after)

    async def _await_render(self, key: str, after: int) -> str:
        client = self._require_client()
        while True:
            await asyncio.sleep(self.settings.relay_poll_interval_seconds)
            response = await client.get(
                f"/channels/{self.channel_id}/messages",
                params={"after": str(after), "limit": 50},
            )
            response.raise_for_status()
            for message in response.json():
                if self._is_finished_render(message, key):
                    return str(message["id"])

    def _is_finished_render(self, message: Dict[str, Any], key: str) -> bool:
        author = message.get("author") or {}
        if str(author.get("id")) != self.application_id:
            return False
        if not message.get("attachments"):
            return False
        content = message.get("content") or ""
        if "%)" in content or "waiting to start" in content.lower():
            return False
        return key in prompt_key(content)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._command = None


SessionFactory = Callable[[DiscordCredentials], MidjourneySession]


class MidjourneyRelay:
    """
    Relays prompt lists to Midjourney, one Discord session per call.

    Prompts are submitted strictly one after another. The abort flag is
    checked before each submission; an in-flight submission always runs
    to completion or timeout.
    """

    def __init__(
        self,
        abort_registry: AbortRegistry,
        settings: Optional[Settings] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.abort_registry = abort_registry
        self.settings = settings or get_settings()
        self.session_factory = session_factory or (lambda creds: MidjourneySession(creds, self.settings))

    async def relay_batch(
        self,
        prompts: List[str],
        reference_image: Optional[str] = None,
        credentials: Optional[DiscordCredentials] = None,
        sink: Optional[ProgressSink] = None,
        session_id: Optional[str] = None,
    ) -> RelayBatchResult:
        """
        Submit every prompt, prefixed with the uploaded reference URL when available.

        Raises:
            RelayConfigurationError: no token or no channel.
            RelayConnectionError: the Discord session could not be established.
        """
        sink = sink or NullProgressSink()
        credentials = credentials or DiscordCredentials()
        if not credentials.token_value:
            raise RelayConfigurationError(MISSING_TOKEN_MESSAGE)

        total = len(prompts)
        timeout = self.settings.relay_prompt_timeout_seconds
        timeout_text = format_duration(timeout)
        logger.info(
            f"Relaying {total} prompts to Midjourney "
            f"(session: {session_id or 'none'}, token: {credentials.masked_token})"
        )

        session = self.session_factory(credentials)
        try:
            try:
                await asyncio.wait_for(session.connect(), timeout=self.settings.relay_connect_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise RelayConnectionError(
                    f"Connection timeout after {format_duration(self.settings.relay_connect_timeout_seconds)}"
                ) from e

            cdn_image_url = None
            if reference_image:
                await sink.report("uploading", {
                    "promptIndex": 0,
                    "totalPrompts": total,
                    "status": "Uploading reference image to Discord...",
                })
                try:
                    mime_type = detect_mime_type(reference_image)
                    cdn_image_url = await session.upload_reference(decode_image(reference_image), mime_type)
                except Exception as e:
                    logger.warning(f"Failed to upload reference image, proceeding without image: {e}")

            results: List[RelayPromptResult] = []
            for index, prompt in enumerate(prompts):
                position = f"{index + 1}/{total}"

                if session_id and self.abort_registry.should_abort(session_id):
                    logger.info(f"Relay aborted for session {session_id} at prompt {position}")
                    await sink.report("aborted", {
                        "promptIndex": index + 1,
                        "totalPrompts": total,
                        "status": f"Processing aborted by user at prompt {position}",
                    })
                    return RelayBatchResult(results=results, cdn_image_url=cdn_image_url, aborted=True)

                final_prompt = f"{cdn_image_url} {prompt}" if cdn_image_url else prompt
                await sink.report("submitting", {
                    "promptIndex": index + 1,
                    "totalPrompts": total,
                    "status": f"Processing prompt {position}...",
                })
                await sink.report("waiting", {
                    "promptIndex": index + 1,
                    "totalPrompts": total,
                    "status": f"Waiting for Midjourney response (up to {timeout_text})... ({position})",
                })

                try:
                    message_id = await asyncio.wait_for(session.imagine(final_prompt), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.error(f"Timeout on prompt {position} after {timeout_text}")
                    results.append(RelayPromptResult(
                        prompt=prompt,
                        error=TIMEOUT_ERROR,
                        error_kind=ErrorKind.RELAY_TIMEOUT,
                        recovery_instructions=RECOVERY_INSTRUCTIONS,
                    ))
                    await sink.report("timeout", {
                        "promptIndex": index + 1,
                        "totalPrompts": total,
                        "status": f"Prompt {position} timed out after {timeout_text}",
                        "details": {
                            "promptIndex": index + 1,
                            "totalPrompts": total,
                            "failedPrompt": prompt,
                            "error": TIMEOUT_ERROR,
                            "errorType": "midjourney_timeout",
                            "timeoutDuration": timeout_text,
                            "recoveryInstructions": RECOVERY_INSTRUCTIONS,
                        },
                    })
                    continue
                except Exception as e:
                    error = str(e) or e.__class__.__name__
                    logger.error(f"Error sending prompt {position}: {error}")
                    results.append(RelayPromptResult(
                        prompt=prompt,
                        error=error,
                        error_kind=ErrorKind.RELAY_PROMPT_FAILED,
                    ))
                    await sink.report("failed", {
                        "promptIndex": index + 1,
                        "totalPrompts": total,
                        "status": f"Prompt {position} failed with error: {error}",
                        "details": {
                            "promptIndex": index + 1,
                            "totalPrompts": total,
                            "failedPrompt": prompt,
                            "error": error,
                            "errorType": "midjourney_prompt_failed",
                        },
                    })
                    continue

                results.append(RelayPromptResult(prompt=prompt, message_id=message_id))
                logger.info(f"Prompt {position} sent successfully. Message ID: {message_id}")
                await sink.report("sent", {
                    "promptIndex": index + 1,
                    "totalPrompts": total,
                    "status": f"Prompt {position} sent successfully",
                })

                if index < total - 1:
                    await sink.report("pausing", {
                        "promptIndex": index + 1,
                        "totalPrompts": total,
                        "status": f"Waiting before next prompt... ({index + 2}/{total})",
                    })
                    await asyncio.sleep(self.settings.relay_prompt_delay_seconds)

            return RelayBatchResult(results=results, cdn_image_url=cdn_image_url, aborted=False)
        finally:
            await session.close()
