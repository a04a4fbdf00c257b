import base64
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from fashion_prompts.config.settings import Settings


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    """Settings with every delay shrunk so tests run instantly."""
    return Settings(
        groq_api_key="test-key",
        relay_connect_timeout_seconds=1.0,
        relay_prompt_timeout_seconds=0.2,
        relay_prompt_delay_seconds=0,
        relay_poll_interval_seconds=0,
        batch_item_delay_seconds=0,
        progress_ping_interval_seconds=30.0,
        progress_close_grace_seconds=0,
        max_batch_items=30,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def png_base64():
    """A tiny real PNG, base64 encoded."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def _completion(text):
    return MagicMock(choices=[MagicMock(message=MagicMock(content=text))])


@pytest.fixture
def make_completion():
    """Factory for chat-completions responses carrying a given text."""
    return _completion


_OUTFIT_RESPONSE = """Here are your prompts:
PROMPT1: red silk slip dress, studio shot, teal backdrop --ar 2:3 --s 250
PROMPT2: red silk slip dress, three-quarter turn, soft key light --ar 2:3
PROMPT3: red silk slip dress, walking pose, cobalt backdrop --ar 2:3 --q 2
NAME1: Crimson Whisper (크림슨 위스퍼)
NAME2: Ruby Drift (루비 드리프트)
"""


@pytest.fixture
def outfit_response():
    return _OUTFIT_RESPONSE


@pytest.fixture
def llm_client(make_completion, outfit_response):
    """Fake groq/openai client whose completions return an outfit response."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion(outfit_response))
    return client
