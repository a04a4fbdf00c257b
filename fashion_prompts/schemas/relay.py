"""
Discord / Midjourney relay schemas.
"""
from pydantic import Field, SecretStr
from typing import Optional, List

from .common import CamelModel, ErrorKind


class DiscordCredentials(CamelModel):
    """Caller-supplied Discord user credentials for one relay call."""
    token: Optional[SecretStr] = None
    server_id: Optional[str] = None
    channel_id: Optional[str] = None

    @property
    def token_value(self) -> str:
        return self.token.get_secret_value() if self.token else ""

    @property
    def masked_token(self) -> str:
        value = self.token_value
        return f"{value[:10]}..." if value else "MISSING"


class RelayPromptResult(CamelModel):
    """Outcome of one prompt submission: a message id or an error, never both."""
    prompt: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    recovery_instructions: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.message_id is not None


class RelayBatchResult(CamelModel):
    """Outcome of relaying a prompt list over one Discord session."""
    results: List[RelayPromptResult] = Field(default_factory=list)
    cdn_image_url: Optional[str] = None
    aborted: bool = False


class SendPromptsRequest(CamelModel):
    """Request body for relaying explicit prompts without a batch."""
    prompts: List[str]
    image_base64: Optional[str] = None
    fast_mode: bool = False
    discord_token: Optional[SecretStr] = None
    discord_server_id: Optional[str] = None
    discord_channel_id: Optional[str] = None

    def credentials(self) -> DiscordCredentials:
        return DiscordCredentials(
            token=self.discord_token,
            server_id=self.discord_server_id,
            channel_id=self.discord_channel_id,
        )


class SendPromptsResponse(CamelModel):
    success: bool
    results: List[RelayPromptResult]
    cdn_image_url: Optional[str] = None
    total_prompts: int
    successful_prompts: int
    failed_prompts: int


class AbortRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


class AbortResponse(CamelModel):
    success: bool = True
    message: str
    session_id: str
