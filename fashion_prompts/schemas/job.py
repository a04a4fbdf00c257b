"""
Batch job schemas.
"""
from pydantic import ConfigDict, Field, SecretStr
from typing import Optional, List

from .common import CamelModel, ClothingPart, PromptType, GenderType, ErrorKind
from .relay import DiscordCredentials, RelayPromptResult


class Job(CamelModel):
    """One image plus its generation parameters. Immutable once submitted."""
    model_config = ConfigDict(frozen=True)

    id: str
    image_base64: str
    clothing_part: ClothingPart = ClothingPart.TOP
    custom_clothing_part: Optional[str] = None
    prompt_type: PromptType = PromptType.OUTFIT
    gender_type: GenderType = GenderType.FEMALE
    guidance: Optional[str] = Field(default=None, description="Free-text guidance for the model")
    file_name: Optional[str] = None

    @property
    def part_label(self) -> str:
        """Clothing part text sent to the model (custom label for `other`)."""
        if self.clothing_part == ClothingPart.OTHER and self.custom_clothing_part:
            return self.custom_clothing_part.strip()
        return self.clothing_part.value


class JobResult(CamelModel):
    """Outcome of processing one Job. Created once, never mutated."""
    model_config = ConfigDict(frozen=True)

    id: str
    success: bool
    prompt: Optional[str] = Field(default=None, description="Raw model response")
    midjourney_prompts: List[str] = Field(default_factory=list)
    outfit_names: List[str] = Field(default_factory=list)
    midjourney_results: List[RelayPromptResult] = Field(default_factory=list)
    cdn_image_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


class BatchOptions(CamelModel):
    """Per-batch toggles."""
    send_to_midjourney: bool = False
    fast_mode: bool = False
    credentials: Optional[DiscordCredentials] = None


class BatchRequest(CamelModel):
    """Request body for batch processing."""
    items: List[Job] = Field(default_factory=list)
    session_id: Optional[str] = None
    send_to_midjourney: bool = False
    fast_mode: bool = False
    discord_token: Optional[SecretStr] = None
    discord_server_id: Optional[str] = None
    discord_channel_id: Optional[str] = None

    def to_options(self) -> BatchOptions:
        credentials = None
        if self.send_to_midjourney:
            credentials = DiscordCredentials(
                token=self.discord_token,
                server_id=self.discord_server_id,
                channel_id=self.discord_channel_id,
            )
        return BatchOptions(
            send_to_midjourney=self.send_to_midjourney,
            fast_mode=self.fast_mode,
            credentials=credentials,
        )


class BatchSummary(CamelModel):
    """Final result of a batch invocation."""
    success: bool
    session_id: str
    results: List[JobResult] = Field(default_factory=list)
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    aborted: bool = False
    aborted_at: Optional[int] = None
