"""
Common schemas and enums used across the application.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from enum import Enum


class CamelModel(BaseModel):
    """Base model whose wire names are camelCase (the browser contract)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-compatible dict using wire field names, unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClothingPart(str, Enum):
    """Garment or body part the prompts should focus on."""
    TOP = "top"
    BOTTOM = "bottom"
    DRESS = "dress"
    OUTERWEAR = "outerwear"
    SHOES = "shoes"
    ACCESSORIES = "accessories"
    HAIR = "hair"
    FEATURES = "features"
    OTHER = "other"


class PromptType(str, Enum):
    """Generation mode."""
    OUTFIT = "outfit"
    TEXTURE = "texture"


class GenderType(str, Enum):
    """Model gender hint (outfit mode only)."""
    MALE = "male"
    FEMALE = "female"


class ErrorKind(str, Enum):
    """Classification attached to failed jobs and failed relay prompts."""
    GENERATION_FAILURE = "generation_failure"
    POLICY_REFUSAL = "policy_refusal"
    RELAY_FAILURE = "relay_failure"
    RELAY_PROMPT_FAILED = "relay_prompt_failed"
    RELAY_TIMEOUT = "relay_timeout"
    ABORTED = "aborted"


class EventType(str, Enum):
    """Progress event kinds pushed over the SSE stream."""
    CONNECTED = "connected"
    PING = "ping"
    BATCH_STARTED = "batch_started"
    PROGRESS_UPDATE = "progress_update"
    OPENAI_PROCESSING_COMPLETE = "openai_processing_complete"
    MIDJOURNEY_PROGRESS = "midjourney_progress"
    MIDJOURNEY_PROMPT_FAILED = "midjourney_prompt_failed"
    MIDJOURNEY_TIMEOUT = "midjourney_timeout"
    ITEM_COMPLETED = "item_completed"
    ITEM_FAILED = "item_failed"
    BATCH_COMPLETED = "batch_completed"
    BATCH_ABORTED = "batch_aborted"


TERMINAL_EVENTS = frozenset({EventType.BATCH_COMPLETED.value, EventType.BATCH_ABORTED.value})
