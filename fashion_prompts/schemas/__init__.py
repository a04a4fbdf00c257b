"""
Schemas module for Fashion Prompt Studio.
"""
from .common import (
    CamelModel,
    ClothingPart,
    PromptType,
    GenderType,
    ErrorKind,
    EventType,
    TERMINAL_EVENTS,
)
from .relay import (
    DiscordCredentials,
    RelayPromptResult,
    RelayBatchResult,
    SendPromptsRequest,
    SendPromptsResponse,
    AbortRequest,
    AbortResponse,
)
from .job import Job, JobResult, BatchOptions, BatchRequest, BatchSummary
from .progress import CurrentItem, RelayProgress, ProgressEvent
from .prompt import GeneratedPrompts, GeneratePromptRequest, GeneratePromptResponse

__all__ = [
    # Common
    "CamelModel",
    "ClothingPart",
    "PromptType",
    "GenderType",
    "ErrorKind",
    "EventType",
    "TERMINAL_EVENTS",
    # Relay
    "DiscordCredentials",
    "RelayPromptResult",
    "RelayBatchResult",
    "SendPromptsRequest",
    "SendPromptsResponse",
    "AbortRequest",
    "AbortResponse",
    # Job
    "Job",
    "JobResult",
    "BatchOptions",
    "BatchRequest",
    "BatchSummary",
    # Progress
    "CurrentItem",
    "RelayProgress",
    "ProgressEvent",
    # Prompt
    "GeneratedPrompts",
    "GeneratePromptRequest",
    "GeneratePromptResponse",
]
