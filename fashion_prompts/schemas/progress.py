"""
Progress event schemas (SSE wire contract).
"""
from pydantic import Field
from typing import Optional, List, Dict, Any

from .common import CamelModel, EventType
from .job import JobResult


class CurrentItem(CamelModel):
    """Job currently in flight."""
    id: str
    file_name: str
    clothing_part: str
    prompt_type: str


class RelayProgress(CamelModel):
    """Relay-stage sub-progress for the active job."""
    prompt_index: int
    total_prompts: int
    status: str
    stage: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ProgressEvent(CamelModel):
    """
    One record pushed through the progress broadcaster.

    Batch-level kinds carry total/completed/processing/status; item-level
    kinds carry `itemResult` or `details`. `timestamp` (epoch ms) is added
    by the broadcaster when absent.
    """
    type: EventType
    session_id: Optional[str] = None
    total: Optional[int] = None
    completed: Optional[int] = None
    processing: Optional[int] = None
    status: Optional[str] = None
    current_item: Optional[CurrentItem] = None
    midjourney_progress: Optional[RelayProgress] = None
    details: Optional[Dict[str, Any]] = None
    item_result: Optional[JobResult] = None
    results: Optional[List[JobResult]] = None
    success_count: Optional[int] = None
    error_count: Optional[int] = None
    aborted_at: Optional[int] = None
    timestamp: Optional[int] = Field(default=None, description="Server time, epoch milliseconds")
