"""
Progress Data Transfer Objects.
Client-side mirror of a batch session, rebuilt from the server's SSE events.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any
from datetime import datetime
from enum import Enum


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ItemState(BaseModel):
    """Per-item view shown in the results grid."""
    id: str
    file_name: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    prompt: Optional[str] = Field(None, description="Raw model response")
    midjourney_prompts: List[str] = Field(default_factory=list)
    outfit_names: List[str] = Field(default_factory=list)
    midjourney_results: List[Dict[str, Any]] = Field(default_factory=list)
    cdn_image_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    completed_id: Optional[int] = Field(None, description="Order in which the item finished, from 1")
    generated_at: Optional[datetime] = None


class RelayProgressState(BaseModel):
    """Midjourney sub-progress of the item in flight."""
    prompt_index: int = 0
    total_prompts: int = 0
    status: str = ""
    details: Optional[Dict[str, Any]] = None


class ServerUpdate(BaseModel):
    """One entry of the server update log."""
    type: str
    status: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: Optional[int] = Field(None, description="Server time, epoch milliseconds")

    @property
    def is_error(self) -> bool:
        return "failed" in self.type or "error" in self.type or "timeout" in self.type


class ProgressState(BaseModel):
    """Aggregate batch progress."""
    session_id: Optional[str] = None
    connected: bool = False
    total: int = 0
    completed: int = 0
    processing: int = 0
    status: str = ""
    current_item: Optional[Dict[str, Any]] = None
    relay: Optional[RelayProgressState] = None
    items: Dict[str, ItemState] = Field(default_factory=dict)
    completed_items: List[ItemState] = Field(default_factory=list)
    server_updates: List[ServerUpdate] = Field(default_factory=list)
    success_count: Optional[int] = None
    error_count: Optional[int] = None
    aborted: bool = False
    aborted_at: Optional[int] = None
    finished: bool = False
