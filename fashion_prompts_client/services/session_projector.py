"""
Session State Projector.
Folds the server's progress events into a ProgressState, the way the
browser UI does.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from fashion_prompts_client.schemas.progress import (
    ItemState,
    ItemStatus,
    ProgressState,
    RelayProgressState,
    ServerUpdate,
)

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


class SessionStateProjector:
    """
    Client-side mirror of one batch session.

    Events are wire dicts (camelCase keys) as yielded by
    StudioClientService.stream_progress().
    """

    def __init__(self, session_id: Optional[str] = None, items: Optional[Iterable[Event]] = None):
        self.state = ProgressState(session_id=session_id)
        self._next_completed_id = 1
        self._handlers: Dict[str, Callable[[Event], None]] = {
            "connected": self._on_connected,
            "ping": lambda event: None,
            "batch_started": self._on_batch_started,
            "progress_update": self._on_progress_update,
            "openai_processing_complete": self._on_generation_complete,
            "midjourney_progress": self._on_relay_progress,
            "midjourney_prompt_failed": self._on_relay_progress,
            "midjourney_timeout": self._on_relay_progress,
            "item_completed": self._on_item_finished,
            "item_failed": self._on_item_finished,
            "batch_completed": self._on_batch_finished,
            "batch_aborted": self._on_batch_finished,
        }
        if items:
            self.register_items(items)

    def register_items(self, items: Iterable[Event]) -> None:
        """Seed pending items (dicts with `id` and optional `fileName`) before the batch starts."""
        for item in items:
            item_id = item["id"]
            if item_id not in self.state.items:
                self.state.items[item_id] = ItemState(id=item_id, file_name=item.get("fileName"))

    def apply(self, event: Event) -> ProgressState:
        """Fold one event into the state and return it."""
        kind = event.get("type", "")
        if kind != "ping":
            self.state.server_updates.append(ServerUpdate(
                type=kind,
                status=event.get("status"),
                details=event.get("details"),
                timestamp=event.get("timestamp"),
            ))

        handler = self._handlers.get(kind)
        if handler is None:
            logger.debug(f"Unknown progress event type: {kind}")
            return self.state

        handler(event)
        return self.state

    # --- Handlers ---
    def _aggregate(self, event: Event) -> None:
        for key in ("total", "completed", "processing"):
            if event.get(key) is not None:
                setattr(self.state, key, event[key])
        if event.get("status") is not None:
            self.state.status = event["status"]

    def _item(self, item_id: str, file_name: Optional[str] = None) -> ItemState:
        item = self.state.items.get(item_id)
        if item is None:
            item = ItemState(id=item_id, file_name=file_name)
            self.state.items[item_id] = item
        elif file_name and not item.file_name:
            item.file_name = file_name
        return item

    def _on_connected(self, event: Event) -> None:
        self.state.connected = True
        if event.get("sessionId"):
            self.state.session_id = event["sessionId"]

    def _on_batch_started(self, event: Event) -> None:
        self._aggregate(event)
        self.state.current_item = None
        self.state.relay = None
        self.state.aborted = False
        self.state.aborted_at = None
        self.state.finished = False

    def _on_progress_update(self, event: Event) -> None:
        self._aggregate(event)
        self.state.relay = None
        current = event.get("currentItem")
        self.state.current_item = current
        if current:
            self._item(current["id"], current.get("fileName")).status = ItemStatus.PROCESSING

    def _on_generation_complete(self, event: Event) -> None:
        self._aggregate(event)
        if event.get("currentItem"):
            self.state.current_item = event["currentItem"]

    def _on_relay_progress(self, event: Event) -> None:
        progress = event.get("midjourneyProgress") or {}
        self.state.relay = RelayProgressState(
            prompt_index=progress.get("promptIndex", 0),
            total_prompts=progress.get("totalPrompts", 0),
            status=progress.get("status") or event.get("status") or "",
            details=progress.get("details") or event.get("details"),
        )
        if event.get("status") is not None:
            self.state.status = event["status"]

    def _on_item_finished(self, event: Event) -> None:
        self._aggregate(event)
        self.state.current_item = None
        self.state.relay = None

        result = event.get("itemResult")
        if not result:
            return

        item = self._item(result["id"])
        item.status = ItemStatus.COMPLETED if result.get("success") else ItemStatus.ERROR
        item.prompt = result.get("prompt")
        item.midjourney_prompts = result.get("midjourneyPrompts") or []
        item.outfit_names = result.get("outfitNames") or []
        item.midjourney_results = result.get("midjourneyResults") or []
        item.cdn_image_url = result.get("cdnImageUrl")
        item.error = result.get("error")
        item.error_kind = result.get("errorKind")

        if item.completed_id is None:
            item.completed_id = self._next_completed_id
            item.generated_at = datetime.now()
            self._next_completed_id += 1
            self.state.completed_items.append(item)

    def _on_batch_finished(self, event: Event) -> None:
        self._aggregate(event)
        self.state.processing = 0
        self.state.current_item = None
        self.state.relay = None
        self.state.success_count = event.get("successCount")
        self.state.error_count = event.get("errorCount")
        self.state.finished = True
        if event.get("type") == "batch_aborted":
            self.state.aborted = True
            self.state.aborted_at = event.get("abortedAt")
