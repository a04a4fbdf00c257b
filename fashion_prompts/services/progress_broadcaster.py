"""
Session progress streaming with SSE support.

One outbound channel per session id. Delivery is best-effort: a missing or
broken channel drops the event, the batch HTTP response stays authoritative.
"""
import asyncio
from typing import Any, AsyncGenerator, Callable, Dict, Optional, Protocol, Tuple, Union
import json
import time

import logging

from fashion_prompts.schemas import EventType, ProgressEvent, RelayProgress, TERMINAL_EVENTS

logger = logging.getLogger(__name__)

# (event type, encoded SSE frame); None ends the stream
_QueueItem = Optional[Tuple[str, str]]


def now_ms() -> int:
    """Server timestamp in epoch milliseconds."""
    return int(time.time() * 1000)


def encode_frame(payload: Dict[str, Any]) -> str:
    """Encode a payload as one SSE `data:` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class ChannelClosedError(Exception):
    """Raised when writing to a channel whose observer has gone away."""
    pass


class ProgressChannel:
    """
    Outbound SSE channel for a single observer.

    Sends `connected` first, a `ping` every `ping_interval` seconds while
    open, and ends `close_grace` seconds after forwarding a terminal batch
    event.
    """

    def __init__(
        self,
        session_id: str,
        ping_interval: float,
        close_grace: float,
        on_close: Optional[Callable[["ProgressChannel"], None]] = None,
    ):
        self.session_id = session_id
        self._ping_interval = ping_interval
        self._close_grace = close_grace
        self._on_close = on_close
        self._queue: "asyncio.Queue[_QueueItem]" = asyncio.Queue()
        self._closed = False
        self._keep_alive: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the keep-alive ping task. Requires a running event loop."""
        if self._keep_alive is None:
            self._keep_alive = asyncio.create_task(self._ping_loop())

    async def _ping_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._ping_interval)
            if self._closed:
                break
            ping = {"type": EventType.PING.value, "timestamp": now_ms()}
            self._queue.put_nowait((EventType.PING.value, encode_frame(ping)))

    def send(self, payload: Dict[str, Any]) -> None:
        """Queue an already-stamped payload for the observer."""
        if self._closed:
            raise ChannelClosedError(f"Progress channel for {self.session_id} is closed")
        self._queue.put_nowait((payload.get("type", ""), encode_frame(payload)))

    def close(self) -> None:
        """Stop pinging and end the stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._keep_alive is not None:
            self._keep_alive.cancel()
            self._keep_alive = None
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncGenerator[str, None]:
        """Yield SSE frames until closed, a terminal event, or disconnect."""
        yield encode_frame({
            "type": EventType.CONNECTED.value,
            "sessionId": self.session_id,
            "timestamp": now_ms(),
        })

        try:
            while True:
                item = await self._queue.get()
                if item is None:
                    break
                event_type, frame = item
                yield frame
                if event_type in TERMINAL_EVENTS:
                    await asyncio.sleep(self._close_grace)
                    break
        except asyncio.CancelledError:
            logger.debug(f"Progress stream cancelled for session {self.session_id}")
            raise
        finally:
            self.close()
            if self._on_close is not None:
                self._on_close(self)


class ProgressBroadcaster:
    """
    Process-wide session id -> ProgressChannel table.

    Constructed once by the dependency container and shared by the
    progress route and the batch orchestrator.
    """

    def __init__(self, ping_interval: float = 30.0, close_grace: float = 1.0):
        self._ping_interval = ping_interval
        self._close_grace = close_grace
        self._channels: Dict[str, ProgressChannel] = {}

    def attach(self, session_id: str) -> ProgressChannel:
        """Register a new channel for a session, replacing any previous one."""
        previous = self._channels.get(session_id)
        channel = ProgressChannel(
            session_id,
            ping_interval=self._ping_interval,
            close_grace=self._close_grace,
            on_close=lambda ch: self.detach(ch.session_id, ch),
        )
        self._channels[session_id] = channel
        if previous is not None:
            logger.info(f"Replacing progress channel for session {session_id}")
            previous.close()
        channel.start()
        logger.debug(f"Progress channel attached for session {session_id}")
        return channel

    def publish(self, session_id: str, event: Union[ProgressEvent, Dict[str, Any]]) -> bool:
        """
        Push one event to the session's observer.

        Fire-and-forget: returns whether the event was queued, callers are
        free to ignore it. A closed channel is unregistered.
        """
        payload = event.to_wire() if isinstance(event, ProgressEvent) else dict(event)
        if payload.get("timestamp") is None:
            payload["timestamp"] = now_ms()

        channel = self._channels.get(session_id)
        if channel is None:
            logger.warning(f"No progress channel for session {session_id}; dropping {payload.get('type')}")
            return False

        try:
            channel.send(payload)
        except ChannelClosedError as e:
            logger.error(f"Error sending progress update for session {session_id}: {e}")
            self.detach(session_id, channel)
            return False

        logger.debug(f"Sent {payload.get('type')} for session {session_id}")
        return True

    def detach(self, session_id: str, channel: Optional[ProgressChannel] = None) -> None:
        """
        Remove the session's registration and stop its keep-alive.

        With `channel` given, only that channel is removed (a newer one
        attached under the same id is left alone).
        """
        current = self._channels.get(session_id)
        if current is None:
            return
        if channel is not None and current is not channel:
            return
        del self._channels[session_id]
        current.close()
        logger.debug(f"Progress channel detached for session {session_id}")

    def is_attached(self, session_id: str) -> bool:
        return session_id in self._channels


class ProgressSink(Protocol):
    """Narrow interface lower layers use to report sub-progress."""

    async def report(self, stage: str, detail: Dict[str, Any]) -> None:
        ...


class NullProgressSink:
    """Sink for callers nobody is observing."""

    async def report(self, stage: str, detail: Dict[str, Any]) -> None:
        return None


class SessionProgressSink:
    """
    Forwards relay sub-progress into a session's event stream.

    `snapshot` supplies the batch-level fields (total, completed, ...) at
    the moment of reporting. Error stages are published under the
    `errorType` carried in their details.
    """

    _ERROR_EVENTS = frozenset({
        EventType.MIDJOURNEY_TIMEOUT.value,
        EventType.MIDJOURNEY_PROMPT_FAILED.value,
    })

    def __init__(
        self,
        broadcaster: ProgressBroadcaster,
        session_id: str,
        snapshot: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self.broadcaster = broadcaster
        self.session_id = session_id
        self.snapshot = snapshot

    async def report(self, stage: str, detail: Dict[str, Any]) -> None:
        try:
            extra = detail.get("details") or None
            event_type = EventType.MIDJOURNEY_PROGRESS
            if extra and extra.get("errorType") in self._ERROR_EVENTS:
                event_type = EventType(extra["errorType"])

            fields = dict(self.snapshot()) if self.snapshot else {}
            for key in ("type", "status", "details", "midjourney_progress"):
                fields.pop(key, None)
            event = ProgressEvent(
                type=event_type,
                midjourney_progress=RelayProgress(
                    prompt_index=detail.get("promptIndex", 0),
                    total_prompts=detail.get("totalPrompts", 0),
                    status=detail.get("status", ""),
                    stage=stage,
                    details=extra,
                ),
                details=extra,
                status=detail.get("status"),
                **fields,
            )
            self.broadcaster.publish(self.session_id, event)
        except Exception as e:
            logger.warning(f"Dropping relay progress for session {self.session_id}: {e}")
