"""
Studio Client Service.
Encapsulates all HTTP communication with the Fashion Prompt Studio API.
"""
import asyncio
import httpx
import json
import logging
import uuid
from typing import AsyncGenerator, Dict, Any, Optional, Tuple

from fashion_prompts_client.config import ClientConfig
from fashion_prompts_client.schemas.progress import ProgressState
from fashion_prompts_client.services.session_projector import SessionStateProjector

logger = logging.getLogger(__name__)


class StudioClientService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or ClientConfig.BASE_URL
        self.timeout = timeout or ClientConfig.TIMEOUT
        self.transport = transport

    async def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    # --- Batches ---
    async def process_batch(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """POST a batch (camelCase body) and return the summary."""
        async with await self._get_client() as client:
            resp = await client.post("/batches/process", json=request, timeout=ClientConfig.BATCH_TIMEOUT)
            resp.raise_for_status()
            return resp.json()

    async def abort(self, session_id: str) -> Dict[str, Any]:
        async with await self._get_client() as client:
            resp = await client.post("/batches/abort", json={"sessionId": session_id})
            resp.raise_for_status()
            return resp.json()

    async def stream_progress(self, session_id: str) -> AsyncGenerator[Dict[str, Any], None]:
        """Yields SSE events until the server closes the stream."""
        async with await self._get_client() as client:
            async with client.stream(
                "GET", "/batches/progress", params={"sessionId": session_id}, timeout=None
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if line.startswith("data: "):
                        try:
                            yield json.loads(line[6:])
                        except json.JSONDecodeError:
                            logger.warning(f"Skipping malformed progress frame: {line[:100]}")

    async def follow_batch(
        self,
        request: Dict[str, Any],
        projector: Optional[SessionStateProjector] = None,
    ) -> Tuple[Dict[str, Any], ProgressState]:
        """
        Run a batch while projecting its progress stream.

        The stream is opened first so no early event is missed. Returns the
        batch summary and the final projected state.
        """
        request = dict(request)
        session_id = request.setdefault("sessionId", f"batch_{uuid.uuid4().hex[:12]}")
        projector = projector or SessionStateProjector(session_id, items=request.get("items", []))
        connected = asyncio.Event()

        async def consume() -> None:
            async for event in self.stream_progress(session_id):
                projector.apply(event)
                if event.get("type") == "connected":
                    connected.set()

        consumer = asyncio.create_task(consume())
        try:
            try:
                await asyncio.wait_for(connected.wait(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Progress stream for {session_id} did not connect; running without it")

            summary = await self.process_batch(request)

            try:
                await asyncio.wait_for(consumer, timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Progress stream for {session_id} did not close after the batch")
        finally:
            if not consumer.done():
                consumer.cancel()

        return summary, projector.state

    # --- Prompts ---
    async def generate_prompt(self, request: Dict[str, Any]) -> Dict[str, Any]:
        async with await self._get_client() as client:
            resp = await client.post("/prompts/generate", json=request, timeout=ClientConfig.BATCH_TIMEOUT)
            resp.raise_for_status()
            return resp.json()

    async def send_to_midjourney(self, request: Dict[str, Any]) -> Dict[str, Any]:
        async with await self._get_client() as client:
            resp = await client.post("/midjourney/send", json=request, timeout=ClientConfig.BATCH_TIMEOUT)
            resp.raise_for_status()
            return resp.json()

    # --- Service ---
    async def health(self) -> Dict[str, Any]:
        """GET /health (served at the API root, outside /api)."""
        root = self.base_url.rstrip("/")
        if root.endswith("/api"):
            root = root[: -len("/api")]
        async with httpx.AsyncClient(base_url=root, timeout=self.timeout, transport=self.transport) as client:
            resp = await client.get("/health")
            resp.raise_for_status()
            return resp.json()
