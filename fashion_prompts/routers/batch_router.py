"""
Batch API router.

Handles batch-level operations: processing, progress, abort.
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
import uuid

from fashion_prompts.core.logging_config import session_id_var
from fashion_prompts.core.dependencies import (
    get_abort_registry,
    get_batch_controller,
    get_broadcaster,
)
from fashion_prompts.controllers import BatchController
from fashion_prompts.schemas import AbortRequest, AbortResponse, BatchRequest, BatchSummary
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.progress_broadcaster import ProgressBroadcaster

router = APIRouter(prefix="/api/batches", tags=["Batches"])


@router.post("/process", response_model=BatchSummary, response_model_exclude_none=True)
async def process_batch(
    request: BatchRequest,
    controller: BatchController = Depends(get_batch_controller)
):
    """
    Run a batch of images through prompt generation (and optionally Midjourney).
    Progress is streamed on /api/batches/progress for the same sessionId.
    """
    session_id = request.session_id or f"batch_{uuid.uuid4().hex[:12]}"
    token = session_id_var.set(session_id)
    try:
        return await controller.run_batch(request.items, session_id, request.to_options())
    finally:
        session_id_var.reset(token)


@router.post("/abort", response_model=AbortResponse)
async def abort_batch(
    request: AbortRequest,
    abort_registry: AbortRegistry = Depends(get_abort_registry)
):
    """
    Signal a running batch to stop before its next job or prompt.
    Always succeeds, whether or not the session exists.
    """
    abort_registry.request_abort(request.session_id)
    return AbortResponse(
        message=f"Abort signal set for session {request.session_id}",
        session_id=request.session_id,
    )


@router.get("/progress")
async def get_batch_progress(
    session_id: str = Query(..., alias="sessionId", min_length=1),
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster)
):
    """Stream batch progress using Server-Sent Events (SSE)."""
    channel = broadcaster.attach(session_id)
    return StreamingResponse(
        channel.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        }
    )
