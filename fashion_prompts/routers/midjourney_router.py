"""
Midjourney API router.

Relays explicit prompt lists without running a batch.
"""
from fastapi import APIRouter, Depends

from fashion_prompts.core.dependencies import get_prompt_controller
from fashion_prompts.controllers import PromptController
from fashion_prompts.schemas import SendPromptsRequest, SendPromptsResponse

router = APIRouter(prefix="/api/midjourney", tags=["Midjourney"])


@router.post("/send", response_model=SendPromptsResponse, response_model_exclude_none=True)
async def send_to_midjourney(
    request: SendPromptsRequest,
    controller: PromptController = Depends(get_prompt_controller)
):
    """Send prompts to Midjourney with the caller's Discord token."""
    return await controller.send_to_midjourney(request)
