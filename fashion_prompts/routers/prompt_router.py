"""
Prompt API router.

Thin router that delegates to PromptController.
"""
from fastapi import APIRouter, Depends

from fashion_prompts.core.dependencies import get_prompt_controller
from fashion_prompts.controllers import PromptController
from fashion_prompts.schemas import GeneratePromptRequest, GeneratePromptResponse

router = APIRouter(prefix="/api/prompts", tags=["Prompts"])


@router.post("/generate", response_model=GeneratePromptResponse)
async def generate_prompt(
    request: GeneratePromptRequest,
    controller: PromptController = Depends(get_prompt_controller)
):
    """Generate Midjourney prompts for a single image."""
    return await controller.generate_prompt(request)
