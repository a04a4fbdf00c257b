"""
Prompt controller - single-image generation and direct Midjourney relay.
"""
import logging

from fashion_prompts.config.settings import Settings
from fashion_prompts.schemas import (
    GeneratePromptRequest,
    GeneratePromptResponse,
    SendPromptsRequest,
    SendPromptsResponse,
)
from fashion_prompts.services.midjourney_relay import MidjourneyRelay, with_fast_mode
from fashion_prompts.services.prompt_generator import PromptGenerator
from fashion_prompts.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class PromptController:
    """Operations outside a batch session; no progress is streamed."""

    def __init__(self, prompt_generator: PromptGenerator, relay: MidjourneyRelay, settings: Settings):
        self.prompt_generator = prompt_generator
        self.relay = relay
        self.settings = settings

    async def generate_prompt(self, request: GeneratePromptRequest) -> GeneratePromptResponse:
        """Generate prompts for one image."""
        if not request.image_base64.strip():
            raise ValidationError("Missing required fields: imageBase64 and clothingPart")

        generated = await self.prompt_generator.generate(
            request.image_base64,
            request.part_label,
            request.prompt_type,
            request.gender_type,
            request.description,
            request.file_name,
        )
        return GeneratePromptResponse(
            prompt=generated.raw_text,
            midjourney_prompts=generated.prompts,
            outfit_names=generated.names,
        )

    async def send_to_midjourney(self, request: SendPromptsRequest) -> SendPromptsResponse:
        """Relay an explicit prompt list over one Discord session."""
        prompts = [p.strip() for p in request.prompts if p and p.strip()]
        if not prompts:
            raise ValidationError("Missing or invalid prompts array")

        if request.fast_mode:
            prompts = [with_fast_mode(p, self.settings.fast_mode_suffix) for p in prompts]

        logger.info(f"Sending {len(prompts)} prompts to Midjourney")
        relayed = await self.relay.relay_batch(
            prompts,
            reference_image=request.image_base64,
            credentials=request.credentials(),
        )

        successful = sum(1 for r in relayed.results if r.succeeded)
        return SendPromptsResponse(
            success=not relayed.aborted,
            results=relayed.results,
            cdn_image_url=relayed.cdn_image_url,
            total_prompts=len(prompts),
            successful_prompts=successful,
            failed_prompts=len(relayed.results) - successful,
        )
