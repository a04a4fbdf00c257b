"""
Prompt generation schemas.
"""
from pydantic import BaseModel, Field
from typing import Optional, List

from .common import CamelModel, ClothingPart, PromptType, GenderType


class GeneratedPrompts(BaseModel):
    """Parsed output of one vision-model call."""
    raw_text: str
    prompts: List[str] = Field(default_factory=list, max_length=3)
    names: List[str] = Field(default_factory=list, max_length=10)


class GeneratePromptRequest(CamelModel):
    """Single-image prompt generation request."""
    image_base64: str
    clothing_part: ClothingPart
    custom_clothing_part: Optional[str] = None
    prompt_type: PromptType = PromptType.OUTFIT
    gender_type: GenderType = GenderType.FEMALE
    description: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def part_label(self) -> str:
        if self.clothing_part == ClothingPart.OTHER and self.custom_clothing_part:
            return self.custom_clothing_part.strip()
        return self.clothing_part.value


class GeneratePromptResponse(CamelModel):
    success: bool = True
    prompt: str
    midjourney_prompts: List[str]
    outfit_names: List[str] = Field(default_factory=list)
