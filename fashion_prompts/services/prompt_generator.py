"""
Vision LLM client that turns a garment photo into Midjourney prompts.

Talks to an OpenAI-compatible chat-completions backend (GROQ by default,
OpenAI optionally). Images are sent in vision API format.
"""
from groq import AsyncGroq
from openai import AsyncOpenAI
from typing import List, Optional, Tuple, Any
import logging
import re

from fashion_prompts.config.settings import Settings, get_settings
from fashion_prompts.schemas import GeneratedPrompts, GenderType, PromptType
from fashion_prompts.utils.exceptions import GenerationError, PolicyRefusalError
from fashion_prompts.utils.image_utils import alternate_mime_type, detect_mime_type, strip_data_url

logger = logging.getLogger(__name__)

MAX_PROMPTS = 3
MAX_NAMES = 10


# ============================================================
# CENTRALISED PROMPT TEMPLATES
# ============================================================

_SYSTEM_PROMPT = """\
You are an expert fashion designer and Midjourney prompt engineer. You analyze Pinterest-style \
fashion photos and write precise, production-ready Midjourney prompts for 3D clothing design.

## OUTPUT FORMAT (STRICT)
- Write every prompt on its own single line, prefixed exactly `PROMPT1:`, `PROMPT2:`, `PROMPT3:`.
- Do NOT use markdown, bullets, numbering, headings or quotation marks.
- Do NOT include the /imagine command, only the prompt text followed by its parameters.
- Use modern Midjourney parameters where useful: --ar, --q (1 or 2), --s (50-1000), --chaos (0-100).
"""

_OUTFIT_INSTRUCTION = """\
PROMPT TYPE: OUTFIT

Analyze the attached image and write exactly 3 Midjourney prompts showing a complete look built \
around the {part}.
- Photograph the look as a clean studio shot of a {gender} model against a solid background in a \
colour that contrasts with the {part}.
- Describe the {part} precisely: silhouette, fit, fabric, colour, construction details, trims.
- Style the rest of the outfit so the {part} stays the hero piece.
- Vary pose, camera angle and lighting across the 3 prompts.
{guidance}
After the prompts, write exactly 10 product-name suggestions for the {part}, each on its own line \
prefixed `NAME1:` to `NAME10:`. Each name is bilingual: the English name followed by its \
{language} translation in parentheses.
"""

_TEXTURE_INSTRUCTION = """\
PROMPT TYPE: TEXTURE

Analyze the material of the {part} in the attached image and write exactly 3 Midjourney prompts \
for extreme macro close-ups of the fabric alone.
- Show ONLY the fabric surface: weave or knit structure, fibre, sheen, colour variation, surface detail.
- The fabric must fill the entire frame. No background, no model, no garment silhouette, no props, \
no context of any kind.
- Every prompt MUST end with --ar 1:1 so the result tiles as a square texture map.
{guidance}
"""

# Lower-cased; apostrophes normalised before matching
REFUSAL_PHRASES = (
    "i'm sorry, but i can't",
    "i'm sorry, i can't",
    "i am sorry, but i cannot",
    "i'm unable to help",
    "i'm not able to help",
    "i can't assist with",
    "i cannot assist with",
    "i can't help with",
    "unable to analyze",
    "unable to analyse",
    "can't analyze this image",
    "cannot analyze this image",
)

_PROMPT_PREFIX = re.compile(r"^PROMPT\d+:\s*")
_NAME_PREFIX = re.compile(r"^NAME\d+:\s*")
_BULLET = re.compile(r"^(?:[-*•>]+|\d+[.)])\s+")
_QUOTES = "\"'“”‘’`"


def build_instruction(
    part: str,
    prompt_type: PromptType,
    gender_type: Optional[GenderType] = None,
    guidance: Optional[str] = None,
    name_language: str = "Korean",
) -> str:
    """User instruction for one image; wording depends on the generation mode."""
    guidance_line = f"- Additional guidance from the designer: {guidance.strip()}" if guidance and guidance.strip() else ""
    if prompt_type == PromptType.TEXTURE:
        return _TEXTURE_INSTRUCTION.format(part=part, guidance=guidance_line)
    gender = (gender_type or GenderType.FEMALE).value
    return _OUTFIT_INSTRUCTION.format(
        part=part,
        gender=gender,
        guidance=guidance_line,
        language=name_language,
    )


def is_refusal(text: str) -> bool:
    """True when the response contains one of the known refusal phrases."""
    normalized = text.lower().replace("’", "'")
    return any(phrase in normalized for phrase in REFUSAL_PHRASES)


def _clean_line(line: str) -> str:
    """Strip bullets, markdown emphasis and wrapping quotes."""
    cleaned = line.strip()
    cleaned = _BULLET.sub("", cleaned)
    cleaned = cleaned.replace("**", "").replace("__", "")
    cleaned = cleaned.strip("*_ ").strip(_QUOTES).strip()
    return cleaned


def parse_response(text: str, prompt_type: PromptType) -> Tuple[List[str], List[str]]:
    """
    Extract prompts and names from a model response.

    Lines are kept in the order the model emitted them; the numeric suffix
    of `PROMPT<n>:` is not used for sorting.
    """
    prompts: List[str] = []
    names: List[str] = []

    for raw_line in text.splitlines():
        line = _clean_line(raw_line)
        if not line:
            continue

        if _PROMPT_PREFIX.match(line):
            prompt = _PROMPT_PREFIX.sub("", line).strip().strip(_QUOTES).strip()
            if prompt and len(prompts) < MAX_PROMPTS:
                prompts.append(prompt)
        elif prompt_type == PromptType.OUTFIT and _NAME_PREFIX.match(line):
            name = _NAME_PREFIX.sub("", line).strip().strip(_QUOTES).strip()
            if name and len(names) < MAX_NAMES:
                names.append(name)

    return prompts, names


class PromptGenerator:
    """
    Vision-model prompt generator.

    One call per image. Transport failures are retried once against the
    fallback model and once more declaring an alternate MIME type.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.vision_model = self.settings.vision_model
        self.fallback_model = self.settings.vision_fallback_model

    def initialize(self) -> None:
        """Initialize the chat-completions client for the configured provider."""
        if self.client is not None:
            return

        if not self.settings.llm_api_key:
            logger.warning(f"{self.settings.llm_provider} API key not configured")
            return

        if self.settings.llm_provider == "openai":
            self.client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.llm_timeout_seconds,
            )
        else:
            self.client = AsyncGroq(
                api_key=self.settings.groq_api_key,
                timeout=self.settings.llm_timeout_seconds,
            )
        logger.info(
            f"Initialized {self.settings.llm_provider} client "
            f"(vision: {self.vision_model}, fallback: {self.fallback_model})"
        )

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _messages(self, instruction: str, image_data: str, mime_type: str) -> list:
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": instruction},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{image_data}"},
                    },
                ],
            },
        ]

    async def generate(
        self,
        image_base64: str,
        clothing_part: str,
        prompt_type: PromptType = PromptType.OUTFIT,
        gender_type: Optional[GenderType] = None,
        guidance: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> GeneratedPrompts:
        """
        Generate up to 3 prompts (and up to 10 names in outfit mode) for one image.

        Raises:
            PolicyRefusalError: the model declined to analyze the image.
            GenerationError: every attempt failed, or no prompt could be parsed.
        """
        if self.client is None:
            raise GenerationError("Vision client not initialized. Check API key.")

        image_data = strip_data_url(image_base64)
        mime_type = detect_mime_type(image_data, file_name)
        instruction = build_instruction(
            clothing_part, prompt_type, gender_type, guidance,
            name_language=self.settings.name_translation_language,
        )

        logger.info(
            f"Generating {prompt_type.value} prompts for {clothing_part} "
            f"({mime_type}, {len(image_data) // 1024}KB)"
        )

        attempts = [
            (self.vision_model, mime_type),
            (self.fallback_model, mime_type),
            (self.fallback_model, alternate_mime_type(mime_type)),
        ]

        response = None
        last_error: Optional[Exception] = None
        for number, (model, declared_mime) in enumerate(attempts, 1):
            try:
                logger.info(f"Calling vision model {model} (attempt {number}/{len(attempts)}, {declared_mime})")
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=self._messages(instruction, image_data, declared_mime),
                    temperature=self.settings.llm_temperature,
                    max_tokens=self.settings.llm_max_tokens,
                )
                break
            except Exception as e:
                last_error = e
                logger.warning(f"Vision model {model} failed on attempt {number}: {e}")

        if response is None:
            raise GenerationError(
                f"Vision model request failed after {len(attempts)} attempts: {last_error}"
            ) from last_error

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError("No response from vision model")

        if is_refusal(content):
            logger.warning(f"Vision model refused to analyze {clothing_part} image")
            raise PolicyRefusalError(content)

        prompts, names = parse_response(content, prompt_type)
        if not prompts:
            raise GenerationError("Vision model response contained no PROMPT lines", raw_text=content)

        logger.info(f"Extracted {len(prompts)} prompts and {len(names)} names")
        return GeneratedPrompts(raw_text=content, prompts=prompts, names=names)
