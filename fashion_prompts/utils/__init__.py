"""
Utilities module for Fashion Prompt Studio.
"""
from .image_utils import (
    strip_data_url,
    decode_image,
    detect_mime_type,
    alternate_mime_type,
    reference_filename,
    display_name,
)
from .exceptions import (
    PromptStudioException,
    ValidationError,
    GenerationError,
    PolicyRefusalError,
    RelayError,
    RelayConfigurationError,
    RelayConnectionError,
)

__all__ = [
    "strip_data_url",
    "decode_image",
    "detect_mime_type",
    "alternate_mime_type",
    "reference_filename",
    "display_name",
    "PromptStudioException",
    "ValidationError",
    "GenerationError",
    "PolicyRefusalError",
    "RelayError",
    "RelayConfigurationError",
    "RelayConnectionError",
]
