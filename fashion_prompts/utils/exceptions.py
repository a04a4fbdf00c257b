"""
Custom exceptions for the Fashion Prompt Studio application.
"""
from typing import Optional


class PromptStudioException(Exception):
    """Base exception for Fashion Prompt Studio."""
    pass


class ValidationError(PromptStudioException):
    """Raised for validation errors."""
    pass


class GenerationError(PromptStudioException):
    """Raised when the vision model call fails or its output cannot be parsed."""
    def __init__(self, message: str, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        super().__init__(message)


class PolicyRefusalError(GenerationError):
    """Raised when the vision model declines to analyze the image."""
    def __init__(self, raw_text: str):
        super().__init__(
            "The model declined to analyze this image (content policy refusal)",
            raw_text=raw_text,
        )


class RelayError(PromptStudioException):
    """Base class for Discord / Midjourney relay failures."""
    pass


class RelayConfigurationError(RelayError):
    """Raised when the relay is missing credentials or channel configuration."""
    pass


class RelayConnectionError(RelayError):
    """Raised when a Discord session cannot be established."""
    pass
