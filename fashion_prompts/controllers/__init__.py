"""
Controllers module for Fashion Prompt Studio.
"""
from .batch_controller import BatchController
from .prompt_controller import PromptController

__all__ = [
    "BatchController",
    "PromptController",
]
