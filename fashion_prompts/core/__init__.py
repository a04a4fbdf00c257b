"""
Core module for Fashion Prompt Studio application setup.
"""
from .app import create_app
from .dependencies import get_batch_controller, get_prompt_controller, get_abort_registry, get_broadcaster

__all__ = [
    "create_app",
    "get_batch_controller",
    "get_prompt_controller",
    "get_abort_registry",
    "get_broadcaster",
]
