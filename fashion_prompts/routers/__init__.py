"""
Routers module for Fashion Prompt Studio.
"""
from . import batch_router
from . import prompt_router
from . import midjourney_router

__all__ = [
    "batch_router",
    "prompt_router",
    "midjourney_router",
]
