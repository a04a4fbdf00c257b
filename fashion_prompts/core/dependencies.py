"""
Dependency injection - builds every shared service once per process.
"""
from typing import Optional
import logging

from fashion_prompts.config.settings import get_settings
from fashion_prompts.controllers import BatchController, PromptController
from fashion_prompts.services.abort_registry import AbortRegistry
from fashion_prompts.services.midjourney_relay import MidjourneyRelay
from fashion_prompts.services.progress_broadcaster import ProgressBroadcaster
from fashion_prompts.services.prompt_generator import PromptGenerator


logger = logging.getLogger(__name__)


class Container:
    """Dependency injection container holding the process-wide session tables."""

    def __init__(self):
        self.settings = get_settings()

        # Session-keyed shared state
        self.abort_registry = AbortRegistry()
        self.broadcaster = ProgressBroadcaster(
            ping_interval=self.settings.progress_ping_interval_seconds,
            close_grace=self.settings.progress_close_grace_seconds,
        )

        # Services
        self.prompt_generator = PromptGenerator(self.settings)
        self.relay = MidjourneyRelay(self.abort_registry, self.settings)

        # Controllers
        self.batch_controller: Optional[BatchController] = None
        self.prompt_controller: Optional[PromptController] = None

    async def initialize(self) -> None:
        """Initialize all components (called at startup)."""
        logger.info("Initializing dependency container...")
        self.settings.ensure_directories()

        # Initialize services
        self.prompt_generator.initialize()

        # Initialize controllers
        self.batch_controller = BatchController(
            prompt_generator=self.prompt_generator,
            relay=self.relay,
            abort_registry=self.abort_registry,
            broadcaster=self.broadcaster,
            settings=self.settings,
        )

        self.prompt_controller = PromptController(
            prompt_generator=self.prompt_generator,
            relay=self.relay,
            settings=self.settings,
        )

        logger.info("Dependency container initialized")

    async def shutdown(self) -> None:
        """Cleanup on shutdown."""
        logger.info("Shutting down dependency container...")
        pending = self.abort_registry.active_sessions()
        if pending:
            logger.info(f"Discarding abort flags for sessions: {', '.join(pending)}")
        for session_id in pending:
            self.abort_registry.clear(session_id)
        logger.info("Dependency container shutdown complete")


# Global container instance
container = Container()


# Dependency functions for FastAPI
def get_container() -> Container:
    """Get the DI container."""
    return container


def get_batch_controller() -> BatchController:
    """Dependency for batch controller."""
    return container.batch_controller


def get_prompt_controller() -> PromptController:
    """Dependency for prompt controller."""
    return container.prompt_controller


def get_abort_registry() -> AbortRegistry:
    """Dependency for the abort registry."""
    return container.abort_registry


def get_broadcaster() -> ProgressBroadcaster:
    """Dependency for the progress broadcaster."""
    return container.broadcaster
