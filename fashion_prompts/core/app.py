"""
FastAPI application factory.

Creates and configures the FastAPI application.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from .lifespan import lifespan
from .logging_config import setup_logging
from .logging_middleware import RequestLoggingMiddleware
from fashion_prompts.utils.exceptions import (
    GenerationError,
    PolicyRefusalError,
    RelayConfigurationError,
    RelayConnectionError,
    ValidationError
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    # ── Initialize logging first ──
    from fashion_prompts.config.settings import get_settings
    settings = get_settings()
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.log_dir,
        log_json=settings.log_json,
    )

    app = FastAPI(
        title="Fashion Prompt Studio API",
        description="""
        Fashion design prompt pipeline

        Features:
        - Vision-model Midjourney prompt generation (outfit and texture modes)
        - Sequential batch processing with live SSE progress
        - Cooperative batch abort
        - Discord / Midjourney relay with the caller's user token
        """,
        version="1.0.0",
        lifespan=lifespan
    )

    # ── Request logging middleware (must be added before CORS) ──
    app.add_middleware(RequestLoggingMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Register exception handlers
    _register_exception_handlers(app)

    # Include routers
    _include_routers(app)

    # Root and health endpoints
    _register_root_endpoints(app)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers with logging."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request, exc):
        logger.warning(f"Validation error: {exc} — {request.method} {request.url.path}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PolicyRefusalError)
    async def policy_refusal_handler(request, exc):
        logger.warning(f"Policy refusal: {exc} — {request.method} {request.url.path}")
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "errorKind": "policy_refusal", "rawText": exc.raw_text},
        )

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request, exc):
        logger.warning(f"Generation error: {exc} — {request.method} {request.url.path}")
        return JSONResponse(status_code=502, content={"detail": str(exc), "errorKind": "generation_failure"})

    @app.exception_handler(RelayConfigurationError)
    async def relay_configuration_handler(request, exc):
        logger.warning(f"Relay configuration error: {exc} — {request.method} {request.url.path}")
        return JSONResponse(status_code=400, content={"detail": str(exc), "errorKind": "relay_failure"})

    @app.exception_handler(RelayConnectionError)
    async def relay_connection_handler(request, exc):
        logger.warning(f"Relay connection error: {exc} — {request.method} {request.url.path}")
        return JSONResponse(status_code=502, content={"detail": str(exc), "errorKind": "relay_failure"})


def _include_routers(app: FastAPI) -> None:
    """Include all API routers."""
    from fashion_prompts.routers import (
        batch_router,
        prompt_router,
        midjourney_router
    )

    app.include_router(batch_router.router)
    app.include_router(prompt_router.router)
    app.include_router(midjourney_router.router)


def _register_root_endpoints(app: FastAPI) -> None:
    """Register root and health endpoints."""
    from .dependencies import container

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Fashion Prompt Studio API",
            "version": "1.0.0",
            "description": "Midjourney prompt generation for fashion design",
            "endpoints": {
                "batches": "/api/batches/process",
                "abort": "/api/batches/abort",
                "progress": "/api/batches/progress?sessionId=",
                "prompts": "/api/prompts/generate",
                "midjourney": "/api/midjourney/send",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "services": {
                "llm": "configured" if container.prompt_generator.is_configured else "not configured",
                "llm_provider": container.settings.llm_provider,
                "discord_channel": "configured" if container.settings.discord_channel_id else "not configured",
            },
            "pending_aborts": len(container.abort_registry.active_sessions()),
        }
