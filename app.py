"""
Production-safe FastAPI application entrypoint.

This module provides a clean FastAPI app instance with NO import-time side effects
beyond logging setup:
- No environment mutations
- No network calls (clients are constructed, not contacted)

For production deployment, import directly: from app import app
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import os
import logging

from party_wizard.activity.telemetry import LoggingTelemetrySink
from party_wizard.config import WizardSettings, get_settings
from party_wizard.llm.backend import OpenAIChatBackend, build_openai_client
from party_wizard.llm.extraction import ContentFetcher, OpenAIRecipeExtractor
from party_wizard.workflows.io.database import build_store
from party_wizard.workflows.runtime.orchestrator import WizardOrchestrator
from party_wizard.workflows.steps.step4_timeline.trigger.schedule import OpenAIScheduleGenerator

# Configure logging (this is acceptable at import time - just sets up handlers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for startup/shutdown events.

    Reports the configuration the orchestrator was built with; a missing
    OpenAI key is a degraded mode, not a startup failure.
    """
    orchestrator: WizardOrchestrator = app.state.orchestrator
    settings = orchestrator.settings
    logger.info(
        "[Backend] wizard store=%s deterministic=%s models=%s/%s",
        settings.store,
        settings.deterministic_enabled,
        settings.default_model,
        settings.strong_model,
    )
    if orchestrator.backend is None:
        logger.error("[Backend] No model backend configured - unresolved turns get the fallback message")

    if not settings.is_dev and os.getenv("AUTH_ENABLED", "0") != "1":
        logger.warning("[SECURITY] AUTH_ENABLED=0 in production - X-User-Id is trusted as sent!")

    yield
    # Shutdown logic (if any) goes here


def build_orchestrator(settings: Optional[WizardSettings] = None) -> WizardOrchestrator:
    """Wire the orchestrator's collaborators from settings."""
    settings = settings or get_settings()
    store = build_store(settings.store, settings.db_path)
    client = build_openai_client(settings)
    fetcher = ContentFetcher(tavily_api_key=settings.tavily_api_key, timeout=settings.fetch_timeout)
    if client is None:
        return WizardOrchestrator(
            store,
            fetcher=fetcher,
            telemetry=LoggingTelemetrySink(),
            settings=settings,
        )
    return WizardOrchestrator(
        store,
        backend=OpenAIChatBackend(client, settings),
        extractor=OpenAIRecipeExtractor(client, settings),
        fetcher=fetcher,
        scheduler=OpenAIScheduleGenerator(client, settings),
        telemetry=LoggingTelemetrySink(),
        settings=settings,
    )


def create_app(orchestrator: Optional[WizardOrchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    This is a factory function that returns a fully configured app.
    Safe to call multiple times (e.g., for testing with an injected orchestrator).
    """
    orchestrator = orchestrator or build_orchestrator()

    app = FastAPI(title="Party Wizard", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    # Import routers (lazy import to avoid circular dependencies)
    from party_wizard.api.routes import wizard_router

    app.include_router(wizard_router)

    # CORS configuration
    _configure_cors(app)

    # Add root endpoint
    _add_root_endpoint(app, orchestrator.settings.is_dev)

    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware based on environment."""
    raw_origins = os.getenv("ALLOWED_ORIGINS")

    if raw_origins:
        allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
        # Remove "*" if present (causes crash with allow_credentials=True)
        if "*" in allowed_origins:
            allowed_origins = [o for o in allowed_origins if o != "*"]

        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        # Dev default: localhost only
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )


def _add_root_endpoint(app: FastAPI, is_dev: bool) -> None:
    """Add root health check endpoint."""

    @app.get("/")
    async def root():
        """Root health check endpoint.

        In production, returns minimal status only.
        In dev mode, includes which collaborators are configured.
        """
        if is_dev:
            orchestrator: WizardOrchestrator = app.state.orchestrator
            return {
                "status": "Party Wizard Running",
                "store": orchestrator.settings.store,
                "model_backend": orchestrator.backend is not None,
                "deterministic_enabled": orchestrator.settings.deterministic_enabled,
            }
        return {"status": "ok"}


# Create the default app instance
# This is what gets imported by uvicorn (e.g., uvicorn app:app)
app = create_app()
