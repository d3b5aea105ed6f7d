"""FastAPI application factory.

Creates the app with logging middleware, CORS, the ProcessingManager,
MeetingPlanner and TextAnalyzer on app.state, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.advisor_ai.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.advisor_ai.api.v1.router import router as v1_router
from src.advisor_ai.config import Settings, get_settings
from src.advisor_ai.insights.manager import ProcessingManager
from src.advisor_ai.insights.meetings.planner import MeetingPlanner
from src.advisor_ai.insights.text_analysis import TextAnalyzer

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    manager: ProcessingManager | None = None,
    meeting_planner: MeetingPlanner | None = None,
    text_analyzer: TextAnalyzer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; defaults to the cached settings.
        manager: Pre-built ProcessingManager; one is built from settings
            when omitted.
        meeting_planner: Pre-built MeetingPlanner.
        text_analyzer: Pre-built TextAnalyzer; the default loads its spaCy
            model on first use.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_structlog(settings)
        health = app.state.processing_manager.validator.health_check()
        logger.info(
            "app.started",
            environment=settings.ENVIRONMENT.value,
            mode=app.state.processing_manager.current_mode().value,
            healthy=health["healthy"],
        )
        yield
        logger.info("app.stopped")

    app = FastAPI(
        title="Advisor AI Insights API",
        version="0.1.0",
        description="Hybrid AI processing core for advisor client communication insights",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.processing_manager = manager or ProcessingManager(settings=settings)
    app.state.meeting_planner = meeting_planner or MeetingPlanner()
    app.state.text_analyzer = text_analyzer or TextAnalyzer()

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (outermost -- logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
