"""
Main application entry point for the Assessflow assessment platform.

This module builds the FastAPI application, wires the assessment services
onto ``app.state`` at startup and tears them down at shutdown.

Usage:
    - Direct: python -m assessflow.main
    - ASGI server: uvicorn assessflow.main:app
"""

import os
from typing import Any, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assessflow import __version__
from assessflow.api import register_exception_handlers
from assessflow.assessments.catalog import AssessmentCatalog
from assessflow.assessments.notifications import LoggingNotifier, Notifier
from assessflow.assessments.promotion import PromotionEngine
from assessflow.assessments.results import ResultService
from assessflow.assessments.router import router as assessment_router
from assessflow.assessments.session_service import SessionEngine
from assessflow.common.logger import app_logger, configure_logger
from assessflow.common.threading import TimerFactory
from assessflow.config import Settings, settings as default_settings
from assessflow.database.init_db import close_database, initialize_database

# Setup module logger
logger = app_logger.getChild("main")


def build_services(app: FastAPI) -> None:
    """Create the engine and every service, storing them on ``app.state``."""
    settings: Settings = app.state.settings
    engine, session_factory = initialize_database(
        database_url=settings.DATABASE_URL,
        echo=settings.SQL_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )
    clock = app.state.clock

    catalog = AssessmentCatalog(session_factory)
    app.state.db_engine = engine
    app.state.session_factory = session_factory
    app.state.catalog = catalog
    app.state.promotion_engine = PromotionEngine(
        session_factory,
        notifier=app.state.notifier,
        promoted_status=settings.PROMOTED_LIVE_STATUS,
        clock=clock,
    )
    app.state.session_engine = SessionEngine(
        session_factory,
        catalog,
        clock=clock,
        timer_factory=app.state.timer_factory,
        timeout_retry_seconds=settings.ATTEMPT_TIMEOUT_RETRY_SECONDS,
    )
    app.state.result_service = ResultService(
        session_factory,
        passing_percent=settings.STATISTICS_PASSING_PERCENT,
    )


def create_app(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Callable[[], Any]] = None,
    timer_factory: Optional[TimerFactory] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings; the environment-loaded settings by default
        notifier: Review decision notifier; logs by default
        clock: Source of the current time, for tests
        timer_factory: Creates deadline timers, for tests

    Returns:
        Configured application; services are created at startup
    """
    settings = settings or default_settings
    configure_logger(
        level=settings.LOG_LEVEL,
        use_json=settings.LOG_JSON,
        log_file=settings.LOG_FILE or None,
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="API for authoring, reviewing, taking and grading assessments",
        version=__version__
    )
    app.state.settings = settings
    app.state.notifier = notifier or LoggingNotifier()
    app.state.clock = clock
    app.state.timer_factory = timer_factory

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register routers
    app.include_router(assessment_router, prefix=settings.API_V1_STR)

    @app.on_event("startup")
    def startup_event():
        """Initialize services on application startup."""
        try:
            build_services(app)
            logger.info("Application startup complete")
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}")
            raise

    @app.on_event("shutdown")
    def shutdown_event():
        """Cleanup services on application shutdown."""
        try:
            session_engine = getattr(app.state, "session_engine", None)
            if session_engine is not None:
                session_engine.shutdown()
            close_database(getattr(app.state, "db_engine", None))
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during application shutdown: {str(e)}")
            raise

    @app.get("/")
    def root():
        """Root endpoint."""
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    # Get configuration from environment or use defaults
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    # Run the application
    uvicorn.run(
        "assessflow.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
