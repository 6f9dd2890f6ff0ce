"""
Main application entry point for the engagement service.

This module creates the FastAPI application, registers the quiz, game and
training routers and manages the database engine over the app's lifespan.

Usage:
    - Direct: python -m secaware.main
    - ASGI server: uvicorn secaware.main:app
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from secaware import __version__
from secaware.api import main_router, register_module, secaware_exception_handler, validation_exception_handler
from secaware.assessments.router import games_router, quizzes_router
from secaware.common.config import AppConfig, get_config
from secaware.common.error_handling import SecAwareError
from secaware.common.logger import app_logger, configure_logger
from secaware.config import settings
from secaware.database.init_db import close_database, create_schema, initialize_database
from secaware.training.router import router as training_router

# Setup module logger
logger = app_logger.getChild("main")

register_module("quizzes", quizzes_router)
register_module("games", games_router)
register_module("training", training_router)


def setup_logging(app_config: AppConfig) -> None:
    """Apply the configured level, format and destinations to the application logger."""
    configure_logger(
        level=app_config.logging.level,
        format_string=settings.LOG_FORMAT,
        use_json=app_config.logging.use_json,
        log_file=app_config.logging.file_path
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database engine on startup and dispose it on shutdown."""
    try:
        await initialize_database(
            database_url=settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT
        )
        if settings.CREATE_SCHEMA_ON_STARTUP:
            await create_schema()
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Failed to initialize application: {str(e)}")
        raise

    yield

    await close_database()
    logger.info("Application shutdown complete")


def create_app(manage_database: bool = True, app_config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        manage_database: Open and close the global engine with the app's lifespan.
            Tests that inject their own repositories pass False.
        app_config: Engagement configuration; defaults to the loaded one
    """
    app_config = app_config or get_config()
    setup_logging(app_config)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        debug=app_config.environment.debug,
        description="Quizzes, mini-games and training progress for security awareness",
        version=__version__,
        lifespan=lifespan if manage_database else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SecAwareError, secaware_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(main_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": f"Welcome to the {settings.PROJECT_NAME} API"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")
    uvicorn.run(
        "secaware.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
