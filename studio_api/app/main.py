"""
FastAPI Studio API Application Factory
======================================

The upstream API server the dev proxy forwards /api requests to.

Routers:
    - /api/estimates/* : Estimates resource (see routes.py)
    - /health          : Health check endpoint

Environment Variables:
    - DATABASE_URL: SQLAlchemy async URL (default: sqlite+aiosqlite:///./alternaview.db)
    - DATABASE_ECHO: Log SQL statements (default: false)
    - DATABASE_INIT_SCHEMA: Create missing tables on startup (default: false)
    - EXPOSE_ERROR_DETAILS: Return raw error messages in 500s (default: true)
    - API_HOST / API_PORT: Bind address (default: 127.0.0.1:3000)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    uvicorn studio_api.app.main:app --reload --port 3000
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from studio_api.app.config import Settings, get_settings
from studio_api.app.database import Database
from studio_api.app.routes import estimates_router


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: API settings (defaults to environment)
        database: Pre-built database capability; when omitted one is created
                  from DATABASE_URL on startup and disposed on shutdown

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        logger = logging.getLogger("studio_api.main")

        owns_database = app.state.database is None
        if owns_database:
            app.state.database = Database.from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

        if settings.DATABASE_INIT_SCHEMA:
            await app.state.database.create_schema()
            logger.info("Database schema ensured")

        logger.info(
            "Studio API started",
            extra={"database_driver": settings.DATABASE_URL.split("://", 1)[0]}
        )

        yield

        if owns_database:
            await app.state.database.dispose()
            app.state.database = None
        logger.info("Studio API shutdown complete")

    app = FastAPI(
        title="AlternaView Studio API",
        description="Projects, estimates and billing API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database

    app.include_router(estimates_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {"status": "ok", "service": "studio_api"}

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger = logging.getLogger("studio_api.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )
        message = str(exc) if settings.EXPOSE_ERROR_DETAILS else "Internal server error"
        return JSONResponse(status_code=500, content={"error": message})

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "studio_api.app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
