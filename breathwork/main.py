"""
FastAPI application entry point.

Run with: uvicorn breathwork.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from breathwork import __version__
from breathwork.api.exception_handlers import setup_exception_handlers
from breathwork.api.routes import health, preferences, session, techniques
from breathwork.core.config import settings
from breathwork.core.logging import bind_context, clear_context, configure_logging, get_logger
from breathwork.persistence.database import init_database
from breathwork.persistence.repositories.settings_repo import SettingsRepository
from breathwork.services.breathing_controller import BreathingController

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add correlation ID."""
        request_id = str(uuid.uuid4())
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes the database, builds the one BreathingController of this
    application and shuts it down again on exit.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
        tick_interval=settings.tick_interval_seconds,
    )

    await init_database()

    controller = BreathingController(store=SettingsRepository(settings.database_path))
    await controller.initialize()
    app.state.controller = controller

    log.info("application_started")

    yield

    log.info("application_shutting_down")
    await controller.shutdown()
    app.state.controller = None


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routers."""
    app = FastAPI(
        title="Breathwork",
        description="Control surface for timed breathing sessions",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(CorrelationIDMiddleware)

    setup_exception_handlers(app)

    app.include_router(health.router, tags=["system"])
    app.include_router(techniques.router)
    app.include_router(session.router)
    app.include_router(preferences.router)

    @app.get("/")
    async def root():
        """Root endpoint with basic info."""
        return {"name": "Breathwork", "version": __version__, "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "breathwork.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
