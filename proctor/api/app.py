"""
FastAPI application factory.

``create_app()`` assembles the application with CORS, error handlers,
routers, and the health endpoint. The module-level ``app`` instance
allows ``uvicorn proctor.api.app:app --reload``.
"""

from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proctor import __version__
from proctor.api.middleware.error_handler import register_error_handlers
from proctor.api.routes import combine, passcode, upload
from proctor.core.config import get_settings
from proctor.core.models import HealthResponse


def create_app() -> FastAPI:
    """Build and return a fully configured FastAPI application."""

    app = FastAPI(
        title="Proficiency Proctor",
        description="Segment uploads, passcode checks and merge triggers "
        "for the recorded language proficiency test.",
        version=__version__,
    )

    # -- CORS --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error handlers --
    register_error_handlers(app)

    # -- Health check (root-level, not under /api) --
    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health() -> HealthResponse:
        return HealthResponse(version=__version__, timestamp=datetime.now(UTC))

    # -- REST routes --
    app.include_router(upload.router, prefix="/api")
    app.include_router(passcode.router, prefix="/api")
    app.include_router(combine.router, prefix="/api")

    return app


app = create_app()
