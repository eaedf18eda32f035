"""canvasgen FastAPI application entry point.

Builds the generation services once at startup, exposes provider
capabilities and the task manager over HTTP, and stops every polling
task on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from canvasgen import __version__
from canvasgen.api.router import api_router
from canvasgen.config import get_settings
from canvasgen.services.container import GenerationServices, build_services

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: GenerationServices | None = None) -> FastAPI:
    """Build the app; tests pass prebuilt ``services`` with fake backends."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services(settings)
        logger.info(
            "%s starting up (%d image / %d video providers)",
            settings.APP_NAME,
            len(app.state.services.image_registry),
            len(app.state.services.video_registry),
        )
        yield
        await app.state.services.aclose()
        logger.info("%s shut down", settings.APP_NAME)

    app = FastAPI(
        title="canvasgen API",
        description="Image and video generation core for the canvas editor",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.include_router(api_router)
    return app


app = create_app()
