"""FastAPI application factory."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from web.routes.notifications import router as notifications_router
from web.routes.search import router as search_router
from web.routes.settings import router as settings_router


def create_app(config, controller, notifier, preferences=None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application settings (claimwatch.config.Settings)
        controller: SearchController driving searches
        notifier: StatusNotifier holding recent notifications
        preferences: PreferenceStore for persisted switches
    """
    app = FastAPI(title="claimwatch", version="0.1.0")

    # Store shared state
    app.state.config = config
    app.state.controller = controller
    app.state.notifier = notifier
    app.state.preferences = preferences

    # CORS (allows a local settings page to talk to the API)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API routes
    app.include_router(search_router)
    app.include_router(settings_router)
    app.include_router(notifications_router)

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.on_event("startup")
    async def _startup():
        logger.info("claimwatch web server starting up")

    @app.on_event("shutdown")
    async def _shutdown():
        logger.info("claimwatch web server shutting down")
        await controller.shutdown()

    return app
