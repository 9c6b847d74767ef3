"""Settings routes."""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

router = APIRouter()


class SettingsUpdate(BaseModel):
    restrict_to_target_app: bool | None = None


def _settings(request: Request) -> dict:
    config = request.app.state.config
    controller = request.app.state.controller
    return {
        "target_app": config.target_app,
        "restrict_to_target_app": controller.gate.restrict_to_target_app,
        "debounce_ms": config.debounce_ms,
        "poll_interval": config.poll_interval,
        "claim_label": config.claim_label,
    }


@router.get("/api/settings")
async def get_settings(request: Request):
    """Return current settings."""
    return JSONResponse(_settings(request))


@router.post("/api/settings")
async def update_settings(body: SettingsUpdate, request: Request):
    """Apply new settings at runtime."""
    controller = request.app.state.controller
    if body.restrict_to_target_app is not None:
        controller.set_restrict_to_target_app(body.restrict_to_target_app)
        logger.info(f"restrict_to_target_app updated: {body.restrict_to_target_app}")
    return JSONResponse(_settings(request))
