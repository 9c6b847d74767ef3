"""Search routes: start, inspect and cancel a search."""
from dataclasses import asdict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from claimwatch.matching.criteria import Criteria
from claimwatch.session.search_controller import SearchInProgressError

router = APIRouter()


class SearchRequest(BaseModel):
    min_price: int | None = Field(default=None, ge=1, le=999)
    zone: int | None = Field(default=None, ge=0, le=9)
    min_start_hour: int | None = Field(default=None, ge=0, le=23)
    max_duration_hours: int | None = Field(default=None, ge=1, le=9)

    @model_validator(mode="after")
    def _at_least_one(self):
        if (
            self.min_price is None
            and self.zone is None
            and self.min_start_hour is None
            and self.max_duration_hours is None
        ):
            raise ValueError("Set at least one search criterion")
        return self

    def to_criteria(self) -> Criteria:
        return Criteria(
            min_price=self.min_price,
            zone=str(self.zone) if self.zone is not None else None,
            min_start_hour=self.min_start_hour,
            max_duration_hours=self.max_duration_hours,
        )


def _criteria_dict(criteria):
    return asdict(criteria) if criteria is not None else None


def _status(controller) -> dict:
    outcome = controller.outcome
    return {
        "state": controller.state.value,
        "outcome": outcome.value if outcome is not None else None,
        "criteria": _criteria_dict(controller.criteria),
        "flags": asdict(controller.store.flags),
        "restrict_to_target_app": controller.gate.restrict_to_target_app,
    }


@router.post("/api/search")
async def start_search(body: SearchRequest, request: Request):
    """Publish new criteria and start searching."""
    controller = request.app.state.controller
    criteria = body.to_criteria()
    try:
        controller.start(criteria)
    except SearchInProgressError as exc:
        return JSONResponse({"error": str(exc)}, status_code=409)
    logger.info(f"Search requested: {criteria.summary()}")
    return JSONResponse(_status(controller), status_code=202)


@router.get("/api/search")
async def get_search(request: Request):
    """Current state, last outcome, active criteria and matched flags."""
    return JSONResponse(_status(request.app.state.controller))


@router.delete("/api/search")
async def cancel_search(request: Request):
    """Stop the running search."""
    controller = request.app.state.controller
    cancelled = controller.cancel()
    return JSONResponse({"cancelled": cancelled, **_status(controller)})
