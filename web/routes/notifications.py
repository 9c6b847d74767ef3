"""Status notification routes."""
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/api/notifications")
async def get_notifications(request: Request, limit: int = Query(default=20, ge=1, le=500)):
    """Most recent status notifications, oldest first, plus the service line."""
    notifier = request.app.state.notifier
    return JSONResponse({
        "service_line": notifier.service_line,
        "notifications": [n.to_dict() for n in notifier.recent(limit)],
    })
