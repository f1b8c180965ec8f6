"""
Calendar Endpoints
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.core.deps import get_current_session, require_permission
from app.core.rbac import PermissionName
from app.core.security import SessionClaims
from app.services.calendar import calendar_service

router = APIRouter()


@router.get("/events")
async def list_events(
    time_min: Optional[datetime] = Query(None, description="Only events ending after this instant"),
    max_results: int = Query(50, ge=1, le=250),
    session: SessionClaims = Depends(get_current_session),
    _: int = Depends(require_permission(PermissionName.CALENDAR_READ)),
) -> Any:
    """Upcoming events from the user's primary Google Calendar"""
    events = await calendar_service.list_upcoming_events(
        session.provider_access_token,
        time_min=time_min,
        max_results=max_results,
    )
    return {"items": events, "count": len(events)}
