"""
API v1 Router
Main router for all API v1 endpoints
"""

from fastapi import APIRouter
from app.api.v1.endpoints import auth, calendar, users

api_router = APIRouter()

# Authentication endpoints
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Role administration endpoints
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

# Calendar endpoints
api_router.include_router(
    calendar.router,
    prefix="/calendar",
    tags=["calendar"]
)
