"""
Health Check Endpoints
"""

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.schemas.base import HealthCheck, HealthStatus

router = APIRouter()

SERVICE_NAME = "calendar-hub-api"
SERVICE_VERSION = "1.0.0"


@router.get("", response_model=HealthCheck)
async def health_check(request: Request):
    """Database connectivity check for load balancers"""
    started = time.perf_counter()
    db_healthy = await request.app.state.database.check_health()
    checks = {
        "database": {
            "status": "healthy" if db_healthy else "unhealthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        }
    }

    health = HealthCheck(
        status=HealthStatus.HEALTHY if db_healthy else HealthStatus.UNHEALTHY,
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        checks=checks,
    )
    if not db_healthy:
        return JSONResponse(status_code=503, content=health.model_dump(mode="json"))
    return health
