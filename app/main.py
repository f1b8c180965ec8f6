"""
FastAPI Main Application
Calendar Hub API Service
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.endpoints import health
from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import Database
from app.core.exceptions import AppError, ValidationError
from app.core.logging import setup_logging
from app.middleware.security import RequestContextMiddleware, SecurityHeadersMiddleware
from app.schemas.base import ErrorResponse
from app.services.catalog import seed_catalog, validate_catalog

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the database handle for the life of the process"""
    logger.info("Starting Calendar Hub API Service", version=health.SERVICE_VERSION, environment=settings.ENVIRONMENT)

    database = Database.from_settings()
    try:
        await database.create_all()
        async with database.session_factory() as session:
            await seed_catalog(session)
            await validate_catalog(session)
    except Exception:
        logger.exception("Startup failed")
        await database.dispose()
        raise

    app.state.database = database
    logger.info("Database ready", dialect=database.dialect_name)

    yield

    logger.info("Shutting down Calendar Hub API Service")
    await database.dispose()


# Create FastAPI application
app = FastAPI(
    title="Calendar Hub API",
    description="Calendar aggregation with password and Google sign-in, gated by role-based permissions",
    version=health.SERVICE_VERSION,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# CORS must wrap everything else so preflight requests are answered first
cors_origins = list(settings.CORS_ORIGINS)
if settings.ENVIRONMENT == "development" and settings.APP_BASE_URL not in cors_origins:
    cors_origins.append(settings.APP_BASE_URL)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=600,
)

app.include_router(api_router, prefix="/api/v1")
app.include_router(health.router, prefix="/health", tags=["health"])


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.is_server_error:
        logger.error(
            "Request failed",
            error=exc.code,
            detail=exc.detail,
            path=request.url.path,
            method=request.method,
        )
        message = AppError.message
    else:
        logger.info("Request rejected", error=exc.code, path=request.url.path)
        message = exc.message

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code, message=message).model_dump(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    message = first.get("msg", ValidationError.message)
    # Pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    logger.info("Request validation failed", path=request.url.path, errors=len(errors))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content=ErrorResponse(error=ValidationError.code, message=message).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="internal_error", message=AppError.message).model_dump(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
