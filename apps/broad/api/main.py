"""
Broad API Server

FastAPI server for the motorcycle ride-sharing and garage app: profiles,
rides, bookings, garages, motorcycles and maintenance records.
"""

import logging
import os
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded  # type: ignore
from starlette.exceptions import HTTPException as StarletteHTTPException

from broad.api.routes import router, limiter as routes_limiter
from broad.database import db
from broad.services.auth_service import SupabaseAuthClient
from broad.utils.datetime_utils import utcnow
from broad.utils.errors import ApiError, InternalError, ValidationError
from broad.utils.response import error_response, success_response

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Broad API...")

    # Create any tables missing from the managed schema
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    app.state.auth_client = SupabaseAuthClient()
    logger.info("Auth provider client ready")

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Broad API...")
    try:
        await app.state.auth_client.aclose()
        logger.info("Auth provider client closed")
    except Exception as e:
        logger.error(f"Error closing auth provider client: {e}", exc_info=True)

    try:
        await db.dispose_engine()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}", exc_info=True)


app = FastAPI(
    title="Broad API",
    description="API for group motorcycle rides, bookings and garage management",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Exception handlers: every error leaves in the response envelope
# ---------------------------------------------------------------------------


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        # Storage and driver text stays in the log
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.code, InternalError.default_message),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = ValidationError(
        details=[
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
    )
    return await api_error_handler(request, error)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            HTTP_ERROR_CODES.get(exc.status_code, "ERROR"), str(exc.detail)
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content=error_response("RATE_LIMITED", f"Rate limit exceeded: {exc.detail}"),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_response("INTERNAL_ERROR", "Internal server error"),
    )


# Include API routes
app.include_router(router)


@app.get("/health")
async def health():
    """Liveness probe."""
    return success_response(
        {
            "status": "ok",
            "timestamp": utcnow().isoformat(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "environment": os.getenv("ENV", "development"),
        }
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
