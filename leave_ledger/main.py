"""
Leave Ledger - FastAPI Application

Middleware order (outermost first): CORS -> CorrelationId -> Logging -> RateLimiting.
Domain errors surface as ApiResponse failures with the error code of the
AppException subclass that was raised.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

import leave_ledger.models  # noqa: F401  Force model registration with SQLAlchemy
from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import AppException
from leave_ledger.core.schemas import ApiResponse
from leave_ledger.core.logging import setup_logging
from leave_ledger.core.limiter import limiter
from leave_ledger.core.middleware import CorrelationIdMiddleware, LoggingMiddleware
from leave_ledger.database import init_db, SessionLocal
from leave_ledger.routers.api_router import api_router
from leave_ledger.services.notification import LeaveEventMessage, NotificationDispatcher

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)
events_logger = logging.getLogger("leave_ledger.events")


def log_leave_event(event: LeaveEventMessage) -> None:
    events_logger.info(
        f"{event.event_type.value} for leave request {event.leave_request_id}",
        extra={
            "event_type": event.event_type.value,
            "leave_request_id": event.leave_request_id,
            "employee_id": event.employee_id,
            "manager_id": event.manager_id,
            "start_date": event.start_date.isoformat(),
            "end_date": event.end_date.isoformat(),
        }
    )


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})")

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield  # Application runs here

    logger.info("Gracefully shutting down...")


# ============================================================================
# FASTAPI INSTANCE
# ============================================================================
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Leave requests, approvals and balance accounting",
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Lifecycle events fan out from here; delivery transports subscribe at startup.
app.state.notification_dispatcher = NotificationDispatcher()
app.state.notification_dispatcher.subscribe(log_leave_event)

# ============================================================================
# RATE LIMITER
# ============================================================================
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ============================================================================
# MIDDLEWARE STACK
# Add in REVERSE order (last added runs first)
# ============================================================================
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.request_id_header, "X-Process-Time"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle FastAPI validation errors (422) with structured format."""
    errors = []
    for error in exc.errors():
        # loc is usually ('body', 'field_name')
        field = error["loc"][-1] if len(error["loc"]) > 0 else "unknown"
        errors.append({"field": str(field), "msg": error["msg"]})

    logger.warning(f"Validation Error: {errors}")
    body = ApiResponse.fail("Request validation failed", code="VALIDATION_ERROR", details={"errors": errors})
    return JSONResponse(status_code=422, content=body.to_dict())


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle domain-specific application exceptions."""
    logger.warning(f"AppException: {exc.message}", extra={"code": exc.error_code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=ApiResponse.from_exception(exc).to_dict())


@app.exception_handler(StarletteHTTPException)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    """Handle standard HTTP exceptions."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    body = ApiResponse.fail(message, code=f"HTTP_{exc.status_code}")
    return JSONResponse(status_code=exc.status_code, content=body.to_dict())


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Fallback handler for unhandled server errors."""
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    body = ApiResponse.fail("An unexpected server error occurred.", code="INTERNAL_ERROR")
    return JSONResponse(status_code=500, content=body.to_dict())


# ============================================================================
# ROUTER INCLUSION
# ============================================================================
app.include_router(api_router, prefix=settings.api_prefix)


# ============================================================================
# OPERATIONAL ENDPOINTS (at root level)
# ============================================================================
@app.get("/", tags=["Health"])
def root():
    """API root endpoint."""
    return {
        "message": f"{settings.app_name} API",
        "version": settings.version,
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe for load balancers and orchestrators."""
    return {
        "status": "up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@app.get("/readiness", tags=["Health"])
def readiness_check():
    """Readiness probe - verifies database connectivity."""
    try:
        from sqlalchemy import text
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        return {
            "status": "ready",
            "components": {"database": "connected"},
        }
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail="Service not ready")
