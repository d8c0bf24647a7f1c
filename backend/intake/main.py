"""
Submission Intake FastAPI Application

Main application entry point for the submission intake service.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from intake.config import Settings, settings as default_settings
from intake.errors import IntakeError, RateLimitExceeded
from intake.routers import submissions
from intake.services.attachment_store import AttachmentStore
from intake.services.database_service import DatabaseService
from intake.services.logging_service import AuditLoggingService
from intake.services.notification_service import EmailNotificationService, NotificationService
from intake.services.rate_limiter import RateLimiter, run_sweeper
from intake.services.storage_service import StorageService, build_storage_service
from intake.services.submission_repository import SubmissionRepository
from intake.services.submission_service import SubmissionService
from intake.storage.rate_limit_store import (
    DatabaseRateLimitStore,
    InMemoryRateLimitStore,
    RateLimitStore,
)

logger = logging.getLogger(__name__)


def build_rate_limit_store(settings: Settings, database_service: DatabaseService) -> RateLimitStore:
    if settings.RATE_LIMIT_BACKEND == "database":
        return DatabaseRateLimitStore(database_service)
    if settings.RATE_LIMIT_BACKEND == "memory":
        return InMemoryRateLimitStore()
    raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {settings.RATE_LIMIT_BACKEND}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Initialize the database and start the rate-limit sweeper on startup;
    stop the sweeper and close connections on shutdown.
    """
    settings: Settings = app.state.settings
    database_service: DatabaseService = app.state.database_service

    try:
        logger.info("=" * 60)
        logger.info(f"Starting {settings.APP_NAME}")
        logger.info("=" * 60)
        logger.info(f"  - Environment: {settings.ENVIRONMENT}")
        logger.info(f"  - Storage Backend: {settings.STORAGE_BACKEND}")
        logger.info(f"  - Rate Limit Backend: {settings.RATE_LIMIT_BACKEND}")

        if database_service.SessionLocal is None:
            logger.info("Initializing database connection...")
            database_service.initialize()
        logger.info("✓ Database connection established and schema verified")
    except Exception as e:
        logger.error(f"❌ Startup error: {str(e)}")
        raise

    sweeper = asyncio.create_task(
        run_sweeper([app.state.rate_limit_store], settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS)
    )
    logger.info(f"✓ {settings.APP_NAME} Ready")

    try:
        yield
    finally:
        logger.info(f"Shutting down {settings.APP_NAME}...")
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        database_service.close()
        logger.info("✓ Database connections closed")


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the {success: false, ...} envelope."""

    @app.exception_handler(IntakeError)
    async def intake_error_handler(request: Request, exc: IntakeError):
        content = {"success": False, "message": exc.message}
        if exc.errors:
            content["errors"] = exc.errors
        headers = None
        if isinstance(exc, RateLimitExceeded):
            content["retryAfter"] = exc.retry_after
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            content["error"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "errors": errors}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": message}
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"}
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    database_service: Optional[DatabaseService] = None,
    storage_service: Optional[StorageService] = None,
    notifier: Optional[NotificationService] = None,
    audit_logger: Optional[AuditLoggingService] = None,
    rate_limit_store: Optional[RateLimitStore] = None
) -> FastAPI:
    """
    Build the application and its services.

    Any service can be supplied ready-made; the rest are built from settings.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL)

    # Create FastAPI application instance
    app = FastAPI(
        title=settings.APP_NAME,
        description="Public document submission intake with staff review",
        version=settings.API_VERSION,
        lifespan=lifespan
    )

    # Initialize services
    database_service = database_service or DatabaseService(
        database_url=settings.DATABASE_URL,
        project_id=settings.PROJECT_ID,
        region=settings.REGION,
        instance_name=settings.DB_INSTANCE_NAME,
        database_name=settings.DB_NAME,
        db_user=settings.DB_USER,
        secret_name=settings.DB_SECRET_NAME
    )
    storage_service = storage_service or build_storage_service(settings)
    audit_logger = audit_logger or AuditLoggingService(
        project_id=settings.PROJECT_ID,
        enabled=settings.AUDIT_LOG_ENABLED
    )
    notifier = notifier or EmailNotificationService.from_settings(settings)
    rate_limit_store = rate_limit_store or build_rate_limit_store(settings, database_service)

    submission_service = SubmissionService(
        repository=SubmissionRepository(database_service),
        attachment_store=AttachmentStore(database_service, storage_service),
        notifier=notifier,
        audit_logger=audit_logger,
        max_id_attempts=settings.PUBLIC_ID_MAX_ATTEMPTS,
        max_file_size=settings.max_file_size_bytes,
        max_files=settings.MAX_FILES_PER_SUBMISSION
    )

    # Make services available to routers
    app.state.settings = settings
    app.state.database_service = database_service
    app.state.audit_logger = audit_logger
    app.state.rate_limit_store = rate_limit_store
    app.state.submission_service = submission_service
    app.state.api_rate_limiter = RateLimiter(
        rate_limit_store,
        scope="api",
        max_requests=settings.API_RATE_LIMIT_MAX,
        window_seconds=settings.API_RATE_LIMIT_WINDOW_SECONDS
    )
    app.state.submission_rate_limiter = RateLimiter(
        rate_limit_store,
        scope="submission",
        max_requests=settings.SUBMISSION_RATE_LIMIT_MAX,
        window_seconds=settings.SUBMISSION_RATE_LIMIT_WINDOW_SECONDS,
        message="Too many submissions. Please try again later."
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} - {duration_ms:.0f}ms"
        )
        return response

    register_exception_handlers(app)

    # Include routers
    app.include_router(submissions.router)

    @app.get("/health", tags=["health"])
    async def health_check():
        """
        Health check endpoint.

        Returns:
            Dictionary containing service status
        """
        return {
            "success": True,
            "message": f"{settings.APP_NAME} is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.ENVIRONMENT
        }

    @app.get("/api", tags=["health"], dependencies=[Depends(submissions.api_rate_limit)])
    async def api_root():
        """
        Endpoint discovery document.
        """
        return {
            "success": True,
            "message": settings.APP_NAME,
            "version": settings.API_VERSION,
            "endpoints": {
                "health": "/health",
                "submissions": {
                    "create": "POST /api/submissions",
                    "getAll": "GET /api/submissions",
                    "getById": "GET /api/submissions/:id",
                    "getByEmail": "GET /api/submissions/email/:email",
                    "downloadFile": "GET /api/submissions/files/:fileId",
                    "updateStatus": "PATCH /api/submissions/:id/status",
                    "delete": "DELETE /api/submissions/:id",
                    "stats": "GET /api/submissions/stats",
                },
            },
            "documentation": "/docs"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
