"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from account_service.api.middleware import CORRELATION_HEADER, CorrelationIdMiddleware
from account_service.api.users import router as users_router
from account_service.config import get_settings
from account_service.errors import AccountServiceError, ValidationError
from account_service.services.logging_service import (
    configure_logging,
    get_logger,
    log_request_failure,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    if settings.store_backend == "postgres":
        try:
            from account_service.database import init_database, run_migrations

            await init_database()
            await run_migrations()
            logger.info("database_initialized")
        except Exception as e:
            logger.warning(
                "database_initialization_failed",
                error=str(e),
                note="Continuing without database - account requests will return 503",
            )

    logger.info(
        "application_started",
        store_backend=settings.store_backend,
        log_level=settings.log_level,
    )

    yield

    if settings.store_backend == "postgres":
        from account_service.database import close_database

        await close_database()

    logger.info("application_shutdown")


app = FastAPI(
    title="Account Service",
    description="User registration, login and rotating refresh-token sessions",
    version="1.0.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


@app.exception_handler(AccountServiceError)
async def account_error_handler(
    request: Request, exc: AccountServiceError
) -> JSONResponse:
    """Map a typed service error to its status class and a fixed message.

    Only validation errors echo details back; every other kind returns its
    public message so credentials and token state are never leaked.
    """
    correlation_id = _correlation_id(request)
    log_request_failure(exc, correlation_id, request.url.path)

    content = {
        "error": type(exc).__name__,
        "correlation_id": correlation_id,
    }
    if isinstance(exc, ValidationError):
        content["detail"] = exc.message
        content["errors"] = exc.errors
    elif exc.status_code >= 500:
        content["detail"] = exc.public_message
    else:
        content["detail"] = exc.message

    headers = {CORRELATION_HEADER: correlation_id}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI request-parsing errors (e.g. a non-JSON body) as 400."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", ["unknown"])),
            "message": error.get("msg", "Validation failed"),
        }
        for error in exc.errors()
    ]
    detail = errors[0]["message"] if errors else "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        fields=[e["field"] for e in errors],
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "detail": detail,
            "errors": errors,
            "correlation_id": correlation_id,
        },
        headers={CORRELATION_HEADER: correlation_id},
    )


@app.get("/health")
async def health() -> dict:
    """Report liveness and credential store reachability."""
    settings = get_settings()
    if settings.store_backend == "memory":
        return {"status": "ok", "store": "memory"}

    from account_service.database import health_check

    healthy = await health_check()
    return {"status": "ok" if healthy else "degraded", "store": "postgres"}


settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(users_router)

if settings.media_base_url.startswith("/"):
    app.mount(
        settings.media_base_url,
        StaticFiles(directory=settings.media_root, check_dir=False),
        name="media",
    )
