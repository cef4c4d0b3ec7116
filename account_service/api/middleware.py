"""Request correlation and access logging."""

import re
import time
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-Id"

# Caller-supplied ids end up in every log line of the request
_CORRELATION_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")


def resolve_correlation_id(header_value: str | None) -> str:
    """Reuse the caller's correlation id if it is well-formed, else mint one."""
    if header_value and _CORRELATION_ID_PATTERN.fullmatch(header_value):
        return header_value
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome.

    The id is stored in ``request.state.correlation_id``, bound into the
    structlog context with the method and path, and echoed in the
    ``X-Correlation-Id`` response header. One ``request_completed`` event is
    logged per request with its status code and duration.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        logger = structlog.get_logger(__name__)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_unhandled_error",
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            raise

        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
