"""
Request correlation and timing middleware.

Every request gets an X-Correlation-ID (taken from the caller or generated),
which is stored on ``request.state``, bound to the logging context for the
duration of the request, and echoed back in the response headers. The member
runner sends its own ID per poll tick so client and server logs line up.

Requests slower than ``slow_request_ms`` are logged as warnings: a poll that
takes longer than the client poll interval makes ticks overlap.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from venue_tracker.core.logging import clear_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
DEFAULT_SLOW_REQUEST_MS = 1000


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Attach a correlation ID to each request and time it.

    Usage:
        app.add_middleware(CorrelationIdMiddleware, slow_request_ms=1000)
    """

    def __init__(self, app: ASGIApp, slow_request_ms: int = DEFAULT_SLOW_REQUEST_MS) -> None:
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = set_correlation_id(correlation_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id

            elapsed_ms = (time.perf_counter() - started) * 1000
            fields = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 1),
            }
            if elapsed_ms >= self.slow_request_ms:
                logger.warning(f"Slow request: {request.method} {request.url.path}", extra=fields)
            else:
                logger.debug(f"Request completed: {request.method} {request.url.path}", extra=fields)
            return response
        finally:
            clear_correlation_id(token)
