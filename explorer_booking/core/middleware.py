"""Custom middleware for the application."""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log status changes and slow calls."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Time the request and add tracing headers.

        Args:
            request: Incoming request
            call_next: Next middleware/route handler

        Returns:
            Response: Route response with X-Request-ID and X-Response-Time
        """
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

        # Mutating requests
        if request.method not in ("GET", "HEAD", "OPTIONS"):
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {elapsed:.3f}s [{request_id}]"
            )
        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow request {request.method} {request.url.path}: {elapsed:.3f}s [{request_id}]")

        return response
