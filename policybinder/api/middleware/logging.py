"""Logging middleware for admission request tracking."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from policybinder.core.logging import get_logger, log_event

logger = get_logger(__name__)

# Probes and scrapes are polled constantly; keep them out of the info log
QUIET_PATHS = ("/healthz", "/readyz", "/metrics")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every webhook call with its latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_host": request.client.host if request.client else None,
            "request_id": request_id,
        }
        level = "debug" if request.url.path.startswith(QUIET_PATHS) else "info"

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(
                logger,
                "error",
                "request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=time.time() - start_time,
                **request_info,
            )
            raise

        duration = time.time() - start_time
        log_event(
            logger,
            level,
            "request_completed",
            status_code=response.status_code,
            duration_seconds=duration,
            **request_info,
        )

        response.headers["X-Process-Time"] = str(duration)
        response.headers["X-Request-ID"] = request_id
        return response
