"""Access logging for the operator and dispatch HTTP API.

Every request produces one line on the ``fixdispatch.access`` logger:

    <client ip> <method> <path> <status> <latency>ms

The same latency is returned to the caller in ``X-Process-Time-Ms`` so
operators can correlate a slow manual dispatch trigger with the worker logs.
"""

import logging
import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("fixdispatch.access")

PROCESS_TIME_HEADER = "X-Process-Time-Ms"


def _client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Write the access line and latency header for each API call."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.info(
            "%s %s %s %d %.2fms",
            _client_ip(request),
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed_ms:.2f}"
        return response
