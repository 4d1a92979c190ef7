"""
Request logging middleware.
Logs structured request/response info with timing.
NEVER logs: request bodies, Authorization headers, query strings.
"""
import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from agentify.core.metrics import metrics
from agentify.core.request_context import REQUEST_ID_HEADER, set_request_id

logger = logging.getLogger("agentify.request")

# Accept a caller-supplied id only if it looks like one
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Long-lived or noisy paths
QUIET_PATHS = {"/health", "/metrics"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Assigns request_id (reusing a well-formed X-Request-Id)
    - Logs request/response with timing
    - Adds X-Request-Id header
    - Updates metrics
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and not _REQUEST_ID_PATTERN.match(incoming):
            incoming = None
        request_id = set_request_id(incoming)

        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        start_time = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        response.headers[REQUEST_ID_HEADER] = request_id

        metrics.inc("requests_total")
        status_class = response.status_code // 100
        if status_class == 2:
            metrics.inc("requests_2xx")
        elif status_class == 4:
            metrics.inc("requests_4xx")
        elif status_class == 5:
            metrics.inc("requests_5xx")

        # For /stream this fires once headers are sent, not at disconnect
        if request.url.path not in QUIET_PATHS:
            logger.info(
                "request",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "client_ip": client_ip,
                },
            )

        return response
