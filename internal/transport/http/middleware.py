"""
HTTP Middleware for Product Catalog.

Provides middleware components for request processing.
"""
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from pkg.logger.logger import set_request_id

from .metrics import MetricsMiddleware


REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Add request ID to context for logging and tracing.

    Reuses the caller's X-Request-ID or generates one, and echoes it back.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            set_request_id(None)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = [
    "MetricsMiddleware",
    "REQUEST_ID_HEADER",
    "RequestIDMiddleware",
]
