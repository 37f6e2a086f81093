"""Request context middleware for HTTP request tracing.

Every response carries an ``X-Request-ID`` header (echoed from the client or
generated).  The request ID and the calling user from ``X-User-Id`` are bound
into structlog contextvars so all ledger log lines for a request can be
correlated.
"""

from __future__ import annotations

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SERVICE_NAME = "campaign-payouts"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request ID and caller identity to structlog for each request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process the request with a fresh structlog context.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            The HTTP response with ``X-Request-ID`` header set.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, service=SERVICE_NAME)
        user_id = request.headers.get("X-User-Id")
        if user_id:
            structlog.contextvars.bind_contextvars(user_id=user_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
