"""Request ID tracing middleware. Adds X-Request-ID to every response."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Read by the logging filter so every log line of a request carries its id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_MAX_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every request/response for tracing.

    - A client-supplied X-Request-ID is honoured (truncated to 128 chars)
    - Otherwise a UUID4 is generated
    - The ID is exposed on request.state and in request_id_var for loggers
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = (request.headers.get("x-request-id") or "").strip()[:_MAX_ID_LENGTH] or str(uuid.uuid4())
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response
