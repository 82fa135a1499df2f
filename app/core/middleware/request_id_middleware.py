import re
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from typing import Callable

from app.core.request_context import request_id_ctx_var, set_request_id

# Upstream IDs are echoed into a response header, so only accept plain tokens
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")

class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The ID is returned in the X-Request-ID response header and stored in the
    request context so log records (including security header policy errors)
    can be correlated with the request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse an ID from a load balancer or gateway when it is well formed
        request_id = request.headers.get("X-Request-ID")
        if not request_id or not _VALID_REQUEST_ID.match(request_id):
            request_id = str(uuid.uuid4())

        token = set_request_id(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response
