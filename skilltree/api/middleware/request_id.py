"""
Request ID middleware.

Every request gets an id (the caller's X-Request-ID when it is usable, a
fresh UUID otherwise). The id is echoed on the response, kept on
request.state for the error handlers and bound to the logging context for
the lifetime of the request.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from skilltree.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000

# Ids end up in log lines and response headers
_USABLE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _USABLE_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            elapsed_ms = (time.perf_counter() - started) * 1000
            # Lesson generation and AI grading dominate slow requests
            if elapsed_ms > SLOW_REQUEST_MS:
                logger.warning(
                    "Slow request %s %s took %.0f ms",
                    request.method,
                    request.url.path,
                    elapsed_ms,
                    extra={"status_code": response.status_code},
                )
            return response
        finally:
            request_id_var.reset(token)
