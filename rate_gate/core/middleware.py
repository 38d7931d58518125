"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a request ID so limiter decisions
(``rate_limit.exceeded``, ``rate_limit.store_unavailable``) can be matched
to the request that triggered them.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from rate_gate.core.config import settings
from rate_gate.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation ID and timing header to each response.

    Uses the incoming request ID header (``LOG_REQUEST_ID_HEADER``) when
    present, otherwise generates a UUID. The ID is available to loggers via
    contextvars for the lifetime of the request.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with request ID and duration headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
