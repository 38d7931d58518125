from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Request

from rate_gate.core.errors import StoreUnavailableAppError
from rate_gate.core.key_extractor import hash_key
from rate_gate.core.rate_limit import resolve_client_key
from rate_gate.schemas.rate_limit import RateLimitStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Rate limit"])


@router.get("/rate-limit", response_model=RateLimitStatusResponse)
async def rate_limit_status(request: Request) -> RateLimitStatusResponse:
    """Report the caller's remaining quota.

    This request is itself counted by the middleware, so the reported
    ``remaining`` already includes it. When the window store is down the
    quota is unknown and reported as null with ``store_available`` false.
    """

    limiter = request.app.state.limiter
    key = getattr(request.state, "rate_limit_key", None)
    if key is None:
        key = resolve_client_key(request.app.state.key_extractor, request)
    key_hash = hash_key(key)

    try:
        decision = await limiter.peek(key)
    except StoreUnavailableAppError as exc:
        logger.warning(
            "rate_limit.status_unavailable",
            extra={"key_hash": key_hash, "error_code": exc.code, "error_message": exc.message},
        )
        return RateLimitStatusResponse(
            key_hash=key_hash,
            limit=limiter.config.max_requests,
            remaining=None,
            reset_at=None,
            window_seconds=limiter.config.window_seconds,
            store_available=False,
        )

    return RateLimitStatusResponse(
        key_hash=key_hash,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_at=int(math.ceil(decision.reset_at)),
        window_seconds=limiter.config.window_seconds,
    )
