from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness probe; never rate limited.

    Reports whether admission control is active and which store backs it,
    without touching the store.
    """

    limiter = getattr(request.app.state, "limiter", None)
    if limiter is None:
        return {"status": "ok", "rate_limit": "disabled"}

    return {
        "status": "ok",
        "rate_limit": "enabled",
        "store": type(limiter.store).__name__,
    }
