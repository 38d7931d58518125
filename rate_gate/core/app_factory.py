"""Application factory for the FastAPI app.

Centralizes app construction (logging, limiter wiring, middleware, handlers,
routers) so tests can build isolated apps with their own limiter and store.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from rate_gate.adapters.window_store.factory import create_window_store
from rate_gate.api.routes import health_router, rate_limit_router
from rate_gate.core.config import Settings, settings
from rate_gate.core.exception_handlers import setup_exception_handlers
from rate_gate.core.key_extractor import KeyExtractor
from rate_gate.core.logging import configure_logging
from rate_gate.core.middleware import request_id_middleware
from rate_gate.core.rate_limit import RateLimitMiddleware, build_rate_limiter
from rate_gate.services.rate_limiter import RateLimiter


def create_app(
    *,
    limiter: RateLimiter | None = None,
    key_extractor: KeyExtractor | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        limiter: Pre-built limiter; built from settings when omitted and
            rate limiting is enabled.
        key_extractor: Overrides the settings-driven client key derivation.
        config: Settings to use instead of the global instance.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If the limiter or store configuration is invalid.
    """
    cfg = config or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    if limiter is None and cfg.rate_limit.enabled:
        limiter = build_rate_limiter(cfg.rate_limit, create_window_store(cfg))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if limiter is not None:
            await limiter.store.close()

    app = FastAPI(
        title="rate-gate",
        description=(
            "Sliding-window request-rate admission control. Requests beyond the "
            "per-client quota receive 429 with Retry-After; admitted responses "
            "carry X-RateLimit-* headers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter

    # Registered before request_id_middleware so it runs inside it and its
    # logs carry the request id.
    if limiter is not None:
        rate_limit_middleware = RateLimitMiddleware.from_settings(
            limiter, cfg.rate_limit, key_extractor=key_extractor
        )
        app.state.key_extractor = rate_limit_middleware.key_extractor
        app.middleware("http")(rate_limit_middleware)
        app.include_router(rate_limit_router, prefix="/v1")

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    return app
