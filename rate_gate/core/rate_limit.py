"""Rate limiting middleware for FastAPI apps.

This module wires the limiter into the HTTP layer.

Per request: extract the client key, ask the limiter for a decision, then
either forward to the wrapped handler (adding quota headers) or short-circuit
with a 429. Nothing is retried or queued; a denied client retries on its own
after ``Retry-After``.

When the window store fails, the limiter's configured failure policy decides:
fail-open forwards the request, fail-closed rejects it. Both are logged.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from rate_gate.adapters.window_store.base import AbstractWindowStore
from rate_gate.core.config import RateLimitSettings, parse_paths
from rate_gate.core.errors import KeyExtractionAppError, StoreUnavailableAppError
from rate_gate.core.key_extractor import (
    FALLBACK_KEY,
    ClientKeyExtractor,
    KeyExtractor,
    hash_key,
)
from rate_gate.services.rate_limiter import (
    AdmitDecision,
    FailurePolicy,
    LimiterConfig,
    RateLimiter,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_BODY = {"error": "too many requests"}

CallNext = Callable[[Request], Awaitable[Response]]


def build_rate_limiter(
    rate_limit_settings: RateLimitSettings,
    store: AbstractWindowStore,
) -> RateLimiter:
    """Create a limiter from settings and an already-built store.

    Raises:
        ConfigurationAppError: If the configured limits are invalid.
    """

    config = LimiterConfig(
        max_requests=rate_limit_settings.max_requests,
        window_seconds=rate_limit_settings.window_seconds,
        failure_policy=FailurePolicy(rate_limit_settings.failure_policy),
        store_timeout_seconds=rate_limit_settings.store_timeout_seconds,
    )
    return RateLimiter(config, store)


def build_key_extractor(rate_limit_settings: RateLimitSettings) -> ClientKeyExtractor:
    return ClientKeyExtractor(
        forwarded_header=rate_limit_settings.forwarded_header,
        trust_forwarded=rate_limit_settings.trust_forwarded,
        api_key_header=rate_limit_settings.api_key_header,
    )


def resolve_client_key(key_extractor: KeyExtractor, request: Request) -> str:
    """Run the extractor, degrading to its fallback bucket when it fails."""

    try:
        return key_extractor(request)
    except KeyExtractionAppError as exc:
        logger.debug(
            "rate_limit.key_fallback",
            extra={"reason": exc.code, "path": request.url.path},
        )
        return getattr(key_extractor, "fallback_key", FALLBACK_KEY)


def rate_limit_response(headers: dict[str, str]) -> JSONResponse:
    """Build the 429 rejection returned to throttled clients."""

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=RATE_LIMIT_BODY,
        headers=headers,
    )


class RateLimitMiddleware:
    """HTTP middleware enforcing per-client admission control.

    Usage:
        limiter = RateLimiter(LimiterConfig(max_requests=5, window_seconds=60), store)
        app.middleware("http")(RateLimitMiddleware(limiter))
    """

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        key_extractor: KeyExtractor | None = None,
        exempt_paths: Iterable[str] = ("/health",),
        include_headers: bool = True,
    ) -> None:
        """Initialize the middleware.

        Args:
            limiter: Limiter holding the config and store.
            key_extractor: Callable deriving the client key from a request.
            exempt_paths: Paths that bypass admission control.
            include_headers: Attach X-RateLimit-* headers to responses.
        """
        self.limiter = limiter
        self.key_extractor = key_extractor or ClientKeyExtractor()
        self.exempt_paths = set(exempt_paths)
        self.include_headers = include_headers

    @classmethod
    def from_settings(
        cls,
        limiter: RateLimiter,
        rate_limit_settings: RateLimitSettings,
        *,
        key_extractor: KeyExtractor | None = None,
    ) -> "RateLimitMiddleware":
        return cls(
            limiter,
            key_extractor=key_extractor or build_key_extractor(rate_limit_settings),
            exempt_paths=parse_paths(rate_limit_settings.exempt_paths),
            include_headers=rate_limit_settings.include_headers,
        )

    def _is_exempt(self, request: Request) -> bool:
        return request.method == "OPTIONS" or request.url.path in self.exempt_paths

    async def _on_store_unavailable(
        self,
        request: Request,
        call_next: CallNext,
        key_hash: str,
        exc: StoreUnavailableAppError,
    ) -> Response:
        config = self.limiter.config
        logger.warning(
            "rate_limit.store_unavailable",
            extra={
                "key_hash": key_hash,
                "failure_policy": config.failure_policy.value,
                "error_code": exc.code,
                "error_message": exc.message,
                "path": request.url.path,
            },
        )

        if config.failure_policy is FailurePolicy.FAIL_CLOSED:
            retry_after = int(config.window_seconds)
            return rate_limit_response({"Retry-After": str(retry_after)})

        return await call_next(request)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if self._is_exempt(request):
            return await call_next(request)

        key = resolve_client_key(self.key_extractor, request)
        key_hash = hash_key(key)
        request.state.rate_limit_key = key

        try:
            decision = await self.limiter.allow(key)
        except StoreUnavailableAppError as exc:
            return await self._on_store_unavailable(request, call_next, key_hash, exc)

        request.state.rate_limit = decision

        if not decision.allowed:
            return self._reject(request, key_hash, decision)

        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": decision.limit,
                "remaining": decision.remaining,
            },
        )
        response = await call_next(request)
        if self.include_headers:
            for name, value in decision.to_headers().items():
                response.headers[name] = value
        return response

    def _reject(self, request: Request, key_hash: str, decision: AdmitDecision) -> Response:
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "key_hash": key_hash,
                "limit": decision.limit,
                "window_s": self.limiter.config.window_seconds,
                "retry_after_s": decision.retry_after_seconds,
                "path": request.url.path,
            },
        )

        if self.include_headers:
            headers = decision.to_headers()
        else:
            headers = {"Retry-After": str(decision.retry_after_seconds or 0)}
        return rate_limit_response(headers)
