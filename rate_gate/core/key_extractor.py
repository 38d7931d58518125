"""Client identity derivation for rate limiting.

A client key namespaces the identity source (``api_key:``, ``ip:``) so that
an IP address can never collide with a credential hash. Requests with no
identifying data share one fallback bucket instead of failing.
"""

from __future__ import annotations

import hashlib
from typing import Callable

from fastapi import Request

KeyExtractor = Callable[[Request], str]

FALLBACK_KEY = "unknown"


def hash_key(value: str) -> str:
    """Hash a client key or credential for logging/storage without exposing it."""
    return hashlib.sha256(value.encode()).hexdigest()[:16]


class ClientKeyExtractor:
    """Derive a stable client key from a request.

    Precedence:
        1. API credential header (only when ``api_key_header`` is set)
        2. Forwarded-client header (first hop, only when trusted)
        3. Direct peer address
        4. ``fallback_key``

    Only enable ``trust_forwarded`` behind a proxy that overwrites the
    forwarded header; otherwise clients can pick their own bucket.
    """

    def __init__(
        self,
        *,
        forwarded_header: str = "X-Forwarded-For",
        trust_forwarded: bool = True,
        api_key_header: str | None = None,
        fallback_key: str = FALLBACK_KEY,
    ) -> None:
        self.forwarded_header = forwarded_header
        self.trust_forwarded = trust_forwarded
        self.api_key_header = api_key_header
        self.fallback_key = fallback_key

    def __call__(self, request: Request) -> str:
        return self.extract(request)

    def extract(self, request: Request) -> str:
        if self.api_key_header:
            api_key = request.headers.get(self.api_key_header, "").strip()
            if api_key:
                return f"api_key:{hash_key(api_key)}"

        if self.trust_forwarded:
            forwarded = request.headers.get(self.forwarded_header, "")
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return f"ip:{first_hop}"

        if request.client and request.client.host:
            return f"ip:{request.client.host}"

        return self.fallback_key
