# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for auth endpoints (brute-force protection).

Complements the per-code attempt lockout: reset tokens carry no attempt
counter, so guessing them is only slowed down here.
"""

import time

from fastapi import HTTPException, Request, status

from toof_server.config import settings

# (client_key, endpoint) -> request timestamps in window, oldest first
_buckets: dict[tuple[str, str], list[float]] = {}
_last_sweep = 0.0
# Window seconds; max requests per window per endpoint
WINDOW = 60
LIMITS: dict[str, int] = {
    "/api/v1/auth/signin": 10,
    "/api/v1/auth/signup": 5,
    "/api/v1/auth/forgot-password": 5,
    "/api/v1/auth/verify-reset-code": 10,
    "/api/v1/auth/verify-reset-token": 10,
    "/api/v1/auth/reset-password": 10,
}


def _trusted_proxies() -> set[str]:
    return {p.strip() for p in settings.trusted_proxies.split(",") if p.strip()}


def _client_key(request: Request) -> str:
    """Peer address. X-Forwarded-For only counts when the peer is a trusted proxy."""
    peer = request.client.host if request.client and request.client.host else "unknown"
    trusted = _trusted_proxies()
    forwarded = request.headers.get("x-forwarded-for")
    if peer not in trusted or not forwarded:
        return peer
    # Proxies append, so the rightmost untrusted hop is the real client
    hops = [h.strip() for h in forwarded.split(",") if h.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


def _clean_old(key: tuple[str, str], now: float) -> list[float]:
    """Drop timestamps outside the window; forget the key once nothing is left."""
    bucket = _buckets.get(key, [])
    cutoff = now - WINDOW
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)
    if not bucket:
        _buckets.pop(key, None)
    return bucket


def _sweep(now: float) -> None:
    """Evict idle clients, at most once per window."""
    global _last_sweep
    if now - _last_sweep < WINDOW:
        return
    _last_sweep = now
    for key in list(_buckets):
        _clean_old(key, now)


def check_rate_limit(request: Request, path: str) -> None:
    """
    Raise 429 if the client has exceeded the limit for this path.
    Call this at the start of the endpoint (or via a dependency).
    """
    limit = LIMITS.get(path)
    if limit is None:
        return
    now = time.monotonic()
    _sweep(now)
    key = (_client_key(request), path)
    bucket = _clean_old(key, now)
    if len(bucket) >= limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
        )
    bucket.append(now)
    _buckets[key] = bucket


def reset_rate_limits() -> None:
    """Forget all recorded requests."""
    global _last_sweep
    _buckets.clear()
    _last_sweep = 0.0


async def rate_limit_auth_dep(request: Request) -> None:
    """FastAPI dependency: rate limit auth endpoints. Add Depends(rate_limit_auth_dep) to routes."""
    path = request.url.path.rstrip("/")
    if path in LIMITS:
        check_rate_limit(request, path)
