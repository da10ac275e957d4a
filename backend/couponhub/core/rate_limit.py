from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Hashable

from fastapi import Request

from couponhub.core import metrics
from couponhub.core.config import Settings
from couponhub.core.errors import RateLimited
from couponhub.core.redis_client import get_redis

logger = logging.getLogger(__name__)

# Expired windows are swept once this many clients are being tracked.
_PRUNE_AT = 1024


@dataclass
class WindowCounter:
    reset_at: float
    count: int = 0


def client_address(request: Request) -> str:
    """First hop of X-Forwarded-For, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


def _prune(counters: dict[Hashable, WindowCounter], now: float) -> None:
    for ident in [ident for ident, counter in counters.items() if now >= counter.reset_at]:
        del counters[ident]


def _enforce_limit(
    counters: dict[Hashable, WindowCounter], ident: Hashable, limit: int, window_seconds: int, now: float
) -> None:
    if len(counters) >= _PRUNE_AT:
        _prune(counters, now)
    counter = counters.get(ident)
    if counter is None or now >= counter.reset_at:
        counters[ident] = WindowCounter(reset_at=now + window_seconds, count=1)
        return
    if counter.count >= limit:
        raise RateLimited(int(counter.reset_at - now + 0.999), window_seconds=window_seconds)
    counter.count += 1


async def _enforce_limit_redis(
    *,
    key: Hashable,
    identifier: Hashable,
    limit: int,
    window_seconds: int,
    now: float,
) -> bool:
    client = get_redis()
    if client is None:
        return False
    try:
        now_int = int(now)
        window = now_int // max(1, window_seconds)
        redis_key = f"rate_limit:{key}:{identifier}:{window}"
        count = await client.incr(redis_key)
        if count == 1:
            await client.expire(redis_key, window_seconds)
    except Exception as exc:
        logger.warning("redis_rate_limit_failed", extra={"error": str(exc)})
        return False
    if int(count) > limit:
        raise RateLimited(window_seconds - (now_int % window_seconds), window_seconds=window_seconds)
    return True


def per_identifier_limiter(
    identifier_fn: Callable[[Request], Hashable],
    limit: int,
    window_seconds: int,
    key: Hashable,
    enabled: bool = True,
) -> Callable[[Request], Awaitable[None]]:
    """
    Fixed-window rate limiter keyed by a per-request identifier.

    Counters live in Redis when REDIS_URL is configured, otherwise in this process.

    Args:
        identifier_fn: function that maps the request to an identifier.
        limit: max requests allowed in one window.
        window_seconds: window length in seconds.
        key: namespace for the counters (e.g. "coupon").
        enabled: when false the dependency lets everything through.
    """
    counters: dict[Hashable, WindowCounter] = {}

    async def dependency(request: Request) -> None:
        if not enabled:
            return
        ident = identifier_fn(request)
        now = time.time()
        try:
            enforced = await _enforce_limit_redis(
                key=key, identifier=ident, limit=limit, window_seconds=window_seconds, now=now
            )
            if not enforced:
                _enforce_limit(counters, ident, limit, window_seconds, now)
        except RateLimited:
            metrics.record_rate_limited()
            logger.info("rate_limited", extra={"limiter": str(key), "client": str(ident)})
            raise

    dependency.buckets = counters  # type: ignore[attr-defined]
    return dependency


def coupon_rate_limiter(settings: Settings) -> Callable[[Request], Awaitable[None]]:
    return per_identifier_limiter(
        client_address,
        settings.coupon_rate_limit,
        settings.coupon_rate_limit_window_seconds,
        key="coupon",
        enabled=settings.coupon_rate_limit_enabled,
    )
