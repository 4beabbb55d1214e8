"""
app/core/rate_limiter.py — Request admission control
Two layers:
  - slowapi fixed limits for the status / levels / questions endpoints
  - SlidingWindowRateLimiter: per-caller sliding log for the chat endpoint,
    reporting remaining quota and a retry hint.
State is per process. Several replicas each enforce their own quota.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings

settings = get_settings()

# Single shared slowapi instance — imported by main.py and routers
limiter = Limiter(key_func=get_remote_address)

RATE_LIMITS = settings.rate_limits

UNKNOWN_CLIENT = "unknown"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int = 10
    window_ms: int = 60_000


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int     # epoch ms when the oldest counted request leaves the window
    retry_after: int    # seconds; 0 when allowed


@dataclass(frozen=True)
class RateLimitStatus:
    requests: int
    remaining: int
    reset_time: int
    retry_after: int


class SlidingWindowRateLimiter:
    """
    Sliding-log limiter: one list of request timestamps (ms) per identifier.
    Entries are pruned lazily on each check. Once more than
    `cleanup_threshold` identifiers are tracked, every list is swept and
    fully expired identifiers are dropped.
    """

    def __init__(
        self,
        default_config: Optional[RateLimitConfig] = None,
        cleanup_threshold: int = 1000,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.default_config = default_config or RateLimitConfig()
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._store: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    @staticmethod
    def _recent(timestamps: list[float], now: float, window_ms: int) -> list[float]:
        return [ts for ts in timestamps if now - ts < window_ms]

    def check(
        self,
        identifier: str,
        config: Optional[RateLimitConfig] = None,
    ) -> RateLimitResult:
        """Admit or reject one request from `identifier`, recording it if admitted."""
        config = config or self.default_config
        with self._lock:
            now = self._clock()
            recent = self._recent(self._store.get(identifier, []), now, config.window_ms)
            count = len(recent)

            if count < config.max_requests:
                recent.append(now)
                self._store[identifier] = recent
                result = RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - count - 1,
                    reset_time=int(recent[0] + config.window_ms),
                    retry_after=0,
                )
            else:
                reset_at = recent[0] + config.window_ms
                result = RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=int(reset_at),
                    retry_after=math.ceil((reset_at - now) / 1000),
                )

            if len(self._store) > self.cleanup_threshold:
                self._sweep(now, config.window_ms)

        return result

    def status(
        self,
        identifier: str,
        config: Optional[RateLimitConfig] = None,
    ) -> RateLimitStatus:
        """Report quota usage for `identifier` without recording a request."""
        config = config or self.default_config
        with self._lock:
            now = self._clock()
            recent = self._recent(self._store.get(identifier, []), now, config.window_ms)

        reset_at = recent[0] + config.window_ms if recent else now + config.window_ms
        exhausted = len(recent) >= config.max_requests
        return RateLimitStatus(
            requests=len(recent),
            remaining=max(0, config.max_requests - len(recent)),
            reset_time=int(reset_at),
            retry_after=math.ceil((reset_at - now) / 1000) if exhausted else 0,
        )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._store.pop(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _sweep(self, now: float, window_ms: int) -> None:
        # Caller holds the lock
        cutoff = now - window_ms
        before = len(self._store)
        for key in list(self._store):
            valid = [ts for ts in self._store[key] if ts > cutoff]
            if valid:
                self._store[key] = valid
            else:
                del self._store[key]
        logger.debug(f"Rate limit sweep: {before} → {len(self._store)} identifiers.")


# ──────────────────────────────────────────────────────────────────────────────
# Process-wide chat limiter — injected into handlers via get_chat_rate_limiter
# ──────────────────────────────────────────────────────────────────────────────

CHAT_RATE_LIMIT = RateLimitConfig(
    max_requests=settings.chat_rate_limit_max_requests,
    window_ms=settings.chat_rate_limit_window_ms,
)

chat_rate_limiter = SlidingWindowRateLimiter(
    default_config=CHAT_RATE_LIMIT,
    cleanup_threshold=settings.rate_limit_cleanup_threshold,
)


def get_chat_rate_limiter() -> SlidingWindowRateLimiter:
    """FastAPI dependency. Override in tests for an isolated limiter."""
    return chat_rate_limiter


def get_client_identifier(request) -> str:
    """
    Caller identity for the chat quota.
    First X-Forwarded-For entry, then the socket peer address. Only when both
    are missing does the caller land in the shared "unknown" bucket, which
    is logged because every such caller then shares one quota.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    logger.warning("No client address available; using shared 'unknown' rate limit bucket.")
    return UNKNOWN_CLIENT


def rate_limit_headers(result: RateLimitResult, limit: int) -> dict[str, str]:
    """X-RateLimit-* and Retry-After headers for a rejected request."""
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time),
        "Retry-After": str(result.retry_after),
    }
