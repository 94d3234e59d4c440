"""
Rate Limiter - in-memory fixed window request limiting.

This module provides per-key fixed window counters for abuse-prone endpoints:
- Per-IP limits (all requests)
- Per-session limits (dashboard sessions)
- Several named limiters checked together, first rejection wins

Design:
- Fixed window (counter resets entirely when the window expires)
- Process-local state, lost on restart (abuse mitigation, not quota billing)
- Lazy cleanup of expired entries on access, optional background sweep
- Never raises; every outcome is a RateLimitResult

Usage:
    from spoqen.middleware.rate_limiter import RateLimitConfig, create_rate_limiter

    limiter = create_rate_limiter(
        RateLimitConfig(window_ms=60_000, max_requests=30, key_prefix="metrics_ip")
    )

    result = limiter.check("203.0.113.7")
    if not result.allowed:
        raise HTTPException(429, headers={"Retry-After": str(result.retry_after)})
"""

import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import NamedTuple

from spoqen.config import Settings
from spoqen.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLEANUP_INTERVAL_MS = 5 * 60 * 1000  # 5 minutes

Clock = Callable[[], float]


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int
    key_prefix: str


@dataclass
class RateLimitEntry:
    count: int
    window_start: float
    last_request: float


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of a single check.

    reset_time is epoch milliseconds; retry_after (seconds, >= 1) is only
    set on rejection.
    """

    allowed: bool
    remaining: int
    reset_time: float
    limit: int
    retry_after: int | None = None

    def to_info(self) -> dict:
        """Info dict consumed by the rate limit headers middleware."""
        info = {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time,
        }
        if self.retry_after is not None:
            info["retry_after"] = self.retry_after
        return info


@dataclass(frozen=True)
class UsageSnapshot:
    count: int
    remaining: int
    reset_time: float


@dataclass(frozen=True)
class RateLimiterStats:
    total_entries: int
    last_cleanup: float


class RateLimiter:
    """
    Fixed window rate limiter keyed by "<key_prefix>:<identifier>".

    Per key state machine: absent -> active (window N) -> active (window N+1,
    reset on access) -> evicted (sweep, only once expired). Keys are
    recreated on demand.

    Thread Safety:
        check() is a read-modify-write on the entry table, so all table
        access happens under a lock. It guards callers on other threads,
        such as sync routes run in the thread pool or a sweeper thread.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Clock | None = None,
        cleanup_interval_ms: int = CLEANUP_INTERVAL_MS,
    ):
        """
        Initialize rate limiter.

        Args:
            config: Window length, request budget and key prefix
            clock: Returns the current time in epoch milliseconds
            cleanup_interval_ms: Minimum time between lazy sweeps
        """
        self.config = config
        self._clock = clock or _now_ms
        self._cleanup_interval_ms = cleanup_interval_ms
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = self._clock()

    def _key(self, identifier: str) -> str:
        return f"{self.config.key_prefix}:{identifier}"

    def _is_expired(self, entry: RateLimitEntry, now: float) -> bool:
        return now - entry.window_start >= self.config.window_ms

    def check(self, identifier: str) -> RateLimitResult:
        """
        Count a request for identifier and decide whether it is allowed.

        Rejected requests do not consume budget.

        Args:
            identifier: Client key (IP address, session ID, ...)

        Returns:
            RateLimitResult with remaining budget and reset time
        """
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            key = self._key(identifier)
            entry = self._entries.get(key)

            if entry is None or self._is_expired(entry, now):
                entry = RateLimitEntry(count=0, window_start=now, last_request=now)

            reset_time = entry.window_start + self.config.window_ms

            if entry.count >= self.config.max_requests:
                retry_after = math.ceil((reset_time - now) / 1000)
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=reset_time,
                    limit=self.config.max_requests,
                    retry_after=max(1, retry_after),
                )

            entry.count += 1
            entry.last_request = now
            self._entries[key] = entry

            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_requests - entry.count,
                reset_time=reset_time,
                limit=self.config.max_requests,
            )

    def get_usage(self, identifier: str) -> UsageSnapshot | None:
        """Current usage for identifier, or None if it has no live window."""
        with self._lock:
            entry = self._entries.get(self._key(identifier))
            if entry is None:
                return None

            if self._is_expired(entry, self._clock()):
                return None

            return UsageSnapshot(
                count=entry.count,
                remaining=self.config.max_requests - entry.count,
                reset_time=entry.window_start + self.config.window_ms,
            )

    def cleanup(self) -> int:
        """
        Remove entries whose window has fully expired.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            removed = self._sweep(now)
            self._last_cleanup = now
            return removed

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> RateLimiterStats:
        with self._lock:
            return RateLimiterStats(
                total_entries=len(self._entries),
                last_cleanup=self._last_cleanup,
            )

    def _maybe_cleanup(self, now: float) -> None:
        # Caller holds the lock
        if now - self._last_cleanup > self._cleanup_interval_ms:
            self._sweep(now)
            self._last_cleanup = now

    def _sweep(self, now: float) -> int:
        # Caller holds the lock
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(
                "Rate limiter swept expired entries",
                key_prefix=self.config.key_prefix,
                removed=len(expired),
                remaining_entries=len(self._entries),
            )
        return len(expired)


def create_rate_limiter(config: RateLimitConfig, clock: Clock | None = None) -> RateLimiter:
    """Generic rate limiter factory for endpoints."""
    return RateLimiter(config, clock=clock)


class RateLimitCheck(NamedTuple):
    limiter: RateLimiter
    identifier: str
    name: str


@dataclass
class MultiRateLimitResult:
    allowed: bool
    results: dict[str, RateLimitResult] = field(default_factory=dict)
    failed_check: str | None = None
    retry_after: int | None = None


def check_multiple_rate_limits(checks: Iterable[RateLimitCheck]) -> MultiRateLimitResult:
    """
    Check several limiters in order, stopping at the first rejection.

    Limiters after the rejecting one are not consulted, so their budget is
    left untouched.

    Args:
        checks: (limiter, identifier, name) triples, in evaluation order

    Returns:
        MultiRateLimitResult with per-name results gathered so far
    """
    results: dict[str, RateLimitResult] = {}

    for check in checks:
        result = check.limiter.check(check.identifier)
        results[check.name] = result

        if not result.allowed:
            return MultiRateLimitResult(
                allowed=False,
                results=results,
                failed_check=check.name,
                retry_after=result.retry_after,
            )

    return MultiRateLimitResult(allowed=True, results=results)


@dataclass
class RateLimiterRegistry:
    """Limiters owned by one application instance."""

    dashboard_metrics_ip: RateLimiter
    dashboard_metrics_session: RateLimiter

    def all(self) -> list[RateLimiter]:
        return [self.dashboard_metrics_ip, self.dashboard_metrics_session]

    def clear(self) -> None:
        for limiter in self.all():
            limiter.clear()


def build_rate_limiters(app_settings: Settings, clock: Clock | None = None) -> RateLimiterRegistry:
    """Construct the application's limiters from settings."""
    configs = app_settings.get_rate_limit_configs()
    cleanup_interval_ms = app_settings.RATE_LIMIT_CLEANUP_INTERVAL_MS

    def _build(name: str) -> RateLimiter:
        return RateLimiter(
            RateLimitConfig(**configs[name]),
            clock=clock,
            cleanup_interval_ms=cleanup_interval_ms,
        )

    return RateLimiterRegistry(
        dashboard_metrics_ip=_build("dashboard_metrics_ip"),
        dashboard_metrics_session=_build("dashboard_metrics_session"),
    )
