"""
Process-wide rate limiter for external image-generation calls.

Every call to the generation API acquires a token first, so concurrent
morph requests in the same process share one budget:
- Token bucket with a small burst capacity
- Minimum spacing between consecutive calls
- Exponential backoff after HTTP 429, with reduced burst until calls succeed
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)

BASE_BACKOFF_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0
# Slack when comparing elapsed time against the minimum spacing.
_SPACING_TOLERANCE = 1e-6


class GenerationRateLimiter:
    """
    Thread-safe token-bucket limiter for generation API calls.

    `clock` and `sleep` default to the real time functions; tests inject fakes
    to exercise refill and backoff without waiting.
    """

    def __init__(
        self,
        max_requests_per_minute: int = 10,
        burst_capacity: int = 3,
        min_interval_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self.tokens = float(burst_capacity)
        self.max_tokens = float(burst_capacity)
        self.refill_rate = max_requests_per_minute / 60.0  # tokens per second
        self.last_refill = clock()

        self.request_times: deque = deque(maxlen=max(1, max_requests_per_minute))
        self.last_request_time: Optional[float] = None

        self.rate_limited_until: Optional[float] = None
        self.consecutive_429s = 0
        self.backoff_multiplier = 1.0

        self.lock = threading.RLock()

        logger.info(
            "Generation rate limiter initialized: %d req/min, burst %d, min interval %.2fs",
            max_requests_per_minute,
            burst_capacity,
            min_interval_seconds,
        )

    def _refill_tokens(self) -> None:
        now = self._clock()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def _is_rate_limited(self) -> bool:
        if self.rate_limited_until is None:
            return False
        if self._clock() < self.rate_limited_until:
            return True

        self.rate_limited_until = None
        logger.info("Rate limit backoff period expired, resuming normal operation")
        return False

    def _calculate_backoff(self) -> float:
        # First 429: 30s, second: 60s, third: 120s, capped at 5 minutes.
        return min(BASE_BACKOFF_SECONDS * 2 ** (self.consecutive_429s - 1), MAX_BACKOFF_SECONDS)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a call may be made.

        Returns False if `timeout` seconds pass first (None waits forever).
        The minimum spacing between calls is always waited out, even past
        `timeout`, once a token is available. The lock is never held while
        sleeping.
        """
        start_time = self._clock()

        while True:
            with self.lock:
                if self._is_rate_limited():
                    wait_time = self.rate_limited_until - self._clock()
                    if timeout is not None and self._clock() - start_time >= timeout:
                        logger.error("Rate limiter timeout reached during 429 backoff")
                        return False
                    logger.warning(
                        "Rate limited: %.1fs remaining (consecutive 429s: %d)",
                        wait_time,
                        self.consecutive_429s,
                    )
                    delay = min(1.0, max(wait_time, 0.0))
                else:
                    self._refill_tokens()
                    now = self._clock()
                    since_last = None if self.last_request_time is None else now - self.last_request_time

                    if self.tokens >= 1.0:
                        if since_last is None or since_last >= self.min_interval_seconds - _SPACING_TOLERANCE:
                            self.tokens -= 1.0
                            self.last_request_time = now
                            self.request_times.append(now)
                            logger.debug("Token acquired (%.1f/%.1f remaining)", self.tokens, self.max_tokens)
                            return True
                        delay = self.min_interval_seconds - since_last
                    else:
                        if timeout is not None and now - start_time >= timeout:
                            logger.error("Rate limiter timeout reached (no tokens)")
                            return False
                        delay = 0.1

            self._sleep(delay)

    def report_429(self) -> None:
        """Start an exponential backoff window and shrink the burst capacity."""
        with self.lock:
            self.consecutive_429s += 1
            backoff = self._calculate_backoff()
            self.rate_limited_until = self._clock() + backoff

            self.backoff_multiplier = max(0.5, self.backoff_multiplier * 0.8)
            self.max_tokens = self.burst_capacity * self.backoff_multiplier
            self.tokens = min(self.tokens, self.max_tokens)

            logger.error(
                "Generation API 429 (consecutive: %d). Backing off for %.1fs, burst capacity now %.1f",
                self.consecutive_429s,
                backoff,
                self.max_tokens,
            )

    def report_success(self) -> None:
        """Gradually restore burst capacity after earlier 429s."""
        with self.lock:
            if self.consecutive_429s == 0:
                return
            self.backoff_multiplier = min(1.0, self.backoff_multiplier * 1.1)
            self.max_tokens = self.burst_capacity * self.backoff_multiplier
            self.consecutive_429s -= 1
            logger.info("Request succeeded, 429 counter now %d", self.consecutive_429s)

    def get_stats(self) -> dict:
        with self.lock:
            cutoff = self._clock() - 60.0
            return {
                "tokens_available": self.tokens,
                "max_tokens": self.max_tokens,
                "requests_last_minute": sum(1 for t in self.request_times if t > cutoff),
                "max_requests_per_minute": self.max_requests_per_minute,
                "is_rate_limited": self._is_rate_limited(),
                "consecutive_429s": self.consecutive_429s,
                "backoff_multiplier": self.backoff_multiplier,
                "checked_at": datetime.now().isoformat(),
            }


_rate_limiter: Optional[GenerationRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> GenerationRateLimiter:
    """Get or create the process-wide generation rate limiter."""
    global _rate_limiter

    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = GenerationRateLimiter()
    return _rate_limiter
