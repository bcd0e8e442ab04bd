"""Adaptive per-method pacing for Slack Web API calls.

Backlog ingestion can walk thousands of history pages back to back, and
`conversations.history` is a Tier 3 method. Each method gets a token bucket
refilled at a target requests-per-minute rate:

- `acquire(method)` blocks until a token is available, adding 50-150 ms of
  jitter to every sleep.
- `on_rate_limited(method, retry_after)` halves the target rate (never below
  `min_rpm`), collapses the burst to 1 and blocks the method until the
  Retry-After window has passed.
- After 120 s without a 429 the rate grows by 10% up to the cap and the
  burst widens by one step up to its configured size.

The limiter is process-local. Buckets are created under a lock but their
state is not individually locked.
"""

import logging
import random
import threading
import time
from typing import Dict, Optional

logger = logging.getLogger(__name__)

RECOVERY_WINDOW_SECONDS = 120.0


class _Bucket:
    """Token bucket for a single method."""

    def __init__(self, rpm: float, cap: float, burst: int, min_rpm: float = 6.0):
        self.target_rpm = max(1.0, float(rpm))
        self.cap_rpm = max(self.target_rpm, float(cap))
        self.burst_capacity = max(1, int(burst))
        self.max_burst = self.burst_capacity
        self.min_rpm = min_rpm
        self.tokens = float(self.burst_capacity)
        now = time.time()
        self.last_refill_ts = now
        self.healthy_since_ts = now
        self.blocked_until: float = 0.0

    @property
    def per_second(self) -> float:
        return self.target_rpm / 60.0

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill_ts)
        if elapsed > 0:
            self.tokens = min(float(self.burst_capacity), self.tokens + elapsed * self.per_second)
            self.last_refill_ts = now

    def wait_time(self, now: float) -> float:
        """Consume a token if one is available.

        Returns:
            Seconds to wait before retrying, 0.0 when a token was consumed.
        """
        self.refill(now)
        if now < self.blocked_until:
            return self.blocked_until - now
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return 0.0
        return (1.0 - self.tokens) / self.per_second

    def back_off(self, retry_after: float) -> None:
        now = time.time()
        self.healthy_since_ts = now
        new_rpm = max(self.min_rpm, self.target_rpm * 0.5)
        if new_rpm < self.target_rpm:
            logger.info(f"Limiter backoff: rpm {self.target_rpm:.2f} -> {new_rpm:.2f}")
        self.target_rpm = new_rpm
        self.burst_capacity = 1
        self.tokens = min(self.tokens, 1.0)
        self.blocked_until = max(self.blocked_until, now + retry_after)

    def maybe_recover(self, now: float) -> None:
        if now - self.healthy_since_ts < RECOVERY_WINDOW_SECONDS:
            return
        raised = min(self.cap_rpm, self.target_rpm * 1.10)
        if raised > self.target_rpm:
            logger.debug(f"Limiter recovery: rpm {self.target_rpm:.2f} -> {raised:.2f}")
            self.target_rpm = raised
        if self.burst_capacity < self.max_burst:
            self.burst_capacity += 1
        self.healthy_since_ts = now


class AdaptiveRateLimiter:
    """Per-method rate limiter with backoff on 429 and gradual recovery.

    Args:
        defaults: Mapping of method name to a dict with `rpm`, `cap` and
            `burst` keys. Unknown methods get 20 rpm with a burst of 5.
    """

    def __init__(self, defaults: Optional[Dict[str, Dict[str, float]]] = None):
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        for method, cfg in (defaults or {}).items():
            self._buckets[method] = _Bucket(
                rpm=float(cfg.get("rpm", 20.0)),
                cap=float(cfg.get("cap", 20.0)),
                burst=int(cfg.get("burst", 5)),
            )

    def _bucket(self, method: str) -> _Bucket:
        with self._lock:
            if method not in self._buckets:
                self._buckets[method] = _Bucket(rpm=20.0, cap=20.0, burst=5)
            return self._buckets[method]

    def acquire(self, method: str) -> None:
        """Block until a call to `method` may proceed."""
        bucket = self._bucket(method)
        while True:
            now = time.time()
            bucket.maybe_recover(now)
            wait = bucket.wait_time(now)
            if wait <= 0:
                return
            total = wait + random.uniform(0.05, 0.15)
            logger.debug(
                f"[{method}] sleeping {total:.3f}s (rpm {bucket.target_rpm:.2f}, "
                f"burst {bucket.burst_capacity}, tokens {bucket.tokens:.2f})"
            )
            time.sleep(total)

    def on_rate_limited(self, method: str, retry_after: Optional[float]) -> None:
        """Record an HTTP 429 for `method`, honoring Retry-After (default 1s)."""
        if retry_after is None or retry_after <= 0:
            retry_after = 1
        self._bucket(method).back_off(float(retry_after))
