"""Rate limiting primitives for provider calls.

Responsibilities:
- Enforce request pacing with a thread-safe token bucket.
- Cap in-flight provider calls with a resizable concurrency limiter.
- Optionally adapt the concurrency ceiling to recent provider errors.

All primitives are shared by every job worker and mutate state only under
their own locks.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
from time import monotonic
from typing import Callable

from ..telemetry.logger import RunLogger


class TokenBucket:
    """Token bucket with continuous refill; one token permits one provider call."""

    def __init__(
        self,
        capacity: int,
        refill_tokens: float,
        refill_interval_seconds: float,
        *,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Initialize a full bucket.

        Args:
            capacity: Maximum stored tokens; the bucket starts full.
            refill_tokens: Tokens restored per `refill_interval_seconds`; `0` disables refill.
            refill_interval_seconds: Refill period length.
            clock: Monotonic clock returning seconds.
        """

        if capacity <= 0:
            raise ValueError("`capacity` must be a positive integer.")
        if refill_tokens < 0:
            raise ValueError("`refill_tokens` must be non-negative.")
        if refill_interval_seconds <= 0:
            raise ValueError("`refill_interval_seconds` must be positive.")
        self.capacity = capacity
        self.refill_tokens = refill_tokens
        self.refill_interval_seconds = refill_interval_seconds
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._condition = threading.Condition()

    @property
    def available_tokens(self) -> float:
        """Return the current token count after applying pending refill."""

        with self._condition:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._last_refill = now
        if self.refill_tokens <= 0 or elapsed <= 0.0:
            return
        rate = self.refill_tokens / self.refill_interval_seconds
        self._tokens = min(float(self.capacity), self._tokens + elapsed * rate)

    def _seconds_until_token(self) -> float | None:
        """Return wait time for the next whole token, or `None` when refill is disabled."""

        if self.refill_tokens <= 0:
            return None
        missing = 1.0 - self._tokens
        rate = self.refill_tokens / self.refill_interval_seconds
        return max(missing / rate, 0.001)

    def acquire(self, timeout: float | None = None) -> bool:
        """Take one token, waiting up to `timeout` seconds.

        Returns `False` on expiry, or at once when an empty bucket has refill
        disabled and no timeout bounds the wait.
        """

        deadline = None if timeout is None else self._clock() + timeout
        with self._condition:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return True

                wait_seconds = self._seconds_until_token()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0.0:
                        return False
                    wait_seconds = remaining if wait_seconds is None else min(wait_seconds, remaining)
                if wait_seconds is None:
                    # No refill and no deadline: the bucket can never recover.
                    return False
                self._condition.wait(wait_seconds)


class ConcurrencyLimiter:
    """Counting limiter whose ceiling can be lowered or raised at runtime."""

    def __init__(
        self,
        max_concurrent: int,
        *,
        min_concurrent: int = 1,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Initialize the limiter at its maximum ceiling."""

        if min_concurrent <= 0:
            raise ValueError("`min_concurrent` must be a positive integer.")
        if max_concurrent < min_concurrent:
            raise ValueError("`max_concurrent` must be >= `min_concurrent`.")
        self.max_concurrent = max_concurrent
        self.min_concurrent = min_concurrent
        self._clock = clock
        self._limit = max_concurrent
        self._active = 0
        self._condition = threading.Condition()

    @property
    def limit(self) -> int:
        """Return the current concurrency ceiling."""

        with self._condition:
            return self._limit

    @property
    def active(self) -> int:
        """Return the number of held slots."""

        with self._condition:
            return self._active

    def acquire(self, timeout: float | None = None) -> bool:
        """Take one slot, waiting up to `timeout` seconds; return `False` on expiry."""

        deadline = None if timeout is None else self._clock() + timeout
        with self._condition:
            while self._active >= self._limit:
                if deadline is None:
                    self._condition.wait()
                    continue
                remaining = deadline - self._clock()
                if remaining <= 0.0:
                    return False
                self._condition.wait(remaining)
            self._active += 1
            return True

    def release(self) -> None:
        """Release one held slot and wake one waiter."""

        with self._condition:
            if self._active <= 0:
                raise RuntimeError("ConcurrencyLimiter released more slots than acquired.")
            self._active -= 1
            self._condition.notify()

    @contextmanager
    def slot(self, timeout: float | None = None) -> Iterator[bool]:
        """Context manager yielding whether a slot was acquired; releases on exit."""

        acquired = self.acquire(timeout)
        try:
            yield acquired
        finally:
            if acquired:
                self.release()

    def set_limit(self, limit: int) -> int:
        """Clamp and apply a new ceiling; return the applied value.

        Lowering the ceiling never interrupts held slots; it only blocks new ones.
        """

        with self._condition:
            self._limit = max(self.min_concurrent, min(self.max_concurrent, int(limit)))
            self._condition.notify_all()
            return self._limit


@dataclass(slots=True)
class AdaptiveConcurrencyController:
    """Error-driven control loop that adjusts a `ConcurrencyLimiter` ceiling.

    When errors inside `window_seconds` reach `error_threshold_ratio * limit`,
    the ceiling drops by `decrease_step`. Once `cooldown_seconds` have passed
    without errors, each success raises it by `increase_step`.
    """

    limiter: ConcurrencyLimiter
    window_seconds: float = 60.0
    error_threshold_ratio: float = 0.5
    decrease_step: int = 2
    increase_step: int = 1
    cooldown_seconds: float = 30.0
    clock: Callable[[], float] = monotonic
    run_logger: RunLogger | None = None
    _errors: deque[float] = field(default_factory=deque)
    _last_error_at: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def _prune(self, now: float) -> None:
        while self._errors and now - self._errors[0] > self.window_seconds:
            self._errors.popleft()

    def record_error(self) -> None:
        """Record one provider error and lower the ceiling when the threshold is hit."""

        with self._lock:
            now = self.clock()
            self._errors.append(now)
            self._last_error_at = now
            self._prune(now)
            current = self.limiter.limit
            if len(self._errors) < self.error_threshold_ratio * current:
                return
            updated = self.limiter.set_limit(current - self.decrease_step)
            self._errors.clear()
        if updated != current and self.run_logger is not None:
            self.run_logger.log_throttle_change(current, updated)

    def record_success(self) -> None:
        """Record one provider success and recover the ceiling after the cooldown."""

        with self._lock:
            now = self.clock()
            self._prune(now)
            if self._last_error_at is not None and now - self._last_error_at < self.cooldown_seconds:
                return
            current = self.limiter.limit
            if current >= self.limiter.max_concurrent:
                return
            updated = self.limiter.set_limit(current + self.increase_step)
        if updated != current and self.run_logger is not None:
            self.run_logger.log_throttle_change(current, updated)
