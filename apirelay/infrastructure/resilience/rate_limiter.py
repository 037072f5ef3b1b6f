"""Implementation of a per-scope sliding window rate limiter.

Controls the frequency of outgoing requests so the remote API's own
limit is never triggered. A sliding window (rather than a fixed bucket
reset) avoids admitting 2x the budget across a window boundary.
"""

import asyncio
import collections
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional, Union

from apirelay.domain.models.outcome import Admitted, Denied

logger = logging.getLogger(__name__)

DEFAULT_MAX_CALLS_PER_WINDOW = 5
DEFAULT_WINDOW_DURATION_MS = 60_000


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class RateBudget:
    """Admission state for one rate-limit scope."""
    window_duration_ms: int
    max_calls_per_window: int
    call_timestamps: Deque[float] = field(default_factory=collections.deque)

    def __post_init__(self) -> None:
        if self.max_calls_per_window <= 0 or self.window_duration_ms <= 0:
            raise ValueError("Max calls and window duration must be positive.")

    def prune(self, now: float) -> None:
        """Removes timestamps that have aged out of the window (now - window, now]."""
        while self.call_timestamps and self.call_timestamps[0] <= now - self.window_duration_ms:
            self.call_timestamps.popleft()

    def wait_ms(self, now: float) -> float:
        if len(self.call_timestamps) < self.max_calls_per_window:
            return 0.0
        # The oldest entry is the one that has to slide out
        return max(0.0, self.call_timestamps[0] + self.window_duration_ms - now)


class SlidingWindowRateLimiter:
    """Sliding window rate limiter with one budget per scope.

    Admission checks on the same scope are serialized by a per-scope lock;
    checks on different scopes do not contend.
    """

    def __init__(
        self,
        max_calls_per_window: int = DEFAULT_MAX_CALLS_PER_WINDOW,
        window_duration_ms: int = DEFAULT_WINDOW_DURATION_MS,
        clock: Callable[[], float] = monotonic_ms,
    ):
        """Initializes the rate limiter.

        Args:
            max_calls_per_window: Default budget size for scopes without
                their own configuration.
            window_duration_ms: Default window length in milliseconds.
            clock: Returns the current time in milliseconds.
        """
        if max_calls_per_window <= 0 or window_duration_ms <= 0:
            raise ValueError("Max calls and window duration must be positive.")
        self.max_calls_per_window = max_calls_per_window
        self.window_duration_ms = window_duration_ms
        self._clock = clock
        self._budgets: Dict[str, RateBudget] = {}
        self._scope_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        logger.info(
            f"RateLimiter initialized: default {max_calls_per_window} calls / {window_duration_ms} ms"
        )

    def configure_scope(self, scope: str, max_calls_per_window: int, window_duration_ms: int) -> None:
        """Gives `scope` its own budget size. Existing timestamps are kept."""
        budget = RateBudget(window_duration_ms=window_duration_ms, max_calls_per_window=max_calls_per_window)
        with self._registry_lock:
            current = self._budgets.get(scope)
            if current is not None:
                budget.call_timestamps.extend(current.call_timestamps)
            self._budgets[scope] = budget
            self._scope_locks.setdefault(scope, threading.Lock())
        logger.info(f"Rate budget for scope '{scope}': {max_calls_per_window} calls / {window_duration_ms} ms")

    def _budget_for(self, scope: str):
        with self._registry_lock:
            budget = self._budgets.get(scope)
            if budget is None:
                budget = RateBudget(
                    window_duration_ms=self.window_duration_ms,
                    max_calls_per_window=self.max_calls_per_window,
                )
                self._budgets[scope] = budget
            lock = self._scope_locks.setdefault(scope, threading.Lock())
        return budget, lock

    def try_acquire(self, scope: str) -> Union[Admitted, Denied]:
        """Admits and records a call for `scope`, or denies it. Never blocks on time."""
        budget, lock = self._budget_for(scope)
        with lock:
            now = self._clock()
            budget.prune(now)
            if len(budget.call_timestamps) < budget.max_calls_per_window:
                budget.call_timestamps.append(now)
                logger.debug(
                    f"Rate limit permission granted for '{scope}' "
                    f"({len(budget.call_timestamps)}/{budget.max_calls_per_window})."
                )
                return Admitted()
            retry_after_ms = budget.wait_ms(now)
        logger.debug(f"Rate limit reached for '{scope}'. Retry after {retry_after_ms:.0f} ms.")
        return Denied(retry_after_ms=retry_after_ms)

    def peek_wait_ms(self, scope: str) -> float:
        """Estimates the wait before `scope` admits another call, without recording one."""
        budget, lock = self._budget_for(scope)
        with lock:
            now = self._clock()
            budget.prune(now)
            return budget.wait_ms(now)

    def in_flight_count(self, scope: str) -> int:
        """Number of calls currently counted against `scope`'s window."""
        budget, lock = self._budget_for(scope)
        with lock:
            budget.prune(self._clock())
            return len(budget.call_timestamps)

    async def wait_for_permission(self, scope: str, timeout_s: Optional[float] = None) -> None:
        """Waits until `scope` admits a call, then records it.

        This is a convenience for callers that prefer queuing over failing
        fast; the dispatcher itself never waits.

        Raises:
            asyncio.TimeoutError: If permission is not granted within timeout_s.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout_s is None else loop.time() + timeout_s
        while True:
            decision = self.try_acquire(scope)
            if decision.admitted:
                return
            wait_s = decision.retry_after_ms / 1000.0
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0 or wait_s > remaining:
                    raise asyncio.TimeoutError(f"Rate limit for '{scope}' not cleared within {timeout_s}s")
            logger.debug(f"Rate limit reached for '{scope}'. Waiting for {wait_s:.2f} seconds.")
            # Loop again to re-check after waiting
            await asyncio.sleep(wait_s)
