"""Caller-side service for re-dispatching calls that may succeed later.

The dispatcher never waits or retries transport errors itself. This
service is the optional outer layer that does: it backs off on
RateLimited (honouring the retry-after hint) and on TransportFailure
(exponential backoff), and never retries outcomes that need the caller
to change something.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from apirelay.core.services.dispatcher import RequestDispatcher
from apirelay.domain.events.api_events import RetryScheduled
from apirelay.domain.interfaces.events import EventPublisher, NullEventPublisher
from apirelay.domain.models.common import BackoffPolicy
from apirelay.domain.models.outcome import CallOutcome, RateLimited

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_POLICY: BackoffPolicy = {"max_retries": 3, "initial_delay": 1.0, "factor": 2.0}


class ApiRetryService:
    """Handles call execution with retries for outcomes that are retryable later."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        max_retries: int = DEFAULT_BACKOFF_POLICY["max_retries"],
        initial_backoff_s: float = DEFAULT_BACKOFF_POLICY["initial_delay"],
        backoff_factor: float = DEFAULT_BACKOFF_POLICY["factor"],
        max_backoff_s: Optional[float] = 60.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        event_publisher: Optional[EventPublisher] = None,
    ):
        """Initializes the ApiRetryService.

        Args:
            dispatcher: The dispatcher to re-invoke.
            max_retries: Maximum number of retry attempts after the first call.
            initial_backoff_s: Initial delay in seconds for the first retry.
            backoff_factor: Multiplier for the backoff delay (e.g., 2 for exponential).
            max_backoff_s: Cap for any single delay; None for no cap.
            sleep: Awaitable sleep function (injectable for tests).
            event_publisher: Receives RetryScheduled events.
        """
        if max_retries < 0:
            raise ValueError("max_retries must not be negative.")
        self.dispatcher = dispatcher
        self.max_retries = max_retries
        self.initial_backoff_s = initial_backoff_s
        self.backoff_factor = backoff_factor
        self.max_backoff_s = max_backoff_s
        self._sleep = sleep
        self._events = event_publisher or NullEventPublisher()
        logger.info(
            f"ApiRetryService initialized: max_retries={max_retries}, "
            f"initial_backoff={initial_backoff_s}s, factor={backoff_factor}"
        )

    @classmethod
    def from_policy(cls, dispatcher: RequestDispatcher, policy: BackoffPolicy, **kwargs: Any) -> "ApiRetryService":
        return cls(
            dispatcher,
            max_retries=policy["max_retries"],
            initial_backoff_s=policy["initial_delay"],
            backoff_factor=policy["factor"],
            **kwargs,
        )

    def _delay_for(self, outcome: CallOutcome, backoff_s: float) -> float:
        delay = backoff_s
        if isinstance(outcome, RateLimited) and outcome.retry_after_ms is not None:
            delay = outcome.retry_after_ms / 1000.0
        if self.max_backoff_s is not None:
            delay = min(delay, self.max_backoff_s)
        return max(0.0, delay)

    async def execute_with_retry(self, operation_name: str, *args: Any, **kwargs: Any) -> CallOutcome:
        """Dispatches the call, retrying while the outcome is retryable later.

        Returns:
            The first non-retryable outcome, or the last outcome once
            max_retries is exhausted.
        """
        current_backoff = self.initial_backoff_s
        outcome = await self.dispatcher.dispatch(operation_name, *args, **kwargs)

        for attempt in range(1, self.max_retries + 1):
            if outcome.succeeded or not outcome.retryable_later:
                return outcome
            delay = self._delay_for(outcome, current_backoff)
            logger.warning(
                f"Retryable outcome '{outcome.kind}' for '{operation_name}' "
                f"(attempt {attempt}/{self.max_retries}). Waiting {delay:.2f}s..."
            )
            self._events.publish(RetryScheduled(
                operation=operation_name, attempt_number=attempt, delay_seconds=delay, reason=outcome.kind
            ))
            await self._sleep(delay)
            current_backoff *= self.backoff_factor
            outcome = await self.dispatcher.dispatch(operation_name, *args, **kwargs)

        if not outcome.succeeded and outcome.retryable_later:
            logger.error(f"Max retries ({self.max_retries}) reached for '{operation_name}'. Last outcome: {outcome.kind}")
        return outcome
