"""Bounded retry policy shared by the text and image relay paths.

Backoff strategy:
  delay = min(base * 2^attempt + jitter, max_delay)
  jitter = random(0, base * 0.5)

Attempts run sequentially. Permanent upstream errors stop the loop at once;
transient ones (network, timeout, non-2xx, malformed body) are retried until
``max_attempts`` calls have been made.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from inference_relay.core.metrics import UPSTREAM_ATTEMPTS
from inference_relay.gateway.types import (
    AttemptOutcome,
    AttemptStatus,
    ErrorKind,
    RetryConfig,
    UpstreamResult,
)

logger = logging.getLogger(__name__)

CancelProbe = Callable[[], Awaitable[bool]]


class RetryPolicy:
    """Runs an upstream attempt function under a fixed attempt budget.

    Usage:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        result = await policy.run(lambda: adapter.attempt(...), kind="text")
    """

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()
        if self.config.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @staticmethod
    def calculate_backoff(
        attempt: int,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
    ) -> float:
        """Calculate capped exponential backoff with jitter.

        Formula: min(base * 2^attempt + jitter, max_delay)
        Jitter: random(0, base * 0.5)
        """
        exponential = base_delay * (2**attempt)
        jitter = random.uniform(0, base_delay * 0.5)
        return min(exponential + jitter, max_delay)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (0-based) failed attempt."""
        return self.calculate_backoff(
            attempt=attempt,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
        )

    async def run(
        self,
        attempt_fn: Callable[[], Awaitable[AttemptOutcome]],
        kind: str = "text",
        should_cancel: CancelProbe | None = None,
    ) -> UpstreamResult:
        """Call ``attempt_fn`` until it succeeds, fails permanently, or the budget is spent."""
        made = 0
        while True:
            outcome = await attempt_fn()
            made += 1
            UPSTREAM_ATTEMPTS.labels(kind=kind, outcome=outcome.status.value).inc()

            if outcome.status == AttemptStatus.SUCCESS:
                if outcome.image:
                    return UpstreamResult.picture(outcome.image, outcome.mime_type, attempts=made)
                return UpstreamResult.text(outcome.text, attempts=made)

            if outcome.status == AttemptStatus.PERMANENT:
                logger.warning("Upstream %s call failed permanently: %s", kind, outcome.detail)
                return UpstreamResult.failure(ErrorKind.UPSTREAM_FAILURE, outcome.detail, attempts=made)

            if made >= self.config.max_attempts:
                break

            if should_cancel is not None and await should_cancel():
                logger.info("Upstream %s call cancelled after %d attempt(s)", kind, made)
                return UpstreamResult.failure(ErrorKind.CANCELLED, "Request cancelled by client", attempts=made)

            delay = self.delay_for(made - 1)
            logger.info(
                "Retrying upstream %s call (attempt %d/%d) in %.2fs: %s",
                kind,
                made + 1,
                self.config.max_attempts,
                delay,
                outcome.detail,
            )
            await asyncio.sleep(delay)

        # Budget spent: the last failure decides the error kind
        error = (
            ErrorKind.UNEXPECTED_UPSTREAM_FORMAT
            if outcome.status == AttemptStatus.MALFORMED
            else ErrorKind.UPSTREAM_FAILURE
        )
        logger.warning(
            "Upstream %s call gave up after %d attempts: %s",
            kind,
            made,
            outcome.detail,
        )
        return UpstreamResult.failure(error, outcome.detail, attempts=made)
