"""RetryController: bounded retries with exponential backoff.

Wraps a single action's work. Each attempt is a fresh, independent call:

  - up to ``max_retries + 1`` attempts in total
  - an attempt fails if it raises, times out, or reports ``success=False``
  - backoff before attempt n (n >= 2) is ``base_delay * 2**(n-2)``,
    capped at ``max_delay``
  - a cancellation event is observed between attempts, never mid-attempt

The safety gate is not part of this loop: it runs once, before the first
attempt, in ``BaseAgent.execute``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from warden.models import Outcome
from warden.utils.logging import get_logger

log = get_logger(__name__)

AttemptFn = Callable[[], Awaitable[Outcome]]


@dataclass(frozen=True)
class RetryReport:
    """Result of the whole retry loop."""

    outcome: Outcome | None
    attempts: int
    cancelled: bool = False
    error: str = ""
    error_type: str = ""
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is not None and self.outcome.success


class RetryController:
    """Runs one unit of work with a bounded attempt budget."""

    def __init__(
        self,
        *,
        max_retries: int,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    @property
    def max_attempts(self) -> int:
        return self._max_retries + 1

    def delay_before(self, attempt: int) -> float:
        """Backoff in seconds before ``attempt`` (1-based). Zero for the first."""
        if attempt <= 1:
            return 0.0
        return min(self._base_delay * (2 ** (attempt - 2)), self._max_delay)

    async def run(
        self,
        attempt_fn: AttemptFn,
        *,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
        label: str = "",
    ) -> RetryReport:
        """Run ``attempt_fn`` until it succeeds or the budget is exhausted."""
        total_start = time.monotonic()
        last_outcome: Outcome | None = None
        last_error = ""
        last_error_type = ""
        attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.delay_before(attempt)
                log.warning(
                    "retry_scheduled",
                    action=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_s=delay,
                    error_type=last_error_type,
                    error=last_error,
                )
                await self._backoff(delay, cancel_event)

            if cancel_event is not None and cancel_event.is_set():
                log.info("retry_cancelled", action=label, attempts=attempts)
                return RetryReport(
                    outcome=last_outcome,
                    attempts=attempts,
                    cancelled=True,
                    error=last_error or "cancelled",
                    error_type=last_error_type or "Cancelled",
                    duration_ms=_elapsed_ms(total_start),
                )

            attempts = attempt
            start = time.monotonic()
            try:
                outcome = await asyncio.wait_for(attempt_fn(), timeout=timeout)
            except TimeoutError:
                last_error = f"timeout after {timeout} seconds"
                last_error_type = "TimeoutError"
                last_outcome = None
            except Exception as exc:
                last_error_type = type(exc).__name__
                last_error = str(exc)[:500]
                last_outcome = None
            else:
                last_outcome = outcome
                if outcome.success:
                    if attempt > 1:
                        log.info(
                            "retry_success",
                            action=label,
                            attempt=attempt,
                            duration_ms=_elapsed_ms(start),
                        )
                    return RetryReport(
                        outcome=outcome,
                        attempts=attempts,
                        duration_ms=_elapsed_ms(total_start),
                    )
                last_error = outcome.message or "attempt reported failure"
                last_error_type = "AttemptFailed"

            log.warning(
                "attempt_failed",
                action=label,
                attempt=attempt,
                error_type=last_error_type,
                error=last_error,
                duration_ms=_elapsed_ms(start),
            )

        log.error(
            "retries_exhausted",
            action=label,
            attempts=attempts,
            error_type=last_error_type,
            error=last_error,
        )
        return RetryReport(
            outcome=last_outcome,
            attempts=attempts,
            error=last_error,
            error_type=last_error_type,
            duration_ms=_elapsed_ms(total_start),
        )

    @staticmethod
    async def _backoff(delay: float, cancel_event: asyncio.Event | None) -> None:
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        # Wake up early when cancelled during the backoff
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            pass


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
