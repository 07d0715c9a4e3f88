"""Retry policy and per-call retry state."""

from dataclasses import dataclass
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from netdispatch.request.constants import DEFAULT_RETRIES, DEFAULT_RETRY_DELAY_MS
from netdispatch.request.models import ErrorDescriptor, RequestConfig


@dataclass
class RetryState:
    """Mutable retry bookkeeping for one logical call.

    Created at dispatch time and mutated only by RetryPolicy. Discarded
    once the call resolves.

    Attributes:
        attempts_made: Attempts that have completed so far.
        remaining: Retries still available.
        next_delay_ms: Delay before the next scheduled attempt.
    """

    attempts_made: int = 0
    remaining: int = 0
    next_delay_ms: int = 0

    @property
    def exhausted(self) -> bool:
        """Check if no further attempt may be scheduled."""
        return self.remaining <= 0


@dataclass(frozen=True)
class RetryDecision:
    """Result of asking the policy what to do after a failed attempt."""

    retry: bool
    delay_ms: int = 0
    reason: str | None = None


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Delays are constant: every retry waits retry_delay_ms unless a
    schedule is given, in which case retry i waits schedule[i] and the
    last entry repeats.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    retries: Annotated[int, Field(ge=0)] = DEFAULT_RETRIES
    retry_delay_ms: Annotated[int, Field(ge=0)] = DEFAULT_RETRY_DELAY_MS
    schedule: tuple[Annotated[int, Field(ge=0)], ...] | None = None

    @classmethod
    def from_config(
        cls,
        config: RequestConfig,
        default_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
    ) -> "RetryPolicy":
        """Build the policy for a request config.

        Args:
            config: Request configuration.
            default_delay_ms: Delay used when the config sets none.

        Returns:
            RetryPolicy for the call.
        """
        delay = (
            config.retry_delay_ms
            if config.retry_delay_ms is not None
            else default_delay_ms
        )
        return cls(
            retries=config.retries,
            retry_delay_ms=delay,
            schedule=config.retry_schedule or None,
        )

    def new_state(self) -> RetryState:
        """Create fresh retry state for a new call."""
        return RetryState(remaining=self.retries)

    def should_retry(self, error: ErrorDescriptor, attempts_made: int) -> bool:
        """Determine if another attempt should be made.

        Args:
            error: Error from the attempt that just failed.
            attempts_made: Attempts completed, including the failed one.

        Returns:
            True if the request should be retried.
        """
        if not error.retryable:
            return False
        return attempts_made <= self.retries

    def get_delay_ms(self, retry_index: int) -> int:
        """Get the delay before a retry.

        Args:
            retry_index: Which retry this is (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        if self.schedule:
            return self.schedule[min(retry_index, len(self.schedule) - 1)]
        return self.retry_delay_ms

    def record_failure(self, state: RetryState, error: ErrorDescriptor) -> RetryDecision:
        """Update state after a failed attempt and decide what happens next.

        Args:
            state: Retry state of the call.
            error: Error from the failed attempt.

        Returns:
            RetryDecision with the delay when a retry is scheduled.
        """
        state.attempts_made += 1

        if not self.should_retry(error, state.attempts_made):
            reason = "not_retryable" if not error.retryable else "budget_exhausted"
            self.clear(state)
            return RetryDecision(retry=False, reason=reason)

        delay_ms = self.get_delay_ms(state.attempts_made - 1)
        state.remaining -= 1
        state.next_delay_ms = delay_ms
        return RetryDecision(retry=True, delay_ms=delay_ms)

    def record_terminal(self, state: RetryState) -> None:
        """Update state after an attempt that succeeded or was aborted.

        Args:
            state: Retry state of the call.
        """
        state.attempts_made += 1
        self.clear(state)

    def clear(self, state: RetryState) -> None:
        """Stop scheduling further attempts for a call.

        Args:
            state: Retry state of the call.
        """
        state.remaining = 0
        state.next_delay_ms = 0
