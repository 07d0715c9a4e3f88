"""State machine for a single request attempt."""

from enum import Enum

import structlog


logger = structlog.get_logger()


class AttemptState(str, Enum):
    """State of one send-through-response cycle.

    - IDLE: Request built, nothing sent yet
    - SENT: Headers and body flushed, waiting on the response
    - LOADED: Response fully received (any status)
    - ERRORED: Network-level failure
    - TIMED_OUT: Attempt deadline exceeded
    - ABORTED: Cancellation token observed
    """

    IDLE = "IDLE"
    SENT = "SENT"
    LOADED = "LOADED"
    ERRORED = "ERRORED"
    TIMED_OUT = "TIMED_OUT"
    ABORTED = "ABORTED"


TERMINAL_STATES = frozenset(
    {
        AttemptState.LOADED,
        AttemptState.ERRORED,
        AttemptState.TIMED_OUT,
        AttemptState.ABORTED,
    }
)

# Valid state transitions
_VALID_TRANSITIONS: dict[AttemptState, set[AttemptState]] = {
    AttemptState.IDLE: {
        AttemptState.SENT,
        AttemptState.ERRORED,
        AttemptState.ABORTED,
    },
    AttemptState.SENT: {
        AttemptState.LOADED,
        AttemptState.ERRORED,
        AttemptState.TIMED_OUT,
        AttemptState.ABORTED,
    },
    AttemptState.LOADED: set(),  # Terminal state
    AttemptState.ERRORED: set(),  # Terminal state
    AttemptState.TIMED_OUT: set(),  # Terminal state
    AttemptState.ABORTED: set(),  # Terminal state
}


class AttemptStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(
        self,
        url: str,
        from_state: AttemptState,
        to_state: AttemptState,
    ) -> None:
        """Initialize the transition error.

        Args:
            url: URL of the attempt.
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.url = url
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal state transition for request to '{url}': "
            f"{from_state.value} -> {to_state.value}"
        )


class AttemptStateMachine:
    """Manages state transitions for one request attempt.

    Enforces valid transitions and logs all state changes.
    """

    def __init__(
        self,
        url: str,
        attempt: int,
        transport: str,
    ) -> None:
        """Initialize the state machine.

        Args:
            url: Redacted URL of the request.
            attempt: Attempt number (0-indexed).
            transport: Name of the transport driving the attempt.
        """
        self._url = url
        self._state = AttemptState.IDLE
        self._log = logger.bind(
            component="transport",
            transport=transport,
            url=url,
            attempt=attempt,
        )

    @property
    def state(self) -> AttemptState:
        """Get the current state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in TERMINAL_STATES

    def can_transition_to(self, target: AttemptState) -> bool:
        """Check if a transition to the target state is valid.

        Args:
            target: The target state.

        Returns:
            True if the transition is valid.
        """
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: AttemptState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            AttemptStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition_to(target):
            self._log.error(
                "illegal_state_transition",
                from_state=self._state.value,
                to_state=target.value,
            )
            raise AttemptStateTransitionError(
                url=self._url,
                from_state=self._state,
                to_state=target,
            )

        old_state = self._state
        self._state = target

        self._log.debug(
            "attempt_state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )

    def to_sent(self) -> None:
        """Transition to SENT state."""
        self.transition_to(AttemptState.SENT)

    def to_loaded(self) -> None:
        """Transition to LOADED state."""
        self.transition_to(AttemptState.LOADED)

    def to_errored(self) -> None:
        """Transition to ERRORED state."""
        self.transition_to(AttemptState.ERRORED)

    def to_timed_out(self) -> None:
        """Transition to TIMED_OUT state."""
        self.transition_to(AttemptState.TIMED_OUT)

    def to_aborted(self) -> None:
        """Transition to ABORTED state."""
        self.transition_to(AttemptState.ABORTED)
