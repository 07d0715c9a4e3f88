"""Metrics collection for the request dispatch layer."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, ClassVar

from netdispatch.request.models import ErrorClass


@dataclass
class DispatchMetrics:
    """Counters for dispatched calls and the attempts behind them.

    One instance per process. Attempt-level counters are keyed by status
    code and by transport; call-level counters by final error class.
    """

    attempts_by_transport: Counter[str] = field(default_factory=Counter)
    responses_by_status: Counter[int] = field(default_factory=Counter)
    failures_by_class: Counter[str] = field(default_factory=Counter)
    retries: int = 0
    bytes_received: int = 0
    calls: int = 0
    call_duration_ms: float = 0.0

    _instance: ClassVar["DispatchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "DispatchMetrics":
        """Get the process-wide metrics instance, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the current instance so the next call starts from zero."""
        cls._instance = None

    def record_attempt(self, transport: str) -> None:
        """Record an attempt that reached a transport."""
        self.attempts_by_transport[transport] += 1

    def record_response(self, status_code: int, bytes_received: int) -> None:
        """Record an attempt that received a full response.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of body bytes received.
        """
        self.responses_by_status[status_code] += 1
        self.bytes_received += bytes_received

    def record_retry(self) -> None:
        """Record that a failed attempt was scheduled for another try."""
        self.retries += 1

    def record_failure(self, error_class: ErrorClass) -> None:
        """Record a call that resolved as a failure."""
        self.failures_by_class[error_class.value] += 1

    def record_dispatch(self, duration_ms: float) -> None:
        """Record a resolved call and its wall time, retries included."""
        self.calls += 1
        self.call_duration_ms += duration_ms

    @property
    def avg_duration_ms(self) -> float:
        """Mean wall time per resolved call, in milliseconds."""
        if self.calls == 0:
            return 0.0
        return self.call_duration_ms / self.calls

    def to_dict(self) -> dict[str, Any]:
        """Export a snapshot of every counter, plus the mean call duration."""
        return {
            "attempts_by_transport": dict(self.attempts_by_transport),
            "responses_by_status": dict(self.responses_by_status),
            "failures_by_class": dict(self.failures_by_class),
            "retries": self.retries,
            "bytes_received": self.bytes_received,
            "calls": self.calls,
            "call_duration_ms": self.call_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
        }
