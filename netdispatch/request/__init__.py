"""HTTP request dispatch with two transports and bounded retries.

This module provides a configuration-driven request layer with:
- A single async entry point resolving to Success or Failure
- Streaming and event-driven transports behind one contract
- Constant-delay retry policy with per-call retry state
- Response decoding by declared response type
- Cooperative cancellation
- Header and URL redaction for logging
- Metrics collection for observability
"""

from netdispatch.request.cancellation import CancellationToken
from netdispatch.request.decoder import ResponseDecoder
from netdispatch.request.dispatcher import (
    Dispatcher,
    delete,
    dispatch,
    get,
    get_default_dispatcher,
    patch,
    post,
    put,
    set_default_dispatcher,
)
from netdispatch.request.errors import ResponseDecodeError
from netdispatch.request.metrics import DispatchMetrics
from netdispatch.request.models import (
    Blob,
    ErrorClass,
    ErrorDescriptor,
    Failure,
    FormData,
    Outcome,
    RequestConfig,
    ResponseType,
    Success,
)
from netdispatch.request.query import append_query, build_query_string
from netdispatch.request.redact import redact_headers, redact_url
from netdispatch.request.retry import RetryDecision, RetryPolicy, RetryState
from netdispatch.request.state_machine import (
    AttemptState,
    AttemptStateMachine,
    AttemptStateTransitionError,
)
from netdispatch.request.transports import (
    EventDrivenTransport,
    StreamingTransport,
    Transport,
)


__all__ = [
    # Dispatcher
    "Dispatcher",
    "dispatch",
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "get_default_dispatcher",
    "set_default_dispatcher",
    # Transports
    "Transport",
    "StreamingTransport",
    "EventDrivenTransport",
    # Models
    "RequestConfig",
    "ResponseType",
    "FormData",
    "Blob",
    "Outcome",
    "Success",
    "Failure",
    "ErrorDescriptor",
    "ErrorClass",
    "CancellationToken",
    # Retry
    "RetryPolicy",
    "RetryState",
    "RetryDecision",
    # Attempt state
    "AttemptState",
    "AttemptStateMachine",
    "AttemptStateTransitionError",
    # Decoding
    "ResponseDecoder",
    "ResponseDecodeError",
    # Query strings
    "append_query",
    "build_query_string",
    # Metrics
    "DispatchMetrics",
    # Redaction
    "redact_headers",
    "redact_url",
]
