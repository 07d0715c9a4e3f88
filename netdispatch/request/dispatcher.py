"""Public entry point: dispatch a request config over the selected transport."""

import asyncio
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from netdispatch.request.cancellation import CancellationToken
from netdispatch.request.constants import CONTENT_TYPE_HEADER, CONTENT_TYPE_JSON
from netdispatch.request.errors import abort_error, configuration_error
from netdispatch.request.metrics import DispatchMetrics
from netdispatch.request.models import (
    ErrorCallback,
    ErrorClass,
    Failure,
    FormData,
    Outcome,
    RequestConfig,
    Success,
    find_header,
)
from netdispatch.request.query import append_query
from netdispatch.request.redact import redact_url
from netdispatch.request.retry import RetryPolicy
from netdispatch.request.transports import (
    EventDrivenTransport,
    StreamingTransport,
    Transport,
)
from netdispatch.settings import DispatchSettings, get_settings


logger = structlog.get_logger()


class Dispatcher:
    """Issues requests over one of two interchangeable transports.

    Provides a single async entry point that:
    - Validates the request config before any I/O
    - Selects the streaming or event-driven transport
    - Retries failed attempts with a constant delay
    - Resolves every call to exactly one Success or Failure
    """

    def __init__(
        self,
        settings: DispatchSettings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            settings: Dispatcher settings; loaded from the environment if omitted.
            http_transport: Optional httpx transport shared by both
                transports, e.g. ``httpx.MockTransport`` in tests.
        """
        self._settings = settings or get_settings()
        self._streaming = StreamingTransport(self._settings, http_transport)
        self._event_driven = EventDrivenTransport(self._settings, http_transport)
        self._metrics = DispatchMetrics.get_instance()
        self._log = logger.bind(component="dispatch")

    @property
    def settings(self) -> DispatchSettings:
        """Get the dispatcher settings."""
        return self._settings

    def select_transport(self, config: RequestConfig) -> Transport:
        """Pick the transport for a config.

        Args:
            config: Request configuration.

        Returns:
            Streaming transport when use_fetch is set, else event-driven.
        """
        if config.use_fetch:
            return self._streaming
        return self._event_driven

    async def dispatch(self, config: RequestConfig | Mapping[str, Any]) -> Outcome:
        """Dispatch a request.

        Args:
            config: RequestConfig, or a mapping of its fields.

        Returns:
            Exactly one Success or Failure. Errors are never raised.
        """
        start_time_ns = time.perf_counter_ns()

        resolved = self._resolve_config(config)
        if isinstance(resolved, Failure):
            self._deliver_failure(resolved, _error_callback_of(config))
            return resolved

        outcome = await self._run(resolved)

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_dispatch(duration_ms)

        log = self._log.bind(
            method=resolved.method,
            url=redact_url(resolved.url),
            attempts=outcome.attempts,
            duration_ms=round(duration_ms, 2),
        )

        if isinstance(outcome, Success):
            log.info("dispatch_complete", status_code=outcome.status_code)
            if resolved.on_success is not None:
                self._notify("on_success", resolved.on_success, outcome.value)
            return outcome

        log.info(
            "dispatch_complete",
            status_code=outcome.error.status_code,
            error_class=outcome.error.error_class.value,
        )
        self._deliver_failure(outcome, resolved.on_error)
        return outcome

    async def get(
        self, url: str, query: Mapping[str, Any] | None = None, **overrides: Any
    ) -> Outcome:
        """Send a GET request with query data encoded into the URL."""
        return await self._dispatch_built(_with_query, "GET", url, query, overrides)

    async def delete(
        self, url: str, query: Mapping[str, Any] | None = None, **overrides: Any
    ) -> Outcome:
        """Send a DELETE request with query data encoded into the URL."""
        return await self._dispatch_built(_with_query, "DELETE", url, query, overrides)

    async def post(self, url: str, data: Any = None, **overrides: Any) -> Outcome:
        """Send a POST request with a JSON body by default."""
        return await self._dispatch_built(_with_body, "POST", url, data, overrides)

    async def put(self, url: str, data: Any = None, **overrides: Any) -> Outcome:
        """Send a PUT request with a JSON body by default."""
        return await self._dispatch_built(_with_body, "PUT", url, data, overrides)

    async def patch(self, url: str, data: Any = None, **overrides: Any) -> Outcome:
        """Send a PATCH request with a JSON body by default."""
        return await self._dispatch_built(_with_body, "PATCH", url, data, overrides)

    async def _dispatch_built(
        self,
        build: "ConfigBuilder",
        method: str,
        url: str,
        payload: Any,
        overrides: Mapping[str, Any],
    ) -> Outcome:
        """Build a verb helper's config and dispatch it.

        Helper arguments of the wrong shape resolve as a CONFIGURATION
        Failure, the same as an invalid config passed to ``dispatch``.
        """
        try:
            config = build(method, url, payload, overrides)
        except (TypeError, ValueError) as e:
            failure = Failure(error=configuration_error(str(e)), attempts=0)
            self._deliver_failure(failure, _error_callback_of(overrides))
            return failure
        return await self.dispatch(config)

    def _resolve_config(
        self, config: RequestConfig | Mapping[str, Any]
    ) -> RequestConfig | Failure:
        """Validate a config, converting validation errors to a Failure.

        Args:
            config: RequestConfig or mapping.

        Returns:
            Validated config, or a CONFIGURATION Failure with zero attempts.
        """
        if isinstance(config, RequestConfig):
            return config
        try:
            return RequestConfig.model_validate(dict(config))
        except (ValidationError, TypeError, ValueError) as e:
            return Failure(error=configuration_error(_describe_error(e)), attempts=0)

    async def _run(self, config: RequestConfig) -> Outcome:
        """Drive attempts until success, abort, or an exhausted budget.

        Args:
            config: Validated request configuration.

        Returns:
            Final Outcome with the number of attempts made.
        """
        transport = self.select_transport(config)
        policy = RetryPolicy.from_config(config, self._settings.default_retry_delay_ms)
        state = policy.new_state()
        log = self._log.bind(
            method=config.method,
            url=redact_url(config.url),
            transport=transport.name,
        )

        while True:
            if config.is_cancelled:
                policy.clear(state)
                return _abort_failure(config.cancel_token, state.attempts_made)

            outcome = await transport.send(config, attempt=state.attempts_made)

            # Rejected before any I/O; not an attempt
            if (
                isinstance(outcome, Failure)
                and outcome.error.error_class == ErrorClass.CONFIGURATION
            ):
                policy.clear(state)
                return outcome.model_copy(update={"attempts": state.attempts_made})

            self._metrics.record_attempt(transport.name)

            if isinstance(outcome, Success) or outcome.error.error_class == ErrorClass.ABORT:
                policy.record_terminal(state)
                return outcome.model_copy(update={"attempts": state.attempts_made})

            # A token signaled mid-flight outranks whatever the attempt hit
            if config.is_cancelled:
                policy.record_terminal(state)
                return _abort_failure(config.cancel_token, state.attempts_made)

            decision = policy.record_failure(state, outcome.error)
            if not decision.retry:
                log.debug(
                    "retry_not_scheduled",
                    attempts=state.attempts_made,
                    reason=decision.reason,
                    error_class=outcome.error.error_class.value,
                )
                return outcome.model_copy(update={"attempts": state.attempts_made})

            self._metrics.record_retry()
            log.warning(
                "retry_scheduled",
                attempt=state.attempts_made,
                max_retries=policy.retries,
                remaining=state.remaining,
                delay_ms=decision.delay_ms,
                error_class=outcome.error.error_class.value,
            )

            if await _wait_or_cancel(decision.delay_ms, config.cancel_token):
                policy.clear(state)
                return _abort_failure(config.cancel_token, state.attempts_made)

    def _deliver_failure(self, outcome: Failure, on_error: ErrorCallback | None) -> None:
        """Hand a failure to the error callback, or log it.

        Args:
            outcome: Final failure of the call.
            on_error: Caller's error callback, if any.
        """
        self._metrics.record_failure(outcome.error.error_class)
        if on_error is not None:
            self._notify("on_error", on_error, outcome.error)
            return
        self._log.warning(
            "dispatch_failed_unhandled",
            error_class=outcome.error.error_class.value,
            message=outcome.error.message,
            status_code=outcome.error.status_code,
            attempts=outcome.attempts,
        )

    def _notify(self, name: str, callback: Callable[[Any], None], value: Any) -> None:
        """Invoke a caller callback; its exceptions are logged, never raised.

        Args:
            name: Callback name for the log event.
            callback: Caller's callback.
            value: Argument to pass.
        """
        try:
            callback(value)
        except Exception as e:  # noqa: BLE001
            self._log.error(
                "callback_failed",
                callback=name,
                error_type=type(e).__name__,
                error=str(e),
            )


async def _wait_or_cancel(delay_ms: int, token: CancellationToken | None) -> bool:
    """Sleep for a retry delay unless the token fires first.

    Returns:
        True if the token fired during the delay.
    """
    delay = delay_ms / 1000.0
    if token is None:
        await asyncio.sleep(delay)
        return False
    try:
        async with asyncio.timeout(delay):
            await token.wait()
    except TimeoutError:
        return False
    return True


def _abort_failure(token: CancellationToken | None, attempts: int) -> Failure:
    reason = token.reason if token is not None else None
    return Failure(error=abort_error(reason), attempts=attempts)


ConfigBuilder = Callable[[str, str, Any, Mapping[str, Any]], dict[str, Any]]


def _with_query(
    method: str, url: str, query: Any, overrides: Mapping[str, Any]
) -> dict[str, Any]:
    """Build a config whose query data is encoded into the URL.

    Raises:
        TypeError: If url is not a string or query is not a mapping.
    """
    if not isinstance(url, str):
        msg = f"url must be a string, got {type(url).__name__}"
        raise TypeError(msg)
    if query is not None and not isinstance(query, Mapping):
        msg = f"query must be a mapping, got {type(query).__name__}"
        raise TypeError(msg)
    return {**overrides, "method": method, "url": append_query(url, query)}


def _with_body(
    method: str, url: str, data: Any, overrides: Mapping[str, Any]
) -> dict[str, Any]:
    """Build a body-carrying config, defaulting the content type to JSON.

    The JSON Content-Type is skipped when the caller already supplied one
    or when the body is a pre-built form payload.

    Raises:
        TypeError: If headers is given but is not a mapping.
    """
    supplied = overrides.get("headers")
    if supplied is not None and not isinstance(supplied, Mapping):
        msg = f"headers must be a mapping, got {type(supplied).__name__}"
        raise TypeError(msg)
    headers = dict(supplied or {})
    if not isinstance(data, FormData) and find_header(headers, CONTENT_TYPE_HEADER) is None:
        headers[CONTENT_TYPE_HEADER] = CONTENT_TYPE_JSON
    return {**overrides, "method": method, "url": url, "data": data, "headers": headers}


def _error_callback_of(config: RequestConfig | Mapping[str, Any]) -> ErrorCallback | None:
    """Find the error callback of a config that may have failed validation."""
    if isinstance(config, RequestConfig):
        return config.on_error
    try:
        candidate = config.get("on_error")
    except AttributeError:
        return None
    return candidate if callable(candidate) else None


def _describe_error(exc: Exception) -> str:
    """Summarize a validation error as "field: problem" pairs."""
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
    return str(exc)


_default_dispatcher: Dispatcher | None = None


def get_default_dispatcher() -> Dispatcher:
    """Get the module-level dispatcher, creating it on first use."""
    global _default_dispatcher  # noqa: PLW0603
    if _default_dispatcher is None:
        _default_dispatcher = Dispatcher()
    return _default_dispatcher


def set_default_dispatcher(dispatcher: Dispatcher | None) -> None:
    """Replace the module-level dispatcher (None resets it)."""
    global _default_dispatcher  # noqa: PLW0603
    _default_dispatcher = dispatcher


async def dispatch(config: RequestConfig | Mapping[str, Any]) -> Outcome:
    """Dispatch a request with the default dispatcher."""
    return await get_default_dispatcher().dispatch(config)


async def get(url: str, query: Mapping[str, Any] | None = None, **overrides: Any) -> Outcome:
    """Send a GET request with the default dispatcher."""
    return await get_default_dispatcher().get(url, query, **overrides)


async def delete(
    url: str, query: Mapping[str, Any] | None = None, **overrides: Any
) -> Outcome:
    """Send a DELETE request with the default dispatcher."""
    return await get_default_dispatcher().delete(url, query, **overrides)


async def post(url: str, data: Any = None, **overrides: Any) -> Outcome:
    """Send a POST request with the default dispatcher."""
    return await get_default_dispatcher().post(url, data, **overrides)


async def put(url: str, data: Any = None, **overrides: Any) -> Outcome:
    """Send a PUT request with the default dispatcher."""
    return await get_default_dispatcher().put(url, data, **overrides)


async def patch(url: str, data: Any = None, **overrides: Any) -> Outcome:
    """Send a PATCH request with the default dispatcher."""
    return await get_default_dispatcher().patch(url, data, **overrides)
