"""Transport contract and shared request plumbing."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from typing import Any, ClassVar, Protocol, TypeVar, runtime_checkable

import httpx
import structlog

from netdispatch.request.body import build_body_kwargs
from netdispatch.request.cancellation import CancellationToken
from netdispatch.request.constants import HTTP_STATUS_OK_MAX, HTTP_STATUS_OK_MIN
from netdispatch.request.decoder import ResponseDecoder
from netdispatch.request.errors import (
    ResponseDecodeError,
    abort_error,
    configuration_error,
    network_error,
    status_error,
    timeout_error,
)
from netdispatch.request.metrics import DispatchMetrics
from netdispatch.request.models import Failure, Outcome, RequestConfig, Success, find_header
from netdispatch.request.redact import redact_headers, redact_url
from netdispatch.request.state_machine import AttemptStateMachine
from netdispatch.settings import DispatchSettings


logger = structlog.get_logger()

T = TypeVar("T")


@runtime_checkable
class Transport(Protocol):
    """Protocol for the mechanisms that physically perform one attempt.

    Any transport that implements ``send`` can be selected by the
    dispatcher; retries are driven from outside by re-calling ``send``.
    """

    name: str

    async def send(self, config: RequestConfig, attempt: int = 0) -> Outcome:
        """Perform one attempt.

        Args:
            config: Request configuration.
            attempt: Attempt number (0-indexed).

        Returns:
            Success or Failure for this attempt. Never raises for
            transport or decode problems.
        """
        ...


class BaseTransport(ABC):
    """Abstract base class for transports.

    Holds the pieces both transports share: client construction, header
    and body preparation, and turning a received response into an Outcome.
    """

    name: ClassVar[str] = "base"

    def __init__(
        self,
        settings: DispatchSettings,
        http_transport: httpx.AsyncBaseTransport | None = None,
        decoder: ResponseDecoder | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            settings: Dispatcher settings.
            http_transport: Optional httpx transport (e.g. MockTransport).
            decoder: Response decoder; a default one is created if omitted.
        """
        self._settings = settings
        self._http_transport = http_transport
        self._decoder = decoder or ResponseDecoder()
        self._metrics = DispatchMetrics.get_instance()
        self._log = logger.bind(component="transport", transport=self.name)

    @abstractmethod
    async def send(self, config: RequestConfig, attempt: int = 0) -> Outcome:
        """Perform one attempt.

        Args:
            config: Request configuration.
            attempt: Attempt number (0-indexed).

        Returns:
            Success or Failure for this attempt.
        """

    def _client(self) -> httpx.AsyncClient:
        """Create a client for a single attempt.

        httpx timeouts are disabled; the per-attempt deadline is enforced
        with asyncio so it bounds the whole exchange.
        """
        return httpx.AsyncClient(
            base_url=self._settings.base_url,
            transport=self._http_transport,
            timeout=None,
            follow_redirects=self._settings.follow_redirects,
        )

    def _new_state_machine(self, config: RequestConfig, attempt: int) -> AttemptStateMachine:
        return AttemptStateMachine(
            url=redact_url(config.url),
            attempt=attempt,
            transport=self.name,
        )

    def _build_headers(self, config: RequestConfig) -> dict[str, str]:
        """Build request headers, adding a User-Agent unless one was given.

        Args:
            config: Request configuration.

        Returns:
            Complete headers dictionary.
        """
        headers = dict(config.headers)
        if find_header(headers, "User-Agent") is None:
            headers["User-Agent"] = self._settings.user_agent
        return headers

    def _prepare(
        self,
        config: RequestConfig,
        machine: AttemptStateMachine,
    ) -> tuple[dict[str, str], dict[str, Any]] | Failure:
        """Prepare headers and body, or fail before any I/O.

        Args:
            config: Request configuration.
            machine: State machine of the attempt.

        Returns:
            (headers, body kwargs), or a CONFIGURATION Failure when the
            body cannot be serialized.
        """
        headers = self._build_headers(config)
        try:
            body_kwargs = build_body_kwargs(config)
        except (TypeError, ValueError) as e:
            machine.to_errored()
            return Failure(
                error=configuration_error(f"request body is not serializable: {e}")
            )

        self._log.debug(
            "attempt_prepared",
            method=config.method,
            url=redact_url(config.url),
            headers=redact_headers(headers),
        )
        return headers, body_kwargs

    @staticmethod
    def _build_request(
        client: httpx.AsyncClient,
        config: RequestConfig,
        prepared: tuple[dict[str, str], dict[str, Any]],
        machine: AttemptStateMachine,
    ) -> httpx.Request | Failure:
        """Build the transport-native request, or fail before any I/O.

        Returns:
            The request, or a CONFIGURATION Failure for an unusable URL.
        """
        headers, body_kwargs = prepared
        try:
            return client.build_request(
                config.method, config.url, headers=headers, **body_kwargs
            )
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            machine.to_errored()
            return Failure(error=configuration_error(f"cannot build request: {e}"))

    @staticmethod
    def _timeout_seconds(config: RequestConfig) -> float | None:
        if config.timeout_ms is None:
            return None
        return config.timeout_ms / 1000.0

    @staticmethod
    async def _run_cancellable(
        exchange: Coroutine[Any, Any, T],
        token: CancellationToken | None,
    ) -> T | None:
        """Run an exchange as a task, or stop it when the token fires first.

        The task is cancelled on every exit path that leaves it running,
        including an enclosing ``asyncio.timeout``.

        Args:
            exchange: Coroutine performing the network exchange.
            token: Optional cancellation token.

        Returns:
            The exchange result, or None if the token fired first.
        """
        task = asyncio.ensure_future(exchange)
        try:
            if token is None:
                return await task

            cancelled = asyncio.ensure_future(token.wait())
            try:
                done, _ = await asyncio.wait(
                    {task, cancelled}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                cancelled.cancel()

            if task in done:
                return task.result()
            return None
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    def _complete(
        self,
        config: RequestConfig,
        response: httpx.Response,
        body: bytes,
    ) -> Outcome:
        """Turn a fully received response into an Outcome.

        A non-2xx body is still decoded so error bodies are not discarded;
        if that decode fails the status failure is reported without a body.

        Args:
            config: Request configuration.
            response: Received response (body already consumed).
            body: Response body bytes.

        Returns:
            Success for 2xx, Failure tagged STATUS or DECODE otherwise.
        """
        status_code = response.status_code
        status_text = response.reason_phrase
        ok = HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX
        self._metrics.record_response(status_code, len(body))

        try:
            value = self._decoder.decode(
                body,
                config.response_type,
                content_type=response.headers.get("content-type"),
                encoding=response.charset_encoding,
            )
        except ResponseDecodeError as e:
            if ok:
                return Failure(error=e.to_descriptor())
            value = None

        if not ok:
            return Failure(error=status_error(status_code, status_text, value))

        return Success(
            value=value,
            status_code=status_code,
            status_text=status_text,
            headers=dict(response.headers),
            url=str(response.url),
        )

    @staticmethod
    def _aborted(config: RequestConfig) -> Failure:
        reason = config.cancel_token.reason if config.cancel_token else None
        return Failure(error=abort_error(reason))

    @staticmethod
    def _timed_out(config: RequestConfig) -> Failure:
        return Failure(error=timeout_error(config.timeout_ms))

    def _errored(self, config: RequestConfig, exc: BaseException) -> Failure:
        self._log.debug(
            "attempt_network_error",
            url=redact_url(config.url),
            error_type=type(exc).__name__,
        )
        return Failure(error=network_error(str(exc) or type(exc).__name__))
