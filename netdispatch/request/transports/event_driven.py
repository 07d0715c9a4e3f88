"""Event-driven transport: a streamed exchange with progress notifications."""

import asyncio

import httpx

from netdispatch.request.constants import DEFAULT_CHUNK_SIZE
from netdispatch.request.models import Failure, Outcome, RequestConfig
from netdispatch.request.state_machine import AttemptStateMachine
from netdispatch.request.transports.base import BaseTransport


class EventDrivenTransport(BaseTransport):
    """Transport that reads the body chunk by chunk and emits events.

    Each attempt moves IDLE -> SENT -> LOADED | ERRORED | TIMED_OUT, with
    ABORTED reachable when the cancellation token fires before sending,
    while waiting for the response, or between chunks. Every received
    chunk fires ``on_progress(loaded, total)``.
    """

    name = "event_driven"

    async def send(self, config: RequestConfig, attempt: int = 0) -> Outcome:
        """Perform one attempt.

        Args:
            config: Request configuration.
            attempt: Attempt number (0-indexed).

        Returns:
            Success or Failure for this attempt.
        """
        machine = self._new_state_machine(config, attempt)

        if config.is_cancelled:
            machine.to_aborted()
            return self._aborted(config)

        prepared = self._prepare(config, machine)
        if isinstance(prepared, Failure):
            return prepared

        async with self._client() as client:
            request = self._build_request(client, config, prepared, machine)
            if isinstance(request, Failure):
                return request

            machine.to_sent()
            try:
                async with asyncio.timeout(self._timeout_seconds(config)):
                    exchanged = await self._run_cancellable(
                        self._exchange(client, request, config), config.cancel_token
                    )
            except (TimeoutError, httpx.TimeoutException):
                machine.to_timed_out()
                return self._timed_out(config)
            except Exception as e:  # noqa: BLE001
                return self._on_error(config, machine, e)

        response, body = exchanged if exchanged is not None else (None, None)
        if response is None or body is None:
            machine.to_aborted()
            return self._aborted(config)

        machine.to_loaded()
        return self._complete(config, response, body)

    def _on_error(
        self,
        config: RequestConfig,
        machine: AttemptStateMachine,
        exc: Exception,
    ) -> Failure:
        """Handle a network-level failure."""
        machine.to_errored()
        return self._errored(config, exc)

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        config: RequestConfig,
    ) -> tuple[httpx.Response, bytes | None]:
        """Send the request and stream its body."""
        response = await client.send(request, stream=True)
        try:
            body = await self._read_with_progress(response, config)
        finally:
            await response.aclose()
        return response, body

    async def _read_with_progress(
        self,
        response: httpx.Response,
        config: RequestConfig,
    ) -> bytes | None:
        """Read the body, firing progress and checking for cancellation.

        ``loaded`` counts decoded body bytes, so ``total`` is only known
        when the body is sent without a Content-Encoding.

        Args:
            response: Streaming response.
            config: Request configuration.

        Returns:
            The body bytes, or None if the token fired mid-read.
        """
        total = self._expected_length(response)
        chunks: list[bytes] = []
        loaded = 0

        async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            chunks.append(chunk)
            loaded += len(chunk)
            if config.on_progress is not None:
                config.on_progress(loaded, total)
            if config.is_cancelled:
                return None

        return b"".join(chunks)

    @staticmethod
    def _expected_length(response: httpx.Response) -> int | None:
        if response.headers.get("content-encoding"):
            return None
        value = response.headers.get("content-length")
        if value is None or not value.isdigit():
            return None
        return int(value)
