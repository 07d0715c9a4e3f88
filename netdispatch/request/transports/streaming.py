"""Streaming transport: a single awaited exchange that races cancellation."""

import asyncio

import httpx

from netdispatch.request.models import Failure, Outcome, RequestConfig
from netdispatch.request.transports.base import BaseTransport


class StreamingTransport(BaseTransport):
    """Transport that awaits the whole exchange as one cancellable unit.

    The cancellation token is observed before sending and during the
    in-flight await: if it fires first, the exchange task is cancelled
    and the attempt ends as an ABORT failure.
    """

    name = "streaming"

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
                    response = await self._run_cancellable(
                        client.send(request), config.cancel_token
                    )
            except (TimeoutError, httpx.TimeoutException):
                machine.to_timed_out()
                return self._timed_out(config)
            except Exception as e:  # noqa: BLE001
                machine.to_errored()
                return self._errored(config, e)

        if response is None:
            machine.to_aborted()
            return self._aborted(config)

        machine.to_loaded()
        return self._complete(config, response, response.content)
