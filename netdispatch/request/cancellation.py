"""Cooperative cancellation for in-flight requests."""

import asyncio


class CancellationToken:
    """Signal that a logical request should stop.

    Cancellation is cooperative: the token only takes effect at the
    checkpoints where a transport or the dispatcher looks at it. Once
    signaled, it stays signaled.
    """

    def __init__(self) -> None:
        """Initialize an unsignaled token."""
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Check if the token has been signaled."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Get the reason given when the token was signaled."""
        return self._reason

    def cancel(self, reason: str = "Request aborted") -> None:
        """Signal the token.

        Signaling an already-signaled token keeps the first reason.

        Args:
            reason: Human-readable reason for the abort.
        """
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Wait until the token is signaled."""
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
