"""Transports that perform a single request attempt."""

from netdispatch.request.transports.base import BaseTransport, Transport
from netdispatch.request.transports.event_driven import EventDrivenTransport
from netdispatch.request.transports.streaming import StreamingTransport


__all__ = [
    "BaseTransport",
    "EventDrivenTransport",
    "StreamingTransport",
    "Transport",
]
