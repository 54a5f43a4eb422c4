"""Event bus: backend event sources and scoped subscriptions."""

from .adapter import EventBusAdapter, Subscription
from .source import EventSource, Handler, InProcessEventSource, StreamEventSource, Unlisten

__all__ = [
    "EventBusAdapter",
    "EventSource",
    "Handler",
    "InProcessEventSource",
    "StreamEventSource",
    "Subscription",
    "Unlisten",
]
