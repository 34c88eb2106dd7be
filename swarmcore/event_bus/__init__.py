"""EventBus module."""

from .event_bus import (
    EventBus,
    EventHandler,
    EventPredicate,
    IdentityTransform,
    IEventBus,
    PayloadTransform,
    Subscription,
)

__all__ = [
    "EventBus",
    "EventHandler",
    "EventPredicate",
    "IEventBus",
    "IdentityTransform",
    "PayloadTransform",
    "Subscription",
]
