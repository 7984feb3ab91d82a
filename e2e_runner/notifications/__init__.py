"""
Execution event notifications.

Lifecycle and progress events and the bus that fans them out to observers.
"""

from .bus import NotificationBus, Subscription, CallbackSubscription
from .events import (
    EventType,
    ExecutionEvent,
    StartedEvent,
    ProgressEvent,
    CompletedEvent,
    ErrorEvent,
)

__all__ = [
    "NotificationBus",
    "Subscription",
    "CallbackSubscription",
    "EventType",
    "ExecutionEvent",
    "StartedEvent",
    "ProgressEvent",
    "CompletedEvent",
    "ErrorEvent",
]
