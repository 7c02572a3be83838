"""Analytics layer.

Normalizes vendor callbacks into a closed event taxonomy and fans the
results out to trackers:
- LoggingTracker: application log
- JsonlAuditTracker: data/events/raw/*.jsonl (append-only audit logs)
"""
from .normalizer import EventNormalizer
from .schema import NormalizedEvent
from .taxonomy import ActivationTrigger, AnalyticsEvent
from .trackers import EventPublisher, JsonlAuditTracker, LoggingTracker, Tracker

__all__ = [
    "ActivationTrigger",
    "AnalyticsEvent",
    "EventNormalizer",
    "EventPublisher",
    "JsonlAuditTracker",
    "LoggingTracker",
    "NormalizedEvent",
    "Tracker",
]
