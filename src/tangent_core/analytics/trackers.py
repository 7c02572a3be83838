"""Event sinks and ordered fan-out.

Trackers are fire-and-forget: the publisher calls record() on each
registered tracker in registration order and never awaits a result. A
tracker that raises is logged and skipped.
"""
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from .schema import NormalizedEvent


logger = logging.getLogger(__name__)


class Tracker(Protocol):
    """Analytics / attribution sink."""

    name: str

    def record(self, event: NormalizedEvent) -> None:
        ...

    def update_tracking_permission(self, allowed: bool) -> None:
        ...

    def identify(self, user_id: str) -> None:
        ...

    def reset(self) -> None:
        ...


class EventPublisher:
    """Fans every normalized event out to all registered trackers."""

    def __init__(self, trackers: list[Tracker] | None = None) -> None:
        self._trackers: list[Tracker] = list(trackers or [])

    @property
    def trackers(self) -> tuple[Tracker, ...]:
        return tuple(self._trackers)

    def register(self, tracker: Tracker) -> None:
        self._trackers.append(tracker)
        logger.info("Registered tracker: %s", getattr(tracker, "name", tracker))

    def publish(self, event: NormalizedEvent) -> None:
        for tracker in self._trackers:
            try:
                tracker.record(event)
            except Exception as exc:
                logger.error(
                    "Tracker %s failed to record %s: %s",
                    getattr(tracker, "name", tracker),
                    event.event_name.value,
                    exc,
                    exc_info=True,
                )

    def publish_all(self, events: list[NormalizedEvent]) -> None:
        for event in events:
            self.publish(event)

    def identify(self, user_id: str) -> None:
        """Attach a user id to every tracker."""
        self._broadcast("identify", user_id)

    def reset(self) -> None:
        """Clear the user id on every tracker (logout)."""
        self._broadcast("reset")

    def _broadcast(self, method: str, *args) -> None:
        for tracker in self._trackers:
            try:
                getattr(tracker, method)(*args)
            except Exception as exc:
                logger.error(
                    "Tracker %s failed to %s: %s",
                    getattr(tracker, "name", tracker),
                    method,
                    exc,
                    exc_info=True,
                )


class LoggingTracker:
    """Writes every event to the application log."""

    name = "logging"

    def __init__(self) -> None:
        self.tracking_allowed = False
        self.user_id: Optional[str] = None

    def record(self, event: NormalizedEvent) -> None:
        logger.info(
            "Tracked '%s' from %s with properties: %s",
            event.display_name,
            event.source_tag,
            event.properties,
        )

    def update_tracking_permission(self, allowed: bool) -> None:
        self.tracking_allowed = allowed
        if allowed:
            logger.info("Logging tracker: full tracking enabled")
        else:
            logger.info("Logging tracker: anonymous tracking only")

    def identify(self, user_id: str) -> None:
        self.user_id = user_id
        logger.info("Logging tracker: identified user")

    def reset(self) -> None:
        self.user_id = None
        logger.info("Logging tracker: user reset")


class JsonlAuditTracker:
    """Appends every event to a daily JSONL audit log.

    Files: <raw_dir>/events_<YYYY-MM-DD>.jsonl (UTC date of the event)
    """

    name = "jsonl_audit"

    def __init__(self, raw_dir: str | Path) -> None:
        """Initialize audit tracker.

        Args:
            raw_dir: Directory for raw JSONL audit logs
        """
        self.raw_dir = Path(raw_dir)
        self.raw_dir.mkdir(parents=True, exist_ok=True)
        self.tracking_allowed = False
        self.user_id: Optional[str] = None

    def path_for(self, event: NormalizedEvent) -> Path:
        return self.raw_dir / f"events_{event.occurred_at.date().isoformat()}.jsonl"

    def record(self, event: NormalizedEvent) -> None:
        envelope = event.to_envelope()
        envelope["tracking_allowed"] = self.tracking_allowed
        if self.user_id is not None:
            envelope["user_id"] = self.user_id

        with open(self.path_for(event), "a", encoding="utf-8") as handle:
            handle.write(json.dumps(envelope, separators=(",", ":")) + "\n")

    def update_tracking_permission(self, allowed: bool) -> None:
        self.tracking_allowed = allowed

    def identify(self, user_id: str) -> None:
        self.user_id = user_id

    def reset(self) -> None:
        self.user_id = None
