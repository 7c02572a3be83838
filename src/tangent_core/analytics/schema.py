"""Pydantic models for normalized analytics events."""
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from .taxonomy import AnalyticsEvent


PropertyValue = Union[bool, int, float, str]


class NormalizedEvent(BaseModel):
    """Vendor-independent event, forwardable to any tracker."""

    model_config = ConfigDict(frozen=True)

    event_name: AnalyticsEvent = Field(..., description="Canonical taxonomy key")
    properties: dict[str, PropertyValue] = Field(default_factory=dict)
    source_tag: str = Field(..., description="Vendor or flow that produced the event")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        return self.event_name.display_name

    def to_envelope(self) -> dict:
        """Convert to a JSON-serializable audit envelope."""
        return {
            "source_tag": self.source_tag,
            "event_name": self.event_name.value,
            "occurred_at": self.occurred_at.isoformat(),
            "properties": dict(self.properties),
        }
