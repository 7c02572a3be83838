"""Vendor callback normalization into the canonical event taxonomy.

Rules:
- Every event carries source, platform and app_version
- Purchase/restore events always carry product_id; amount + currency
  when the amount is known
- subscription_activated carries a trigger from ActivationTrigger
- *_failed events carry a reason
- Unrecognized kinds degrade to feature_used with the raw kind attached
"""
import logging
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .schema import NormalizedEvent, PropertyValue
from .taxonomy import (
    FAILURE_EVENTS,
    KIND_ALIASES,
    PURCHASE_EVENTS,
    ActivationTrigger,
    AnalyticsEvent,
)


logger = logging.getLogger(__name__)


UNKNOWN = "unknown"
DEFAULT_CURRENCY = "USD"

_CANONICAL = {event.value: event for event in AnalyticsEvent}
_TRIGGERS = {trigger.value for trigger in ActivationTrigger}


def _kind_key(raw_kind: Any) -> str:
    if raw_kind is None:
        return ""
    key = str(raw_kind).strip().lower()
    return key.replace(" ", "_").replace("-", "_")


def _to_primitive(value: Any) -> Optional[PropertyValue]:
    if value is None:
        return None
    if isinstance(value, Enum):
        return _to_primitive(value.value)
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Mapping):
        return str(dict(value))
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return ",".join(str(item) for item in items if item is not None)
    return str(value)


def flatten_properties(payload: Mapping) -> dict[str, PropertyValue]:
    """Reduce a raw payload to string keys and primitive values."""
    properties: dict[str, PropertyValue] = {}
    for key, value in payload.items():
        primitive = _to_primitive(value)
        if primitive is not None:
            properties[str(key)] = primitive
    return properties


def _amount(payload: Mapping) -> Optional[float]:
    for key in ("amount", "price"):
        value = payload.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError, ArithmeticError):
            continue
    return None


def _product_id(payload: Mapping) -> str:
    product_id = payload.get("product_id")
    if isinstance(product_id, str) and product_id.strip():
        return product_id.strip()

    for key in ("product_ids", "active_subscriptions"):
        values = payload.get(key)
        if isinstance(values, (list, tuple, set, frozenset)) and values:
            first = sorted(values, key=str)[0] if isinstance(values, (set, frozenset)) else values[0]
            if first:
                return str(first)

    return UNKNOWN


def _reason(payload: Mapping) -> str:
    for key in ("reason", "error", "error_description"):
        value = payload.get(key)
        if value:
            return str(value)
    return UNKNOWN


def _trigger(value: Any) -> str:
    if isinstance(value, ActivationTrigger):
        return value.value
    if isinstance(value, str) and value in _TRIGGERS:
        return value
    return ActivationTrigger.STATUS_CHANGE.value


class EventNormalizer:
    """Maps raw vendor callbacks to NormalizedEvent. Stateless."""

    def __init__(self, app_version: str = UNKNOWN, platform: str = "iOS") -> None:
        """Initialize normalizer.

        Args:
            app_version: Version stamp added to every event
            platform: Platform stamp added to every event
        """
        self.app_version = app_version or UNKNOWN
        self.platform = platform

    @staticmethod
    def resolve_kind(raw_kind: Any) -> Optional[AnalyticsEvent]:
        """Look up the canonical event for a raw kind, or None."""
        if isinstance(raw_kind, AnalyticsEvent):
            return raw_kind
        key = _kind_key(raw_kind)
        return _CANONICAL.get(key) or KIND_ALIASES.get(key)

    def normalize(
        self,
        raw_source_tag: Any,
        raw_kind: Any,
        raw_payload: Optional[Mapping] = None,
    ) -> NormalizedEvent:
        """Normalize one raw vendor callback.

        Args:
            raw_source_tag: Vendor or flow that produced the callback
            raw_kind: Vendor event kind (e.g. "transaction_complete")
            raw_payload: Vendor payload; non-mapping payloads are ignored

        Returns:
            NormalizedEvent drawn from the closed taxonomy
        """
        source = _kind_key(raw_source_tag) or UNKNOWN
        payload = raw_payload if isinstance(raw_payload, Mapping) else {}
        properties = flatten_properties(payload)

        event = self.resolve_kind(raw_kind)
        if event is None:
            raw = str(raw_kind) if raw_kind is not None else ""
            feature = raw.strip() or UNKNOWN
            logger.debug("Unrecognized event kind %r from %s", raw, source)
            event = AnalyticsEvent.FEATURE_USED
            properties.setdefault("feature", feature)
            properties["raw_kind"] = raw
        elif not isinstance(raw_kind, AnalyticsEvent) and _kind_key(raw_kind) != event.value:
            properties["raw_kind"] = str(raw_kind)

        if event in PURCHASE_EVENTS:
            properties["product_id"] = _product_id(payload)
            amount = _amount(payload)
            properties.pop("price", None)
            if amount is None:
                properties.pop("amount", None)
                properties.pop("currency", None)
            else:
                properties["amount"] = amount
                currency = payload.get("currency")
                properties["currency"] = (
                    str(currency).upper() if currency else DEFAULT_CURRENCY
                )

        if event is AnalyticsEvent.SUBSCRIPTION_ACTIVATED:
            properties["trigger"] = _trigger(payload.get("trigger"))

        if event in FAILURE_EVENTS:
            properties["reason"] = _reason(payload)

        properties["source"] = source
        properties["platform"] = self.platform
        properties["app_version"] = self.app_version

        return NormalizedEvent(
            event_name=event,
            properties=properties,
            source_tag=source,
        )
