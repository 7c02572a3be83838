"""Purchase, restore and entitlement-stream correlation.

Billing-vendor results and pushed entitlement snapshots are classified
against the last known snapshot and fanned out as normalized events:

    snapshot -> SubscriptionStateClassifier -> EventNormalizer -> trackers

Every classify+replace step goes through one lock, so purchase results and
stream updates never interleave on the same user state.
"""
import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Callable, Optional, Protocol

from ..analytics.normalizer import EventNormalizer
from ..analytics.schema import NormalizedEvent
from ..analytics.taxonomy import ActivationTrigger, AnalyticsEvent
from ..analytics.trackers import EventPublisher
from ..exceptions import InvalidConfigurationError
from .classifier import ClassificationResult, SubscriptionStateClassifier, Transition
from .schema import (
    EntitlementSnapshot,
    ProductRef,
    PurchaseOutcome,
    PurchaseResult,
    RestoreOutcome,
    RestoreResult,
)


logger = logging.getLogger(__name__)


DEFAULT_SOURCE_TAG = "revenuecat"

SnapshotHandler = Callable[[EntitlementSnapshot, ClassificationResult], None]


class BillingVendor(Protocol):
    """Subscription-billing service."""

    async def purchase(self, product: ProductRef) -> PurchaseResult:
        ...

    async def restore(self) -> RestoreResult:
        ...


class PurchaseCorrelator:
    """Turns billing-vendor activity into normalized events."""

    def __init__(
        self,
        normalizer: EventNormalizer,
        publisher: EventPublisher,
        classifier: SubscriptionStateClassifier,
        vendor: Optional[BillingVendor] = None,
        source_tag: str = DEFAULT_SOURCE_TAG,
    ) -> None:
        """Initialize correlator.

        Args:
            normalizer: Event normalizer
            publisher: Fan-out to trackers
            classifier: Owner of the last known snapshot
            vendor: Billing vendor (required for purchase/restore)
            source_tag: Source stamped on billing events
        """
        self.normalizer = normalizer
        self.publisher = publisher
        self.classifier = classifier
        self.vendor = vendor
        self.source_tag = source_tag

        self._lock = asyncio.Lock()
        self._handlers: list[SnapshotHandler] = []

    def on_snapshot(self, handler: SnapshotHandler) -> None:
        """Register a handler run after each snapshot is classified."""
        self._handlers.append(handler)

    def record(
        self, source: str, kind: str, payload: Optional[Mapping] = None
    ) -> NormalizedEvent:
        """Normalize and publish a raw vendor callback."""
        event = self.normalizer.normalize(source, kind, payload)
        self.publisher.publish(event)
        return event

    def _emit(self, kind: AnalyticsEvent, payload: dict) -> NormalizedEvent:
        return self.record(self.source_tag, kind, payload)

    async def _observe(self, snapshot: EntitlementSnapshot) -> ClassificationResult:
        async with self._lock:
            result = self.classifier.observe(snapshot)

        for handler in self._handlers:
            try:
                handler(snapshot, result)
            except Exception as exc:
                logger.error("Snapshot handler %r failed: %s", handler, exc, exc_info=True)

        return result

    def _require_vendor(self) -> BillingVendor:
        if self.vendor is None:
            raise InvalidConfigurationError("Billing vendor not configured")
        return self.vendor

    async def purchase(self, product: ProductRef) -> PurchaseResult:
        """Purchase a product and record the outcome.

        Returns:
            The vendor's result, unchanged. Vendor exceptions become a
            FAILED result; nothing is retried.

        Raises:
            InvalidConfigurationError: If no billing vendor is configured
        """
        vendor = self._require_vendor()
        base = {"product_id": product.product_id}

        self._emit(AnalyticsEvent.PURCHASE_STARTED, base)

        try:
            result = await vendor.purchase(product)
        except Exception as exc:
            logger.error("Purchase failed for %s: %s", product.product_id, exc, exc_info=True)
            result = PurchaseResult(outcome=PurchaseOutcome.FAILED, reason=str(exc))

        if result.outcome is PurchaseOutcome.PURCHASED:
            await self._record_purchase(product, result)
        elif result.outcome is PurchaseOutcome.CANCELLED:
            self._emit(AnalyticsEvent.PURCHASE_CANCELLED, {**base, "reason": "user_cancelled"})
        elif result.outcome is PurchaseOutcome.PENDING:
            self._emit(AnalyticsEvent.PURCHASE_FAILED, {**base, "reason": "payment_pending"})
        else:
            self._emit(AnalyticsEvent.PURCHASE_FAILED, {**base, "reason": result.reason})

        logger.info("Purchase %s: %s", product.product_id, result.outcome.value)
        return result

    async def _record_purchase(self, product: ProductRef, result: PurchaseResult) -> None:
        payload = {
            "product_id": product.product_id,
            "amount": product.price,
            "currency": product.currency,
        }

        if result.snapshot is None:
            self._emit(AnalyticsEvent.PURCHASE_COMPLETED, payload)
            return

        classification = await self._observe(result.snapshot)
        properties = classification.to_properties()
        self._emit(AnalyticsEvent.PURCHASE_COMPLETED, {**payload, **properties})

        if classification.is_subscribed:
            trigger = (
                ActivationTrigger.TRIAL_CONVERTED
                if classification.transition is Transition.TRIAL_CONVERTED
                else ActivationTrigger.PURCHASE
            )
            self._emit(
                AnalyticsEvent.SUBSCRIPTION_ACTIVATED,
                {"product_id": product.product_id, "trigger": trigger, **properties},
            )

    async def restore(self) -> RestoreResult:
        """Restore purchases and record the outcome.

        Raises:
            InvalidConfigurationError: If no billing vendor is configured
        """
        vendor = self._require_vendor()

        self._emit(AnalyticsEvent.RESTORE_STARTED, {})

        try:
            result = await vendor.restore()
        except Exception as exc:
            logger.error("Restore failed: %s", exc, exc_info=True)
            result = RestoreResult(outcome=RestoreOutcome.FAILED, reason=str(exc))

        if result.outcome is RestoreOutcome.FAILED:
            self._emit(AnalyticsEvent.RESTORE_FAILED, {"reason": result.reason})
            return result

        if result.snapshot is None:
            self._emit(AnalyticsEvent.RESTORE_COMPLETED, {})
            return result

        classification = await self._observe(result.snapshot)
        properties = classification.to_properties()
        subscriptions = sorted(result.snapshot.active_subscriptions)
        self._emit(
            AnalyticsEvent.RESTORE_COMPLETED,
            {
                "active_subscriptions": subscriptions,
                "active_entitlements": sorted(result.snapshot.active_entitlements),
                **properties,
            },
        )

        if classification.is_subscribed:
            self._emit(
                AnalyticsEvent.SUBSCRIPTION_ACTIVATED,
                {
                    "trigger": ActivationTrigger.RESTORE_PURCHASE,
                    "active_subscriptions": subscriptions,
                    **properties,
                },
            )

        logger.info("Restore completed, subscribed=%s", classification.is_subscribed)
        return result

    async def handle_snapshot(
        self, snapshot: EntitlementSnapshot
    ) -> tuple[ClassificationResult, list[NormalizedEvent]]:
        """Classify a pushed snapshot and publish the resulting events."""
        classification = await self._observe(snapshot)
        properties = classification.to_properties()
        details = {
            "active_subscriptions": sorted(snapshot.active_subscriptions),
            "active_entitlements": sorted(snapshot.active_entitlements),
        }

        events: list[NormalizedEvent] = []
        transition = classification.transition

        if transition is Transition.BECAME_SUBSCRIBED:
            events.append(
                self._emit(
                    AnalyticsEvent.SUBSCRIPTION_ACTIVATED,
                    {"trigger": ActivationTrigger.STATUS_CHANGE, **details, **properties},
                )
            )
        elif transition is Transition.TRIAL_CONVERTED:
            events.append(
                self._emit(
                    AnalyticsEvent.SUBSCRIPTION_ACTIVATED,
                    {"trigger": ActivationTrigger.TRIAL_CONVERTED, **details, **properties},
                )
            )
        elif transition is Transition.LOST_SUBSCRIPTION:
            events.append(
                self._emit(AnalyticsEvent.SUBSCRIPTION_CANCELLED, {**details, **properties})
            )

        events.append(
            self._emit(
                AnalyticsEvent.SUBSCRIPTION_STATUS,
                {
                    "transition": transition,
                    "active_subscriptions_count": len(snapshot.active_subscriptions),
                    "active_entitlements_count": len(snapshot.active_entitlements),
                    **properties,
                },
            )
        )

        logger.info(
            "Entitlement snapshot classified: transition=%s, subscribed=%s",
            transition.value,
            classification.is_subscribed,
        )
        return classification, events

    async def consume(self, stream: AsyncIterator[EntitlementSnapshot]) -> None:
        """Drain a vendor snapshot stream through handle_snapshot."""
        async for snapshot in stream:
            await self.handle_snapshot(snapshot)
