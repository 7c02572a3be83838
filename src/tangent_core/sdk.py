"""Composition root wiring the SDK components together.

Components are explicit instances passed to each other; there is no
process-wide singleton. Typical startup:

    async with aiohttp.ClientSession() as session:
        sdk = TangentSDK.from_settings(SDKSettings.from_env(), session)
        await sdk.start()
"""
import logging
from collections.abc import Mapping
from typing import Optional

import aiohttp
from redis.asyncio import Redis

from .analytics.normalizer import EventNormalizer
from .analytics.schema import NormalizedEvent
from .analytics.trackers import EventPublisher, JsonlAuditTracker, LoggingTracker, Tracker
from .billing.classifier import SubscriptionStateClassifier
from .billing.correlator import BillingVendor, PurchaseCorrelator
from .config import SDKSettings
from .remote_config.app_store import AppStoreLookupClient, VersionOracle
from .remote_config.flags import FeatureFlagResolver, FlagSource, HttpFlagSource, StaticFlagSource
from .tracking.consent import ConsentGate, PermissionPrompt
from .tracking.store import MemoryPermissionStore, PermissionStore, RedisPermissionStore


logger = logging.getLogger(__name__)


APP_SOURCE_TAG = "app"


class TangentSDK:
    """Holds one wired instance of every SDK component."""

    def __init__(
        self,
        settings: SDKSettings,
        normalizer: EventNormalizer,
        publisher: EventPublisher,
        flags: FeatureFlagResolver,
        consent: ConsentGate,
        correlator: PurchaseCorrelator,
    ) -> None:
        self.settings = settings
        self.normalizer = normalizer
        self.publisher = publisher
        self.flags = flags
        self.consent = consent
        self.correlator = correlator

        for tracker in publisher.trackers:
            consent.on_consent_changed(tracker.update_tracking_permission)

    @classmethod
    def from_settings(
        cls,
        settings: SDKSettings,
        session: aiohttp.ClientSession,
        redis: Optional[Redis] = None,
        prompt: Optional[PermissionPrompt] = None,
        vendor: Optional[BillingVendor] = None,
        flag_source: Optional[FlagSource] = None,
        trackers: Optional[list[Tracker]] = None,
    ) -> "TangentSDK":
        """Build an SDK from settings and injected I/O resources.

        Args:
            settings: Resolved settings
            session: aiohttp session for the store lookup and HTTP flags
            redis: Redis client for the persisted consent flag (optional)
            prompt: OS permission prompt (required when settings.enable_att)
            vendor: Billing vendor (required for purchase/restore)
            flag_source: Overrides the source derived from settings
            trackers: Overrides the default logging + JSONL audit trackers

        Raises:
            InvalidConfigurationError: If tracking consent is enabled
                without a prompt
        """
        normalizer = EventNormalizer(app_version=settings.app_version, platform=settings.platform)

        if trackers is None:
            trackers = [LoggingTracker(), JsonlAuditTracker(settings.events_raw_dir)]
        publisher = EventPublisher(trackers)

        if flag_source is None:
            if settings.flags_url:
                flag_source = HttpFlagSource(settings.flags_url, session)
            else:
                flag_source = StaticFlagSource()

        lookup = AppStoreLookupClient(session, country=settings.app_store_country)
        flags = FeatureFlagResolver(
            source=flag_source,
            oracle=VersionOracle(lookup),
            bundle_id=settings.bundle_id,
            installed_version=settings.app_version,
            minimum_fetch_interval=settings.minimum_fetch_interval,
        )

        store: PermissionStore
        if redis is not None:
            store = RedisPermissionStore(redis)
        else:
            store = MemoryPermissionStore()

        consent = ConsentGate(
            prompt,
            store=store,
            normalizer=normalizer,
            publisher=publisher,
            enabled=settings.enable_att,
        )

        correlator = PurchaseCorrelator(
            normalizer=normalizer,
            publisher=publisher,
            classifier=SubscriptionStateClassifier(settings.primary_entitlement),
            vendor=vendor,
        )

        logger.info(
            "SDK configured: bundle_id=%s, app_version=%s, environment=%s, trackers=%s",
            settings.bundle_id,
            settings.app_version,
            settings.environment,
            [tracker.name for tracker in publisher.trackers],
        )

        return cls(
            settings=settings,
            normalizer=normalizer,
            publisher=publisher,
            flags=flags,
            consent=consent,
            correlator=correlator,
        )

    async def start(self) -> bool:
        """Load consent state and remote config.

        Returns:
            Effective paywall flag
        """
        await self.consent.initialize()
        return await self.flags.fetch_config()

    def track(
        self,
        kind: str,
        payload: Optional[Mapping] = None,
        source: str = APP_SOURCE_TAG,
    ) -> NormalizedEvent:
        """Normalize and publish an app-originated event."""
        event = self.normalizer.normalize(source, kind, payload)
        self.publisher.publish(event)
        return event

    def identify(self, user_id: str) -> None:
        """Attach a user id to every tracker (login)."""
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        self.publisher.identify(user_id)
        logger.info("Identified user across %d trackers", len(self.publisher.trackers))

    def reset(self) -> None:
        """Clear the user id on every tracker (logout)."""
        self.publisher.reset()
