"""Canonical event taxonomy.

The closed set of event names the core ever emits, independent of which
vendor triggered them.
"""
from enum import Enum


class AnalyticsEvent(str, Enum):
    """Canonical event names."""

    # App lifecycle
    APP_LAUNCHED = "app_launched"
    SESSION_START = "session_start"
    SESSION_END = "session_end"

    # Onboarding
    ONBOARDING_STARTED = "onboarding_started"
    ONBOARDING_COMPLETED = "onboarding_completed"

    # Paywall
    PAYWALL_VIEWED = "paywall_viewed"
    PAYWALL_DISMISSED = "paywall_dismissed"

    # Purchases
    PURCHASE_STARTED = "purchase_started"
    PURCHASE_COMPLETED = "purchase_completed"
    PURCHASE_CANCELLED = "purchase_cancelled"
    PURCHASE_FAILED = "purchase_failed"

    # Restores
    RESTORE_STARTED = "restore_started"
    RESTORE_COMPLETED = "restore_completed"
    RESTORE_FAILED = "restore_failed"

    # Subscription lifecycle
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_STATUS = "subscription_status"

    # Generic
    SCREEN_VIEWED = "screen_viewed"
    BUTTON_TAPPED = "button_tapped"
    FEATURE_USED = "feature_used"
    ERROR_OCCURRED = "error_occurred"

    # Privacy & permissions
    TRACKING_PERMISSION_REQUESTED = "tracking_permission_requested"
    TRACKING_PERMISSION_FAILED = "tracking_permission_failed"

    @property
    def display_name(self) -> str:
        """Title-cased name as shown in the analytics collector."""
        return self.value.replace("_", " ").title()


PURCHASE_EVENTS = frozenset(
    {
        AnalyticsEvent.PURCHASE_STARTED,
        AnalyticsEvent.PURCHASE_COMPLETED,
        AnalyticsEvent.PURCHASE_CANCELLED,
        AnalyticsEvent.PURCHASE_FAILED,
        AnalyticsEvent.RESTORE_STARTED,
        AnalyticsEvent.RESTORE_COMPLETED,
        AnalyticsEvent.RESTORE_FAILED,
    }
)

FAILURE_EVENTS = frozenset(
    {
        AnalyticsEvent.PURCHASE_FAILED,
        AnalyticsEvent.RESTORE_FAILED,
        AnalyticsEvent.TRACKING_PERMISSION_FAILED,
    }
)


class ActivationTrigger(str, Enum):
    """Why a subscription_activated event was emitted."""

    PURCHASE = "purchase"
    RESTORE_PURCHASE = "restore_purchase"
    STATUS_CHANGE = "status_change"
    TRIAL_CONVERTED = "trial_converted"


# Raw vendor kinds that differ from the canonical names
KIND_ALIASES: dict[str, AnalyticsEvent] = {
    # Paywall service placement events
    "paywall_open": AnalyticsEvent.PAYWALL_VIEWED,
    "paywall_close": AnalyticsEvent.PAYWALL_DISMISSED,
    "transaction_start": AnalyticsEvent.PURCHASE_STARTED,
    "transaction_complete": AnalyticsEvent.PURCHASE_COMPLETED,
    "transaction_abandon": AnalyticsEvent.PURCHASE_CANCELLED,
    "transaction_fail": AnalyticsEvent.PURCHASE_FAILED,
    "transaction_restore": AnalyticsEvent.RESTORE_COMPLETED,
    "restore_start": AnalyticsEvent.RESTORE_STARTED,
    "restore_fail": AnalyticsEvent.RESTORE_FAILED,
    "subscription_start": AnalyticsEvent.SUBSCRIPTION_ACTIVATED,
    # Billing service callbacks
    "customer_info_updated": AnalyticsEvent.SUBSCRIPTION_STATUS,
    "purchase_restored": AnalyticsEvent.RESTORE_COMPLETED,
    "restore_purchase_completed": AnalyticsEvent.RESTORE_COMPLETED,
    "restore_purchase_failed": AnalyticsEvent.RESTORE_FAILED,
    # Tracking permission prompt
    "att_permission_requested": AnalyticsEvent.TRACKING_PERMISSION_REQUESTED,
}
