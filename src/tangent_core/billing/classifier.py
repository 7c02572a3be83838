"""Subscription state classification from entitlement snapshot pairs.

Transition precedence (first match wins):
1. No previous snapshot -> INITIAL
2. Unsubscribed -> subscribed -> BECAME_SUBSCRIBED
3. Subscribed -> unsubscribed -> LOST_SUBSCRIPTION
4. Trial -> not trial, still subscribed -> TRIAL_CONVERTED
5. Otherwise -> NO_CHANGE

Losing a subscription never reports a trial conversion.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .schema import EntitlementSnapshot, PeriodType


DEFAULT_PRIMARY_ENTITLEMENT = "Pro"


class SubscriptionType(str, Enum):
    NONE = "none"
    TRIAL = "trial"
    INTRO_OFFER = "intro_offer"
    FULL_PAID = "full_paid"
    UNKNOWN = "unknown"


class Transition(str, Enum):
    INITIAL = "initial"
    BECAME_SUBSCRIBED = "became_subscribed"
    LOST_SUBSCRIPTION = "lost_subscription"
    TRIAL_CONVERTED = "trial_converted"
    NO_CHANGE = "no_change"


_SUBSCRIPTION_TYPES = {
    PeriodType.TRIAL: SubscriptionType.TRIAL,
    PeriodType.INTRO: SubscriptionType.INTRO_OFFER,
    PeriodType.NORMAL: SubscriptionType.FULL_PAID,
    PeriodType.UNKNOWN: SubscriptionType.UNKNOWN,
}


@dataclass(frozen=True)
class SubscriptionStatus:
    """Derived status of a single snapshot."""

    is_subscribed: bool
    is_trial: bool
    is_paid: bool
    subscription_type: SubscriptionType


@dataclass(frozen=True)
class ClassificationResult:
    """Status of the current snapshot plus the transition from the previous."""

    is_subscribed: bool
    is_trial: bool
    is_paid: bool
    subscription_type: SubscriptionType
    transition: Transition

    def to_properties(self) -> dict:
        return {
            "is_subscribed": self.is_subscribed,
            "is_trial": self.is_trial,
            "is_paid": self.is_paid,
            "subscription_type": self.subscription_type.value,
        }


class SubscriptionStateClassifier:
    """Classifies snapshots and owns the last observed one."""

    def __init__(self, primary_entitlement: str = DEFAULT_PRIMARY_ENTITLEMENT) -> None:
        self.primary_entitlement = primary_entitlement
        self._previous: Optional[EntitlementSnapshot] = None

    @property
    def previous(self) -> Optional[EntitlementSnapshot]:
        return self._previous

    def status(self, snapshot: EntitlementSnapshot) -> SubscriptionStatus:
        period = snapshot.period_type(self.primary_entitlement)
        return SubscriptionStatus(
            is_subscribed=period is not None or bool(snapshot.active_subscriptions),
            is_trial=period is PeriodType.TRIAL,
            is_paid=period is PeriodType.NORMAL,
            subscription_type=(
                SubscriptionType.NONE if period is None else _SUBSCRIPTION_TYPES[period]
            ),
        )

    def classify(
        self,
        previous: Optional[EntitlementSnapshot],
        current: EntitlementSnapshot,
    ) -> ClassificationResult:
        """Classify current against previous. Pure; does not touch owned state."""
        now = self.status(current)

        if previous is None:
            transition = Transition.INITIAL
        else:
            before = self.status(previous)
            if not before.is_subscribed and now.is_subscribed:
                transition = Transition.BECAME_SUBSCRIBED
            elif before.is_subscribed and not now.is_subscribed:
                transition = Transition.LOST_SUBSCRIPTION
            elif before.is_trial and not now.is_trial and now.is_subscribed:
                transition = Transition.TRIAL_CONVERTED
            else:
                transition = Transition.NO_CHANGE

        return ClassificationResult(
            is_subscribed=now.is_subscribed,
            is_trial=now.is_trial,
            is_paid=now.is_paid,
            subscription_type=now.subscription_type,
            transition=transition,
        )

    def observe(self, current: EntitlementSnapshot) -> ClassificationResult:
        """Diff against the owned previous snapshot, then replace it."""
        result = self.classify(self._previous, current)
        self._previous = current
        return result

    def reset(self) -> None:
        self._previous = None
