"""Billing layer: entitlement snapshots, classification and purchase correlation."""
from .classifier import (
    ClassificationResult,
    SubscriptionStateClassifier,
    SubscriptionStatus,
    SubscriptionType,
    Transition,
)
from .correlator import BillingVendor, PurchaseCorrelator
from .schema import (
    EntitlementSnapshot,
    PeriodType,
    ProductRef,
    PurchaseOutcome,
    PurchaseResult,
    RestoreOutcome,
    RestoreResult,
)

__all__ = [
    "BillingVendor",
    "ClassificationResult",
    "EntitlementSnapshot",
    "PeriodType",
    "ProductRef",
    "PurchaseCorrelator",
    "PurchaseOutcome",
    "PurchaseResult",
    "RestoreOutcome",
    "RestoreResult",
    "SubscriptionStateClassifier",
    "SubscriptionStatus",
    "SubscriptionType",
    "Transition",
]
