"""Pydantic models for billing-vendor entitlement state and results."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PeriodType(str, Enum):
    """How current access to an entitlement is billed."""

    TRIAL = "trial"
    INTRO = "intro"
    NORMAL = "normal"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "PeriodType":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text == "introductory":
            return cls.INTRO
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


class EntitlementSnapshot(BaseModel):
    """Point-in-time entitlement state. Never mutated after construction."""

    model_config = ConfigDict(frozen=True)

    active_entitlements: dict[str, PeriodType] = Field(
        default_factory=dict,
        description="Active entitlement id -> period type",
    )
    active_subscriptions: frozenset[str] = Field(
        default_factory=frozenset,
        description="Active subscription product identifiers",
    )
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("active_entitlements", mode="before")
    @classmethod
    def _coerce_period_types(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(key): PeriodType.coerce(period) for key, period in value.items()}
        return value

    def has_active_entitlement(self, entitlement_id: str) -> bool:
        return entitlement_id in self.active_entitlements

    def period_type(self, entitlement_id: str) -> Optional[PeriodType]:
        """Period type of an active entitlement, None if inactive."""
        return self.active_entitlements.get(entitlement_id)

    @classmethod
    def from_customer_info(cls, payload: dict) -> "EntitlementSnapshot":
        """Build a snapshot from the billing vendor's customer-info JSON.

        Expected shape:
            {
              "entitlements": {"Pro": {"is_active": true, "period_type": "trial"}},
              "active_subscriptions": ["plan.monthly"]
            }
        """
        entitlements = payload.get("entitlements") or {}
        active = {
            str(name): PeriodType.coerce(info.get("period_type"))
            for name, info in entitlements.items()
            if isinstance(info, dict) and info.get("is_active")
        }
        subscriptions = payload.get("active_subscriptions") or []
        return cls(
            active_entitlements=active,
            active_subscriptions=frozenset(str(item) for item in subscriptions),
        )


class ProductRef(BaseModel):
    """Store product being purchased."""

    product_id: str
    price: Optional[float] = None
    currency: Optional[str] = None


class PurchaseOutcome(str, Enum):
    PURCHASED = "purchased"
    CANCELLED = "cancelled"
    PENDING = "pending"
    FAILED = "failed"


class RestoreOutcome(str, Enum):
    RESTORED = "restored"
    FAILED = "failed"


class PurchaseResult(BaseModel):
    """Typed purchase result returned to the caller verbatim."""

    outcome: PurchaseOutcome
    snapshot: Optional[EntitlementSnapshot] = Field(
        None, description="Entitlement state after a successful purchase"
    )
    reason: Optional[str] = Field(None, description="Failure reason if FAILED")


class RestoreResult(BaseModel):
    """Typed restore result returned to the caller verbatim."""

    outcome: RestoreOutcome
    snapshot: Optional[EntitlementSnapshot] = None
    reason: Optional[str] = None
