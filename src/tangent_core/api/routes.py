"""FastAPI routes for the Tangent ingest API."""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..billing.schema import EntitlementSnapshot
from ..remote_config.flags import RemoteConfigKeys
from ..sdk import TangentSDK
from .auth import get_sdk, require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["sdk"])


class EventIngestRequest(BaseModel):
    """Raw vendor or app callback."""

    source: str = Field(..., description="Vendor or flow tag (e.g. 'superwall')")
    kind: str = Field(..., description="Raw event kind (e.g. 'paywall_open')")
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw payload")


class EventResponse(BaseModel):
    """Normalized event as published to trackers."""

    event_name: str
    display_name: str
    source_tag: str
    occurred_at: datetime
    properties: dict[str, Any]


class EntitlementInfo(BaseModel):
    """One entitlement from the billing vendor's customer info."""

    is_active: bool = False
    period_type: Optional[str] = Field(None, description="trial | intro | normal")


class CustomerInfoRequest(BaseModel):
    """Billing vendor customer-info push."""

    entitlements: dict[str, EntitlementInfo] = Field(default_factory=dict)
    active_subscriptions: list[str] = Field(default_factory=list)


class EntitlementResponse(BaseModel):
    """Classification of the pushed snapshot."""

    transition: str
    is_subscribed: bool
    is_trial: bool
    is_paid: bool
    subscription_type: str
    events: list[str] = Field(..., description="Published event names, in order")


class EffectiveFlagResponse(BaseModel):
    live_key: str
    testing_key: str
    is_testing_build: bool
    value: bool
    is_stale: bool


class FlagSnapshotResponse(BaseModel):
    flag_count: int
    is_stale: bool
    fetched_at: Optional[datetime] = None


class ConsentResponse(BaseModel):
    state: str
    status_description: str
    is_tracking_allowed: bool
    can_request: bool


def _event_response(event) -> EventResponse:
    return EventResponse(
        event_name=event.event_name.value,
        display_name=event.display_name,
        source_tag=event.source_tag,
        occurred_at=event.occurred_at,
        properties=dict(event.properties),
    )


@router.post(
    "/events",
    response_model=EventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_api_key)],
    summary="Ingest a raw event",
)
async def ingest_event(
    payload: EventIngestRequest,
    sdk: TangentSDK = Depends(get_sdk),
) -> EventResponse:
    """Normalize a raw callback and publish it to every tracker."""
    event = sdk.track(payload.kind, payload.payload, source=payload.source)
    logger.info("Ingested %s from %s", event.event_name.value, event.source_tag)
    return _event_response(event)


@router.post(
    "/entitlements",
    response_model=EntitlementResponse,
    dependencies=[Depends(require_api_key)],
    summary="Push an entitlement snapshot",
)
async def push_entitlements(
    payload: CustomerInfoRequest,
    sdk: TangentSDK = Depends(get_sdk),
) -> EntitlementResponse:
    """Classify a customer-info push against the last known snapshot."""
    snapshot = EntitlementSnapshot.from_customer_info(payload.model_dump())
    result, events = await sdk.correlator.handle_snapshot(snapshot)

    return EntitlementResponse(
        transition=result.transition.value,
        is_subscribed=result.is_subscribed,
        is_trial=result.is_trial,
        is_paid=result.is_paid,
        subscription_type=result.subscription_type.value,
        events=[event.event_name.value for event in events],
    )


@router.get(
    "/flags/effective",
    response_model=EffectiveFlagResponse,
    dependencies=[Depends(require_api_key)],
    summary="Resolve a live/testing flag pair",
)
async def effective_flag(
    live_key: str = Query(RemoteConfigKeys.SUPERWALL_LIVE_ENABLED),
    testing_key: str = Query(RemoteConfigKeys.SUPERWALL_TESTING_ENABLED),
    sdk: TangentSDK = Depends(get_sdk),
) -> EffectiveFlagResponse:
    testing, value = await sdk.flags.resolve_with_verdict(live_key, testing_key)
    return EffectiveFlagResponse(
        live_key=live_key,
        testing_key=testing_key,
        is_testing_build=testing,
        value=value,
        is_stale=sdk.flags.snapshot.is_stale,
    )


@router.post(
    "/flags/refresh",
    response_model=FlagSnapshotResponse,
    dependencies=[Depends(require_api_key)],
    summary="Refresh remote flags",
)
async def refresh_flags(sdk: TangentSDK = Depends(get_sdk)) -> FlagSnapshotResponse:
    snapshot = await sdk.flags.refresh()
    return FlagSnapshotResponse(
        flag_count=len(snapshot.values),
        is_stale=snapshot.is_stale,
        fetched_at=snapshot.fetched_at,
    )


@router.get(
    "/consent",
    response_model=ConsentResponse,
    dependencies=[Depends(require_api_key)],
    summary="Current tracking-consent state",
)
async def consent_state(sdk: TangentSDK = Depends(get_sdk)) -> ConsentResponse:
    gate = sdk.consent
    return ConsentResponse(
        state=gate.state.value,
        status_description=gate.status_description,
        is_tracking_allowed=gate.is_tracking_allowed(),
        can_request=gate.can_request(),
    )
