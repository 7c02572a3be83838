"""Tracking-consent gate.

Single source of truth for the tracking-permission decision. The OS prompt
is shown at most once; the not_determined -> decided transition notifies
every registered dependent exactly once, in registration order.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from ..analytics.normalizer import EventNormalizer
from ..analytics.taxonomy import AnalyticsEvent
from ..analytics.trackers import EventPublisher
from ..exceptions import InvalidConfigurationError
from .store import PermissionStore


logger = logging.getLogger(__name__)


SOURCE_TAG = "tracking_consent"


class ConsentState(str, Enum):
    """Tracking authorization status."""

    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED = "authorized"

    @property
    def description(self) -> str:
        return self.value.replace("_", " ").title()


class ConsentPromptError(Exception):
    """Raised when the OS permission prompt fails."""


class PermissionPrompt(Protocol):
    """OS-level tracking permission prompt."""

    async def current_status(self) -> ConsentState:
        ...

    async def request_authorization(self) -> ConsentState:
        ...


ConsentCallback = Callable[[bool], None]


class ConsentGate:
    """Owns the tracking-consent state and its fan-out."""

    def __init__(
        self,
        prompt: Optional[PermissionPrompt],
        store: Optional[PermissionStore] = None,
        normalizer: Optional[EventNormalizer] = None,
        publisher: Optional[EventPublisher] = None,
        enabled: bool = True,
    ) -> None:
        """Initialize consent gate.

        Args:
            prompt: OS permission prompt (required when enabled)
            store: Persisted "permission requested" flag
            normalizer: Used to build permission events
            publisher: Receives permission events
            enabled: False when tracking consent is not configured; the gate
                then never prompts and never allows tracking

        Raises:
            InvalidConfigurationError: If enabled without a prompt
        """
        if enabled and prompt is None:
            raise InvalidConfigurationError("ConsentGate requires a permission prompt")

        self.enabled = enabled
        self._prompt = prompt
        self._store = store
        self._normalizer = normalizer
        self._publisher = publisher

        self._state = ConsentState.NOT_DETERMINED
        self._has_requested = False
        self._dependents: list[ConsentCallback] = []
        self._pending: Optional[asyncio.Future] = None

    @property
    def state(self) -> ConsentState:
        return self._state

    @property
    def status_description(self) -> str:
        if not self.enabled:
            return "Tracking Consent Not Enabled"
        return self._state.description

    @property
    def has_requested_permission(self) -> bool:
        return self._has_requested

    async def initialize(self) -> ConsentState:
        """Load the OS-reported state and the persisted request flag.

        The OS state is ground truth; the persisted flag only flags
        inconsistencies.
        """
        if not self.enabled:
            return self._state

        self._state = ConsentState(await self._prompt.current_status())
        if self._store is not None:
            self._has_requested = await self._store.has_requested()

        if self._has_requested and self._state is ConsentState.NOT_DETERMINED:
            logger.warning(
                "Permission was requested before but OS reports not_determined"
            )

        logger.info("Tracking consent initialized: %s", self.status_description)
        return self._state

    def on_consent_changed(self, callback: ConsentCallback) -> None:
        """Register a dependent. Registration is append-only."""
        self._dependents.append(callback)

    def is_tracking_allowed(self) -> bool:
        return self.enabled and self._state is ConsentState.AUTHORIZED

    def can_request(self) -> bool:
        return self.enabled and self._state is ConsentState.NOT_DETERMINED

    async def request_permission(self) -> ConsentState:
        """Prompt for tracking permission if not yet determined.

        Concurrent callers share one prompt and observe the same result.

        Returns:
            Resulting consent state (current state if already determined)

        Raises:
            ConsentPromptError: If the OS prompt fails
        """
        if not self.enabled:
            logger.warning("Tracking consent not enabled, skipping permission request")
            return self._state

        if self._state is not ConsentState.NOT_DETERMINED:
            return self._state

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._prompt_once())

        # The prompt runs to completion even if a caller is cancelled
        return await asyncio.shield(self._pending)

    async def _prompt_once(self) -> ConsentState:
        try:
            self._has_requested = True
            try:
                status = ConsentState(await self._prompt.request_authorization())
            except Exception as exc:
                logger.error("Tracking permission prompt failed: %s", exc, exc_info=True)
                self._record(
                    AnalyticsEvent.TRACKING_PERMISSION_FAILED, {"reason": str(exc)}
                )
                raise ConsentPromptError(str(exc)) from exc

            previous = self._state
            self._state = status
            await self._persist_requested()

            if previous is ConsentState.NOT_DETERMINED and status is not ConsentState.NOT_DETERMINED:
                allowed = status is ConsentState.AUTHORIZED
                self._fan_out(allowed)
                self._record(
                    AnalyticsEvent.TRACKING_PERMISSION_REQUESTED,
                    {"granted": allowed, "status": status.description},
                )

            logger.info("Tracking permission result: %s", status.description)
            return status
        finally:
            self._pending = None

    async def _persist_requested(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.mark_requested()
        except Exception as exc:
            logger.warning("Failed to persist permission-requested flag: %s", exc)

    def _fan_out(self, allowed: bool) -> None:
        for callback in self._dependents:
            try:
                callback(allowed)
            except Exception as exc:
                logger.error(
                    "Consent dependent %r failed: %s", callback, exc, exc_info=True
                )

    def _record(self, kind: AnalyticsEvent, payload: dict) -> None:
        if self._normalizer is None or self._publisher is None:
            return
        self._publisher.publish(self._normalizer.normalize(SOURCE_TAG, kind, payload))
