"""Remote feature flags with live/testing variant resolution.

Each gated feature has two remote keys: a live variant honored by builds
that match the published store version, and a testing variant honored by
builds that are newer than the published version (review/pre-release).
"""
import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from time import monotonic
from typing import Any, Callable, Optional, Protocol, Union

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import TangentConfigurationError
from .app_store import VersionOracle
from .exceptions import FlagFetchError, RemoteConfigError


logger = logging.getLogger(__name__)


FlagValue = Union[bool, int, float, str]

_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y", "on"})

DEVELOPMENT_FETCH_INTERVAL = 0.0
PRODUCTION_FETCH_INTERVAL = 3600.0


def flag_values(payload: Any) -> dict[str, FlagValue]:
    """Keep the primitive-valued entries of a flag mapping.

    Raises:
        FlagFetchError: If payload is not a mapping
    """
    if not isinstance(payload, Mapping):
        raise FlagFetchError(
            f"Flag payload must be a mapping, got {type(payload).__name__}"
        )

    values = {}
    for key, value in payload.items():
        if isinstance(value, (bool, int, float, str)):
            values[str(key)] = value
        else:
            logger.debug("Dropping flag %r with unsupported type %s", key, type(value).__name__)
    return values


class RemoteConfigKeys:
    """Well-known flag keys."""

    SUPERWALL_LIVE_ENABLED = "superwall_live_enabled"
    SUPERWALL_TESTING_ENABLED = "superwall_testing_enabled"


class FeatureFlagSnapshot(BaseModel):
    """Immutable set of flag values from one fetch."""

    model_config = ConfigDict(frozen=True)

    values: dict[str, FlagValue] = Field(default_factory=dict)
    is_stale: bool = Field(
        False, description="True when values are defaults or a kept previous fetch"
    )
    fetched_at: Optional[datetime] = Field(
        None, description="When the values were fetched from the remote source"
    )

    def get_bool(self, key: str) -> bool:
        """Read a flag as bool; missing keys are False."""
        value = self.values.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return False

    def get_string(self, key: str) -> Optional[str]:
        value = self.values.get(key)
        if value is None:
            return None
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_number(self, key: str) -> Optional[float]:
        value = self.values.get(key)
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


class FlagSource(Protocol):
    """Remote flag source."""

    async def fetch_flags(self) -> dict[str, FlagValue]:
        ...


class StaticFlagSource:
    """Flag source backed by a fixed mapping."""

    def __init__(self, values: Optional[dict[str, FlagValue]] = None) -> None:
        self.values = dict(values or {})

    async def fetch_flags(self) -> dict[str, FlagValue]:
        return dict(self.values)


class HttpFlagSource:
    """Flag source reading a JSON object from an HTTP endpoint.

    Accepts either a flat object or a {"flags": {...}} envelope.
    """

    def __init__(self, url: str, session: aiohttp.ClientSession) -> None:
        self.url = url
        self.session = session

    async def fetch_flags(self) -> dict[str, FlagValue]:
        try:
            timeout = aiohttp.ClientTimeout(total=15, connect=5)
            async with self.session.get(self.url, timeout=timeout) as resp:
                if resp.status != 200:
                    raise FlagFetchError(f"Flag fetch failed: HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise FlagFetchError(f"Flag fetch failed: {exc}") from exc

        if isinstance(payload, dict) and isinstance(payload.get("flags"), dict):
            payload = payload["flags"]
        return flag_values(payload)


class FeatureFlagResolver:
    """Owns the cached flag snapshot and resolves effective flag values."""

    def __init__(
        self,
        source: FlagSource,
        oracle: VersionOracle,
        bundle_id: str,
        installed_version: str,
        defaults: Optional[dict[str, FlagValue]] = None,
        minimum_fetch_interval: float = PRODUCTION_FETCH_INTERVAL,
        verdict_ttl: Optional[float] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Initialize resolver.

        Args:
            source: Remote flag source
            oracle: Testing-build oracle
            bundle_id: App bundle identifier
            installed_version: Version of the running build
            defaults: Values used until the first successful fetch
            minimum_fetch_interval: Seconds a successful fetch stays fresh
            verdict_ttl: Seconds a testing-build verdict is reused; None keeps
                it for the lifetime of this resolver, 0 disables caching
            clock: Monotonic clock (injectable for tests)
        """
        self.source = source
        self.oracle = oracle
        self.bundle_id = bundle_id
        self.installed_version = installed_version
        self.minimum_fetch_interval = minimum_fetch_interval
        self.verdict_ttl = verdict_ttl
        self._clock = clock

        self._snapshot = FeatureFlagSnapshot(values=flag_values(defaults or {}), is_stale=True)
        self._last_fetch_at: Optional[float] = None
        self._verdict: Optional[bool] = None
        self._verdict_at: Optional[float] = None

        self.paywall_enabled = False
        self.is_config_loaded = False

    @property
    def snapshot(self) -> FeatureFlagSnapshot:
        return self._snapshot

    async def refresh(self) -> FeatureFlagSnapshot:
        """Fetch flags, replacing the cached snapshot on success.

        Never raises; failure leaves the previous values in place, marked
        stale.
        """
        now = self._clock()
        if (
            self._last_fetch_at is not None
            and now - self._last_fetch_at < self.minimum_fetch_interval
        ):
            logger.debug("Using cached flags (fetched %.1fs ago)", now - self._last_fetch_at)
            return self._snapshot

        try:
            values = flag_values(await self.source.fetch_flags())
            snapshot = FeatureFlagSnapshot(
                values=values,
                is_stale=False,
                fetched_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            logger.warning("Flag fetch failed, keeping previous values: %s", exc)
            if not self._snapshot.is_stale:
                self._snapshot = self._snapshot.model_copy(update={"is_stale": True})
            return self._snapshot

        self._snapshot = snapshot
        self._last_fetch_at = now
        logger.info("Fetched %s flags from remote", len(values))
        return self._snapshot

    async def is_testing_build(self) -> bool:
        """Testing-build verdict; any failure means False (live variant)."""
        now = self._clock()
        if self._verdict is not None and self._verdict_is_fresh(now):
            return self._verdict

        try:
            verdict = await self.oracle.is_installed_version_newer_than_published(
                self.bundle_id, self.installed_version
            )
        except (RemoteConfigError, TangentConfigurationError) as exc:
            logger.warning("Could not determine store version, defaulting to live mode: %s", exc)
            return False

        self._verdict = verdict
        self._verdict_at = now
        return verdict

    def _verdict_is_fresh(self, now: float) -> bool:
        if self.verdict_ttl is None:
            return True
        return now - self._verdict_at < self.verdict_ttl

    async def resolve_effective(self, live_key: str, testing_key: str) -> bool:
        """Resolve a flag from its live/testing variant pair.

        Args:
            live_key: Flag honored by published builds
            testing_key: Flag honored by builds newer than the store

        Returns:
            Value of testing_key on a testing build, live_key otherwise
        """
        _, value = await self.resolve_with_verdict(live_key, testing_key)
        return value

    async def resolve_with_verdict(
        self, live_key: str, testing_key: str
    ) -> tuple[bool, bool]:
        """Resolve a flag pair, returning (is_testing_build, value).

        Both parts come from a single verdict lookup.
        """
        testing = await self.is_testing_build()
        key = testing_key if testing else live_key
        value = self._snapshot.get_bool(key)

        if testing:
            logger.info("Testing mode -> using %s = %s", testing_key, value)
        else:
            logger.info("Live mode -> using %s = %s", live_key, value)

        return testing, value

    async def fetch_config(self) -> bool:
        """Refresh flags and resolve the paywall flag.

        Always marks the config as loaded so callers never block on it.
        """
        try:
            await self.refresh()
            self.paywall_enabled = await self.resolve_effective(
                RemoteConfigKeys.SUPERWALL_LIVE_ENABLED,
                RemoteConfigKeys.SUPERWALL_TESTING_ENABLED,
            )
        finally:
            self.is_config_loaded = True

        logger.info("paywall_enabled = %s", self.paywall_enabled)
        return self.paywall_enabled

    def get_bool(self, key: str) -> bool:
        return self._snapshot.get_bool(key)

    def get_string(self, key: str) -> Optional[str]:
        return self._snapshot.get_string(key)

    def get_number(self, key: str) -> Optional[float]:
        return self._snapshot.get_number(key)
