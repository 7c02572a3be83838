"""Unit tests for feature flag fetching and live/testing resolution."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.tangent_core.exceptions import InvalidConfigurationError
from src.tangent_core.remote_config.app_store import VersionOracle
from src.tangent_core.remote_config.exceptions import (
    FlagFetchError,
    VersionLookupUnavailableError,
)
from src.tangent_core.remote_config.flags import (
    FeatureFlagResolver,
    FeatureFlagSnapshot,
    HttpFlagSource,
    RemoteConfigKeys,
    StaticFlagSource,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _oracle(verdict=False, error=None):
    oracle = AsyncMock()
    if error is not None:
        oracle.is_installed_version_newer_than_published.side_effect = error
    else:
        oracle.is_installed_version_newer_than_published.return_value = verdict
    return oracle


def _resolver(source=None, oracle=None, **kwargs):
    return FeatureFlagResolver(
        source=source or StaticFlagSource(),
        oracle=oracle or _oracle(),
        bundle_id="com.example.app",
        installed_version="2.3.0",
        **kwargs,
    )


def test_snapshot_typed_accessors():
    snapshot = FeatureFlagSnapshot(
        values={"on": True, "yes": "Yes", "zero": 0, "ratio": "0.5", "name": "gold"}
    )

    assert snapshot.get_bool("on") is True
    assert snapshot.get_bool("yes") is True
    assert snapshot.get_bool("zero") is False
    assert snapshot.get_bool("missing") is False
    assert snapshot.get_number("ratio") == 0.5
    assert snapshot.get_number("name") is None
    assert snapshot.get_string("on") == "true"
    assert snapshot.get_string("missing") is None


@pytest.mark.asyncio
async def test_initial_snapshot_is_stale_defaults():
    resolver = _resolver(defaults={"feature_x": True})

    assert resolver.snapshot.is_stale is True
    assert resolver.get_bool("feature_x") is True
    assert resolver.is_config_loaded is False


@pytest.mark.asyncio
async def test_refresh_replaces_snapshot():
    resolver = _resolver(source=StaticFlagSource({"a": True}))

    snapshot = await resolver.refresh()

    assert snapshot.is_stale is False
    assert snapshot.values == {"a": True}
    assert snapshot.fetched_at is not None


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_values_marked_stale():
    source = AsyncMock()
    source.fetch_flags.side_effect = [{"a": True}, FlagFetchError("boom")]
    clock = FakeClock()
    resolver = _resolver(source=source, minimum_fetch_interval=0, clock=clock)

    await resolver.refresh()
    clock.now += 1
    snapshot = await resolver.refresh()

    assert snapshot.values == {"a": True}
    assert snapshot.is_stale is True


@pytest.mark.asyncio
async def test_refresh_within_interval_uses_cache():
    source = AsyncMock()
    source.fetch_flags.return_value = {"a": True}
    clock = FakeClock()
    resolver = _resolver(source=source, minimum_fetch_interval=3600, clock=clock)

    await resolver.refresh()
    clock.now += 10
    await resolver.refresh()
    assert source.fetch_flags.await_count == 1

    clock.now += 3600
    await resolver.refresh()
    assert source.fetch_flags.await_count == 2


@pytest.mark.asyncio
async def test_zero_interval_always_refetches():
    source = AsyncMock()
    source.fetch_flags.return_value = {}
    resolver = _resolver(source=source, minimum_fetch_interval=0)

    await resolver.refresh()
    await resolver.refresh()

    assert source.fetch_flags.await_count == 2


@pytest.mark.parametrize(
    "testing, live_value, testing_value, expected",
    [
        (False, True, False, True),
        (False, False, True, False),
        (True, True, False, False),
        (True, False, True, True),
    ],
)
@pytest.mark.asyncio
async def test_resolve_effective_variant_table(testing, live_value, testing_value, expected):
    resolver = _resolver(
        source=StaticFlagSource(
            {
                RemoteConfigKeys.SUPERWALL_LIVE_ENABLED: live_value,
                RemoteConfigKeys.SUPERWALL_TESTING_ENABLED: testing_value,
            }
        ),
        oracle=_oracle(verdict=testing),
    )
    await resolver.refresh()

    value = await resolver.resolve_effective(
        RemoteConfigKeys.SUPERWALL_LIVE_ENABLED,
        RemoteConfigKeys.SUPERWALL_TESTING_ENABLED,
    )

    assert value is expected


@pytest.mark.parametrize(
    "error",
    [
        VersionLookupUnavailableError("com.example.app", "offline"),
        InvalidConfigurationError("bundle_id must be non-empty"),
    ],
)
@pytest.mark.asyncio
async def test_oracle_failure_falls_back_to_live(error):
    resolver = _resolver(
        source=StaticFlagSource({"live": True, "testing": False}),
        oracle=_oracle(error=error),
    )
    await resolver.refresh()

    assert await resolver.resolve_effective("live", "testing") is True


@pytest.mark.asyncio
async def test_failed_verdict_is_not_cached():
    oracle = _oracle()
    oracle.is_installed_version_newer_than_published.side_effect = [
        VersionLookupUnavailableError("com.example.app", "offline"),
        True,
    ]
    resolver = _resolver(oracle=oracle)

    assert await resolver.is_testing_build() is False
    assert await resolver.is_testing_build() is True
    assert oracle.is_installed_version_newer_than_published.await_count == 2


@pytest.mark.asyncio
async def test_verdict_cached_for_resolver_lifetime():
    oracle = _oracle(verdict=True)
    resolver = _resolver(oracle=oracle)

    await resolver.is_testing_build()
    await resolver.is_testing_build()

    assert oracle.is_installed_version_newer_than_published.await_count == 1


@pytest.mark.asyncio
async def test_verdict_ttl_expires():
    oracle = _oracle(verdict=True)
    clock = FakeClock()
    resolver = _resolver(oracle=oracle, verdict_ttl=60, clock=clock)

    await resolver.is_testing_build()
    clock.now += 30
    await resolver.is_testing_build()
    clock.now += 31
    await resolver.is_testing_build()

    assert oracle.is_installed_version_newer_than_published.await_count == 2


@pytest.mark.asyncio
async def test_fetch_config_testing_build_end_to_end():
    """Installed 2.3.0 ahead of published 2.2.9 honors the testing variant."""
    lookup = AsyncMock()
    lookup.lookup_published_version.return_value = "2.2.9"
    resolver = _resolver(
        source=StaticFlagSource(
            {
                RemoteConfigKeys.SUPERWALL_LIVE_ENABLED: False,
                RemoteConfigKeys.SUPERWALL_TESTING_ENABLED: True,
            }
        ),
        oracle=VersionOracle(lookup),
    )

    assert await resolver.fetch_config() is True
    assert resolver.paywall_enabled is True
    assert resolver.is_config_loaded is True


@pytest.mark.asyncio
async def test_fetch_config_with_failing_source_still_loads():
    source = AsyncMock()
    source.fetch_flags.side_effect = FlagFetchError("offline")
    resolver = _resolver(source=source, defaults={RemoteConfigKeys.SUPERWALL_LIVE_ENABLED: True})

    assert await resolver.fetch_config() is True
    assert resolver.is_config_loaded is True
    assert resolver.snapshot.is_stale is True


def _http_response(status=200, payload=None):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json.return_value = payload
    mock_response.__aenter__.return_value = mock_response
    return mock_response


@pytest.mark.asyncio
async def test_http_flag_source_unwraps_envelope():
    session = MagicMock()
    session.get.return_value = _http_response(
        payload={"flags": {"a": True, "b": "x", "nested": {"skip": 1}}}
    )

    flags = await HttpFlagSource("https://flags.example.com", session).fetch_flags()

    assert flags == {"a": True, "b": "x"}


@pytest.mark.asyncio
async def test_http_flag_source_http_error():
    session = MagicMock()
    session.get.return_value = _http_response(status=500)

    with pytest.raises(FlagFetchError):
        await HttpFlagSource("https://flags.example.com", session).fetch_flags()


@pytest.mark.asyncio
async def test_http_flag_source_rejects_non_object():
    session = MagicMock()
    session.get.return_value = _http_response(payload=["a", "b"])

    with pytest.raises(FlagFetchError):
        await HttpFlagSource("https://flags.example.com", session).fetch_flags()


@pytest.mark.asyncio
async def test_refresh_drops_unsupported_values():
    resolver = _resolver(
        source=StaticFlagSource(
            {
                RemoteConfigKeys.SUPERWALL_LIVE_ENABLED: True,
                "cfg": {"a": 1},
                "tiers": ["gold", "silver"],
                "flag": None,
            }
        )
    )

    snapshot = await resolver.refresh()

    assert snapshot.is_stale is False
    assert snapshot.values == {RemoteConfigKeys.SUPERWALL_LIVE_ENABLED: True}


@pytest.mark.asyncio
async def test_fetch_config_with_none_valued_flag():
    resolver = _resolver(source=StaticFlagSource({"flag": None}))

    assert await resolver.fetch_config() is False
    assert resolver.is_config_loaded is True
    assert resolver.snapshot.values == {}


@pytest.mark.parametrize("payload", [None, ["a", "b"], "flags", 42])
@pytest.mark.asyncio
async def test_refresh_non_mapping_source_result_keeps_previous(payload):
    source = AsyncMock()
    source.fetch_flags.side_effect = [{"a": True}, payload]
    resolver = _resolver(source=source, minimum_fetch_interval=0)

    await resolver.refresh()
    snapshot = await resolver.refresh()

    assert snapshot.values == {"a": True}
    assert snapshot.is_stale is True


def test_defaults_with_unsupported_values_are_filtered():
    resolver = _resolver(defaults={"on": True, "nested": {"x": 1}})

    assert resolver.snapshot.values == {"on": True}


@pytest.mark.asyncio
async def test_resolve_with_verdict_uses_one_lookup():
    oracle = _oracle()
    oracle.is_installed_version_newer_than_published.side_effect = [
        VersionLookupUnavailableError("com.example.app", "offline"),
        True,
    ]
    resolver = _resolver(
        source=StaticFlagSource({"live": True, "testing": False}), oracle=oracle
    )
    await resolver.refresh()

    testing, value = await resolver.resolve_with_verdict("live", "testing")

    assert (testing, value) == (False, True)
    assert oracle.is_installed_version_newer_than_published.await_count == 1
