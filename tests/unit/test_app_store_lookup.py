"""Unit tests for AppStoreLookupClient and VersionOracle (mocked)."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from src.tangent_core.exceptions import InvalidConfigurationError
from src.tangent_core.remote_config.app_store import AppStoreLookupClient, VersionOracle
from src.tangent_core.remote_config.exceptions import (
    InvalidVersionError,
    VersionLookupUnavailableError,
)


def _response(status=200, payload=None, json_error=None):
    mock_response = AsyncMock()
    mock_response.status = status
    if json_error is not None:
        mock_response.json.side_effect = json_error
    else:
        mock_response.json.return_value = payload
    mock_response.__aenter__.return_value = mock_response
    return mock_response


@pytest.fixture
def mock_session():
    """Mock aiohttp ClientSession."""
    return MagicMock()


@pytest.fixture
def lookup_client(mock_session):
    return AppStoreLookupClient(session=mock_session)


@pytest.fixture
def no_sleep():
    with patch(
        "src.tangent_core.remote_config.app_store.asyncio.sleep", new_callable=AsyncMock
    ) as mock_sleep:
        yield mock_sleep


@pytest.mark.asyncio
async def test_lookup_returns_first_result_version(lookup_client, mock_session):
    mock_session.get.return_value = _response(
        payload={"resultCount": 1, "results": [{"version": "2.2.9"}]}
    )

    version = await lookup_client.lookup_published_version("com.example.app")

    assert version == "2.2.9"
    _, kwargs = mock_session.get.call_args
    assert kwargs["params"] == {"bundleId": "com.example.app"}


@pytest.mark.asyncio
async def test_lookup_passes_country(mock_session):
    client = AppStoreLookupClient(session=mock_session, country="gb")
    mock_session.get.return_value = _response(payload={"results": [{"version": "1.0"}]})

    await client.lookup_published_version("com.example.app")

    _, kwargs = mock_session.get.call_args
    assert kwargs["params"]["country"] == "gb"


@pytest.mark.asyncio
async def test_lookup_empty_results_returns_none(lookup_client, mock_session):
    mock_session.get.return_value = _response(payload={"resultCount": 0, "results": []})

    assert await lookup_client.lookup_published_version("com.example.app") is None


@pytest.mark.asyncio
async def test_lookup_missing_version_is_unavailable(lookup_client, mock_session):
    mock_session.get.return_value = _response(payload={"results": [{"trackName": "App"}]})

    with pytest.raises(VersionLookupUnavailableError):
        await lookup_client.lookup_published_version("com.example.app")


@pytest.mark.asyncio
async def test_lookup_malformed_json_is_unavailable(lookup_client, mock_session):
    mock_session.get.return_value = _response(json_error=ValueError("bad json"))

    with pytest.raises(VersionLookupUnavailableError) as exc_info:
        await lookup_client.lookup_published_version("com.example.app")

    assert "malformed JSON" in str(exc_info.value)


@pytest.mark.asyncio
async def test_lookup_non_retryable_status(lookup_client, mock_session, no_sleep):
    mock_session.get.return_value = _response(status=404)

    with pytest.raises(VersionLookupUnavailableError):
        await lookup_client.lookup_published_version("com.example.app")

    assert mock_session.get.call_count == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_lookup_retries_server_errors(lookup_client, mock_session, no_sleep):
    mock_session.get.side_effect = [
        _response(status=503),
        _response(status=429),
        _response(payload={"results": [{"version": "3.0.1"}]}),
    ]

    version = await lookup_client.lookup_published_version("com.example.app")

    assert version == "3.0.1"
    assert mock_session.get.call_count == 3
    assert no_sleep.await_count == 2


@pytest.mark.asyncio
async def test_lookup_gives_up_after_max_attempts(lookup_client, mock_session, no_sleep):
    mock_session.get.side_effect = [
        _response(status=500) for _ in range(AppStoreLookupClient.MAX_RETRY_ATTEMPTS)
    ]

    with pytest.raises(VersionLookupUnavailableError) as exc_info:
        await lookup_client.lookup_published_version("com.example.app")

    assert "after 3 attempts" in str(exc_info.value)


@pytest.mark.asyncio
async def test_lookup_network_error_is_unavailable(lookup_client, mock_session, no_sleep):
    mock_session.get.side_effect = aiohttp.ClientConnectionError("offline")

    with pytest.raises(VersionLookupUnavailableError):
        await lookup_client.lookup_published_version("com.example.app")

    assert mock_session.get.call_count == AppStoreLookupClient.MAX_RETRY_ATTEMPTS


@pytest.mark.asyncio
async def test_lookup_timeout_is_retried(lookup_client, mock_session, no_sleep):
    mock_session.get.side_effect = [
        asyncio.TimeoutError(),
        _response(payload={"results": [{"version": "1.0.0"}]}),
    ]

    assert await lookup_client.lookup_published_version("com.example.app") == "1.0.0"


def test_calculate_backoff_is_capped(lookup_client):
    for attempt in range(1, 10):
        delay = lookup_client._calculate_backoff(attempt)
        assert delay <= AppStoreLookupClient.RETRY_MAX_DELAY + 0.25


def _oracle(published):
    lookup = AsyncMock()
    if isinstance(published, Exception):
        lookup.lookup_published_version.side_effect = published
    else:
        lookup.lookup_published_version.return_value = published
    return VersionOracle(lookup)


@pytest.mark.asyncio
async def test_oracle_newer_installed_version():
    oracle = _oracle("2.2.9")

    assert await oracle.is_installed_version_newer_than_published("com.example.app", "2.3.0")


@pytest.mark.asyncio
async def test_oracle_equal_or_older_is_not_newer():
    assert not await _oracle("2.3.0").is_installed_version_newer_than_published(
        "com.example.app", "2.3.0"
    )
    assert not await _oracle("2.3.0").is_installed_version_newer_than_published(
        "com.example.app", "2.2"
    )


@pytest.mark.asyncio
async def test_oracle_no_result_is_unavailable():
    with pytest.raises(VersionLookupUnavailableError):
        await _oracle(None).is_installed_version_newer_than_published("com.example.app", "1.0")


@pytest.mark.asyncio
async def test_oracle_malformed_published_version_is_unavailable():
    with pytest.raises(VersionLookupUnavailableError):
        await _oracle("1.0-beta").is_installed_version_newer_than_published(
            "com.example.app", "1.0"
        )


@pytest.mark.asyncio
async def test_oracle_malformed_installed_version_skips_lookup():
    oracle = _oracle("1.0")

    with pytest.raises(InvalidVersionError):
        await oracle.is_installed_version_newer_than_published("com.example.app", "dev")

    oracle.lookup.lookup_published_version.assert_not_awaited()


@pytest.mark.asyncio
async def test_oracle_empty_bundle_id():
    with pytest.raises(InvalidConfigurationError):
        await _oracle("1.0").is_installed_version_newer_than_published("", "1.0")
