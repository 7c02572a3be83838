"""Published store version lookup and testing-build detection.

A build is treated as a testing build when the installed version is
numerically newer than the version currently published on the App Store
(pre-release / review builds).
"""
import asyncio
import json
import logging
import random
from typing import Optional

import aiohttp

from ..exceptions import InvalidConfigurationError
from .exceptions import InvalidVersionError, VersionLookupUnavailableError
from .version import is_newer, parse_version


logger = logging.getLogger(__name__)


LOOKUP_URL = "https://itunes.apple.com/lookup"


class AppStoreLookupClient:
    """Async client for the public App Store lookup endpoint.

    Retries 429/5xx/network errors with capped exponential backoff.
    """

    MAX_RETRY_ATTEMPTS = 3
    RETRY_BASE_DELAY = 0.5  # seconds
    RETRY_MULTIPLIER = 2.0
    RETRY_MAX_DELAY = 8.0  # seconds
    RETRY_JITTER_MS = 250  # milliseconds

    def __init__(
        self,
        session: aiohttp.ClientSession,
        country: Optional[str] = None,
        lookup_url: str = LOOKUP_URL,
    ) -> None:
        """Initialize lookup client.

        Args:
            session: Injected aiohttp ClientSession
            country: Optional storefront country code (e.g. "gb")
            lookup_url: Lookup endpoint override
        """
        self.session = session
        self.country = country
        self.lookup_url = lookup_url

    async def lookup_published_version(self, bundle_id: str) -> Optional[str]:
        """Fetch the published version for a bundle identifier.

        Args:
            bundle_id: App bundle identifier

        Returns:
            Version string of the first result, or None if the store has no
            result for this bundle id

        Raises:
            VersionLookupUnavailableError: On network errors, non-200
                responses, or malformed JSON
        """
        params = {"bundleId": bundle_id}
        if self.country:
            params["country"] = self.country

        payload = await self._get_json(bundle_id, params)

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise VersionLookupUnavailableError(bundle_id, "response missing results")

        if not results:
            logger.info("No App Store result for bundle_id=%s", bundle_id)
            return None

        first = results[0]
        version = first.get("version") if isinstance(first, dict) else None
        if not isinstance(version, str) or not version.strip():
            raise VersionLookupUnavailableError(bundle_id, "result missing version")

        return version.strip()

    async def _get_json(self, bundle_id: str, params: dict) -> object:
        attempt = 0
        while True:
            attempt += 1

            try:
                timeout = aiohttp.ClientTimeout(total=15, connect=5)
                async with self.session.get(
                    self.lookup_url,
                    params=params,
                    timeout=timeout,
                ) as resp:
                    if resp.status == 429 or 500 <= resp.status < 600:
                        if attempt >= self.MAX_RETRY_ATTEMPTS:
                            raise VersionLookupUnavailableError(
                                bundle_id,
                                f"HTTP {resp.status} after {attempt} attempts",
                            )

                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "App Store lookup HTTP %s, backoff=%.2fs, attempt=%s",
                            resp.status,
                            delay,
                            attempt,
                        )
                        await asyncio.sleep(delay)
                        continue

                    if resp.status != 200:
                        raise VersionLookupUnavailableError(
                            bundle_id, f"HTTP {resp.status} (non-retryable)"
                        )

                    # Lookup responses are served as text/javascript
                    try:
                        return await resp.json(content_type=None)
                    except (json.JSONDecodeError, ValueError) as exc:
                        raise VersionLookupUnavailableError(
                            bundle_id, f"malformed JSON: {exc}"
                        ) from exc

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt >= self.MAX_RETRY_ATTEMPTS:
                    raise VersionLookupUnavailableError(
                        bundle_id, f"network error after {attempt} attempts: {exc}"
                    ) from exc

                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "App Store lookup network error: %s, backoff=%.2fs, attempt=%s",
                    exc,
                    delay,
                    attempt,
                )
                await asyncio.sleep(delay)

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff with jitter.

        Args:
            attempt: Current retry attempt number (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.RETRY_BASE_DELAY * (self.RETRY_MULTIPLIER ** (attempt - 1)),
            self.RETRY_MAX_DELAY,
        )
        jitter = random.uniform(0, self.RETRY_JITTER_MS / 1000.0)
        return delay + jitter


class VersionOracle:
    """Decides whether the installed build is ahead of the published one."""

    def __init__(self, lookup: AppStoreLookupClient) -> None:
        self.lookup = lookup

    async def is_installed_version_newer_than_published(
        self, bundle_id: str, installed_version: str
    ) -> bool:
        """Compare installed version against the published store version.

        Args:
            bundle_id: App bundle identifier
            installed_version: Version of the running build

        Returns:
            True iff installed_version > published version

        Raises:
            InvalidConfigurationError: If bundle_id is empty
            InvalidVersionError: If installed_version is malformed
            VersionLookupUnavailableError: If the published version cannot
                be determined
        """
        if not bundle_id:
            raise InvalidConfigurationError("bundle_id must be non-empty")

        parse_version(installed_version)

        published = await self.lookup.lookup_published_version(bundle_id)
        if published is None:
            raise VersionLookupUnavailableError(bundle_id, "no result for bundle id")

        try:
            newer = is_newer(installed_version, published)
        except InvalidVersionError as exc:
            raise VersionLookupUnavailableError(
                bundle_id, f"published version malformed: {published!r}"
            ) from exc

        logger.info(
            "Installed version: %s, store version: %s, is_testing_build: %s",
            installed_version,
            published,
            newer,
        )
        return newer
