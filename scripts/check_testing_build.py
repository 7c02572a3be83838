#!/usr/bin/env python3
"""CLI entry point for testing-build detection and flag resolution.

Usage:
    # Compare TANGENT_APP_VERSION against the published store version
    PYTHONPATH=. python scripts/check_testing_build.py

    # Explicit bundle id and version
    PYTHONPATH=. python scripts/check_testing_build.py --bundle-id com.example.app --version 2.3.0

    # Also resolve the paywall flag from TANGENT_FLAGS_URL
    PYTHONPATH=. python scripts/check_testing_build.py --resolve-flags
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import aiohttp

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.tangent_core.remote_config.app_store import AppStoreLookupClient, VersionOracle
from src.tangent_core.remote_config.exceptions import RemoteConfigError
from src.tangent_core.remote_config.flags import (
    FeatureFlagResolver,
    HttpFlagSource,
    StaticFlagSource,
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Tangent testing-build check")
    parser.add_argument(
        "--bundle-id",
        type=str,
        default=os.getenv("TANGENT_BUNDLE_ID"),
        help="App bundle identifier. Defaults to TANGENT_BUNDLE_ID.",
    )
    parser.add_argument(
        "--version",
        type=str,
        default=os.getenv("TANGENT_APP_VERSION"),
        help="Installed app version. Defaults to TANGENT_APP_VERSION.",
    )
    parser.add_argument(
        "--country",
        type=str,
        default=os.getenv("TANGENT_APP_STORE_COUNTRY"),
        help="Storefront country code (e.g. gb)",
    )
    parser.add_argument(
        "--resolve-flags",
        action="store_true",
        help="Fetch flags from TANGENT_FLAGS_URL and resolve the paywall flag",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger("check_testing_build")

    if not args.bundle_id or not args.version:
        logger.error("Bundle id and version are required (flags or TANGENT_* env vars)")
        return 2

    timeout = aiohttp.ClientTimeout(total=30, connect=10)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        oracle = VersionOracle(AppStoreLookupClient(session, country=args.country))

        try:
            testing = await oracle.is_installed_version_newer_than_published(
                args.bundle_id, args.version
            )
        except RemoteConfigError as exc:
            logger.error("Store version unavailable: %s", exc)
            return 1

        print(f"testing_build={str(testing).lower()}")

        if args.resolve_flags:
            flags_url = os.getenv("TANGENT_FLAGS_URL")
            source = HttpFlagSource(flags_url, session) if flags_url else StaticFlagSource()
            resolver = FeatureFlagResolver(
                source=source,
                oracle=oracle,
                bundle_id=args.bundle_id,
                installed_version=args.version,
                minimum_fetch_interval=0,
            )
            paywall_enabled = await resolver.fetch_config()
            print(f"paywall_enabled={str(paywall_enabled).lower()}")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
