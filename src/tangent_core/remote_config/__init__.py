"""Remote configuration: published-version lookup and feature flags."""
from .app_store import AppStoreLookupClient, VersionOracle
from .exceptions import (
    FlagFetchError,
    InvalidVersionError,
    RemoteConfigError,
    VersionLookupUnavailableError,
)
from .flags import (
    FeatureFlagResolver,
    FeatureFlagSnapshot,
    HttpFlagSource,
    RemoteConfigKeys,
    StaticFlagSource,
)
from .version import compare_versions, is_newer, parse_version

__all__ = [
    "AppStoreLookupClient",
    "VersionOracle",
    "FeatureFlagResolver",
    "FeatureFlagSnapshot",
    "HttpFlagSource",
    "StaticFlagSource",
    "RemoteConfigKeys",
    "RemoteConfigError",
    "VersionLookupUnavailableError",
    "InvalidVersionError",
    "FlagFetchError",
    "compare_versions",
    "is_newer",
    "parse_version",
]
