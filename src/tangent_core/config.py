"""Environment-driven SDK settings."""
import os
from dataclasses import dataclass, field
from typing import Optional

from .billing.classifier import DEFAULT_PRIMARY_ENTITLEMENT
from .exceptions import InvalidConfigurationError
from .remote_config.flags import DEVELOPMENT_FETCH_INTERVAL, PRODUCTION_FETCH_INTERVAL


DEVELOPMENT = "development"
PRODUCTION = "production"

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value or not value.strip():
        raise InvalidConfigurationError(f"{name} environment variable not configured")
    return value.strip()


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class SDKSettings:
    """Resolved SDK configuration."""

    bundle_id: str
    app_version: str
    environment: str = PRODUCTION
    platform: str = "iOS"
    primary_entitlement: str = DEFAULT_PRIMARY_ENTITLEMENT
    app_store_country: Optional[str] = None
    flags_url: Optional[str] = None
    events_raw_dir: str = "data/events/raw"
    enable_att: bool = False
    redis_url: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def minimum_fetch_interval(self) -> float:
        """Flag cache lifetime: always refetch in development."""
        if self.is_development:
            return DEVELOPMENT_FETCH_INTERVAL
        return PRODUCTION_FETCH_INTERVAL

    @classmethod
    def from_env(cls) -> "SDKSettings":
        """Load settings from TANGENT_* environment variables.

        Raises:
            InvalidConfigurationError: If a required variable is missing or
                TANGENT_ENVIRONMENT is not development/production
        """
        environment = (os.getenv("TANGENT_ENVIRONMENT") or PRODUCTION).strip().lower()
        if environment not in (DEVELOPMENT, PRODUCTION):
            raise InvalidConfigurationError(
                f"TANGENT_ENVIRONMENT must be '{DEVELOPMENT}' or '{PRODUCTION}', "
                f"got '{environment}'"
            )

        return cls(
            bundle_id=_require("TANGENT_BUNDLE_ID"),
            app_version=_require("TANGENT_APP_VERSION"),
            environment=environment,
            platform=_optional("TANGENT_PLATFORM") or "iOS",
            primary_entitlement=(
                _optional("TANGENT_PRIMARY_ENTITLEMENT") or DEFAULT_PRIMARY_ENTITLEMENT
            ),
            app_store_country=_optional("TANGENT_APP_STORE_COUNTRY"),
            flags_url=_optional("TANGENT_FLAGS_URL"),
            events_raw_dir=_optional("TANGENT_EVENTS_RAW_DIR") or "data/events/raw",
            enable_att=(os.getenv("TANGENT_ENABLE_ATT") or "").strip().lower()
            in _TRUE_STRINGS,
            redis_url=_optional("REDIS_URL"),
            api_key=_optional("TANGENT_API_KEY"),
        )
