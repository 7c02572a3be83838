"""Custom exceptions for remote configuration and version lookup."""


class RemoteConfigError(Exception):
    """Base exception for all remote config errors."""


class VersionLookupUnavailableError(RemoteConfigError):
    """Raised when the published store version cannot be determined."""

    def __init__(self, bundle_id: str, reason: str):
        self.bundle_id = bundle_id
        self.reason = reason
        super().__init__(
            f"Published version unavailable for bundle_id={bundle_id}: {reason}"
        )


class InvalidVersionError(RemoteConfigError):
    """Raised for version strings that are not dotted numeric."""

    def __init__(self, version: object):
        self.version = version
        super().__init__(f"Malformed version string: {version!r}")


class FlagFetchError(RemoteConfigError):
    """Raised by flag sources when a fetch cannot complete."""
