"""Package-wide exceptions."""


class TangentConfigurationError(Exception):
    """Base exception for configuration problems."""


class InvalidConfigurationError(TangentConfigurationError):
    """Raised when a required setting or collaborator is missing or invalid.

    Fails the specific operation only.
    """
