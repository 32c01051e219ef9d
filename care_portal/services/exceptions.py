"""Provides exceptions occurring with external services."""


class ConfigurationError(RuntimeError):
    """A required service parameter is missing or not understood."""


class StorageUnavailable(RuntimeError):
    """Durable storage could not be read or written."""


class AuthenticationFailed(RuntimeError):
    """The authentication service rejected the PIN or credentials."""

    def __init__(self, reason: str, status_code: int = 401) -> None:
        super(AuthenticationFailed, self).__init__(reason)
        self.reason = reason
        self.status_code = status_code


class Unavailable(RuntimeError):
    """The authentication service could not be reached, or misbehaved."""
