"""Error taxonomy shared by the relay services.

Every error here is expected to end up as reply text (or a cached failure
``Result``) rather than reaching the webhook transport.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class ConfigurationError(RelayError):
    """A backend is unknown or lacks the settings it needs."""

    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} is not available: {reason}")


class ProviderError(RelayError):
    """A completion call failed (transport, auth, quota or payload)."""

    def __init__(self, backend: str, reason: str, status_code: Optional[int] = None):
        self.backend = backend
        self.reason = reason
        self.status_code = status_code
        detail = f"{reason} (status {status_code})" if status_code is not None else reason
        super().__init__(f"{backend} request failed: {detail}")


class PersistenceError(RelayError):
    """The durable store could not be set up."""


class UnsupportedOperationError(RelayError):
    def __init__(self, backend: str, operation: str):
        self.backend = backend
        self.operation = operation
        super().__init__(f"{backend} does not support {operation}")


class CommandTableError(ValueError):
    """The command table violates the prefix invariant."""
