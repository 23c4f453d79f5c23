"""Error taxonomy for the reconciliation engine"""

from typing import Any, List, Optional


class ReconciliationError(Exception):
    """Base class for every error raised by the reconciliation engine."""


class ConfigurationError(ReconciliationError):
    """Required configuration (e.g. the upstream API key) is missing. Never retried."""


class TransportError(ReconciliationError):
    """Network failure or timeout while talking to the upstream."""


class UpstreamProtocolError(ReconciliationError):
    """The upstream answered with a non-2xx status or a GraphQL error envelope."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        messages: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.messages = list(messages or [])


class ValidationError(ReconciliationError):
    """An untrusted upstream value was rejected by the sanitizer."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(f"Invalid {field}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class DependencyMissingError(ReconciliationError):
    """A record references an entity that is not stored locally."""


class StorageError(ReconciliationError):
    """Transaction or constraint failure in the local store."""
