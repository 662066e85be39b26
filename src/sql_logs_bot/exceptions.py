"""
Exception types for the SQL Logs Bot.
"""

from typing import Optional


class SqlLogsBotError(Exception):
    """Base class for all bot errors."""


class EmptyInputError(SqlLogsBotError):
    """Raised when asked to sign empty bytes or an empty file."""


class UninitializedStateError(SqlLogsBotError):
    """Raised when signing a hash accumulator that was never fed any data."""


class NotFoundError(SqlLogsBotError):
    """Raised for a missing local file or a 404 from a remote service."""


class CreationError(SqlLogsBotError):
    """Raised when the vault service reports a vault was not created."""


class WriteError(SqlLogsBotError):
    """Raised when the vault service rejects an event write."""


class BootstrapError(SqlLogsBotError):
    """Raised when no local state database could be established."""


class TransportError(SqlLogsBotError):
    """Raised for any non-2xx HTTP response not covered by a narrower type."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TransportError):
    """HTTP 429 from the indexing service. Retried inside the client."""


class ConnectionClosedError(TransportError):
    """Vault HTTP 400 caused by a connection closed mid-message. Retried."""
