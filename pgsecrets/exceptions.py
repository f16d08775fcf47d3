"""Custom exceptions for pgsecrets.

All exceptions inherit from PgSecretsError to allow catching any library error.
Secrets (tokens, passwords, full DSNs) are never included in exception messages.

Driver errors raised while opening a connection are *not* wrapped: the
connector surfaces them exactly as the driver produced them.
"""

from __future__ import annotations


class PgSecretsError(Exception):
    """Base exception for all pgsecrets errors."""


class CredentialError(PgSecretsError):
    """Raised when a credentials provider cannot produce a data source name."""


class AuthError(CredentialError):
    """Raised when a control-plane token is rejected by a credential service."""


class ConnectionError(PgSecretsError):  # noqa: A001 — intentional shadow of builtin
    """Raised when the connection opener cannot be used (e.g. driver missing)."""


class RetryBudgetError(PgSecretsError):
    """Raised when a provider declares no connection attempts at all."""


class ConnectCancelledError(PgSecretsError):
    """Raised when a connect call is cancelled between two attempts."""
