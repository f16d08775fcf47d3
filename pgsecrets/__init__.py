"""pgsecrets — PostgreSQL connections with credential rotation.

Quick start::

    from pgsecrets import DataSourceName, PasswordListCredentialsProvider, connect

    provider = PasswordListCredentialsProvider(
        DataSourceName(host="db.internal", dbname="app", user="app"),
        ["current-password", "previous-password"],
    )
    conn = connect(provider)          # native psycopg2 connection

Each connect call asks the provider for a data source name and, if the server
rejects the credentials (SQLSTATE 28P01), tries the next one, up to the
provider's budget.  Any other failure is raised immediately.
"""

from __future__ import annotations

import logging
from typing import Any

from pgsecrets.aws import AwsSecretsManagerCredentialsProvider
from pgsecrets.connector import SecretsConnector
from pgsecrets.credentials import (
    CredentialsProvider,
    EnvironmentCredentialsProvider,
    HttpCredentialsProvider,
    PasswordListCredentialsProvider,
    StaticCredentialsProvider,
)
from pgsecrets.dsn import DataSourceName, redact_dsn
from pgsecrets.exceptions import (
    AuthError,
    ConnectCancelledError,
    ConnectionError,
    CredentialError,
    PgSecretsError,
    RetryBudgetError,
)
from pgsecrets.opener import (
    INVALID_PASSWORD,
    AuthFailure,
    Connected,
    ConnectOutcome,
    OtherFailure,
    Psycopg2Opener,
    RawConnectionOpener,
    classify_error,
)

logger = logging.getLogger("pgsecrets")


def connect(provider: CredentialsProvider, **connect_kwargs: Any) -> Any:
    """Open one psycopg2 connection using *provider*.

    Parameters
    ----------
    provider : CredentialsProvider
        Source of data source names and of the attempt budget.
    **connect_kwargs
        Passed through to ``psycopg2.connect`` (e.g. ``connect_timeout``).

    Returns
    -------
    psycopg2.extensions.connection
        The native connection.

    Examples
    --------
    >>> from pgsecrets import EnvironmentCredentialsProvider, connect
    >>> conn = connect(EnvironmentCredentialsProvider(), connect_timeout=5)
    """
    return SecretsConnector(provider, Psycopg2Opener(**connect_kwargs)).connect()


__all__ = [
    # Convenience functions
    "connect",
    "redact_dsn",
    # Connector
    "SecretsConnector",
    # Providers
    "CredentialsProvider",
    "StaticCredentialsProvider",
    "PasswordListCredentialsProvider",
    "EnvironmentCredentialsProvider",
    "HttpCredentialsProvider",
    "AwsSecretsManagerCredentialsProvider",
    "DataSourceName",
    # Openers
    "RawConnectionOpener",
    "Psycopg2Opener",
    "ConnectOutcome",
    "Connected",
    "AuthFailure",
    "OtherFailure",
    "classify_error",
    "INVALID_PASSWORD",
    # Exceptions
    "PgSecretsError",
    "AuthError",
    "ConnectionError",
    "CredentialError",
    "RetryBudgetError",
    "ConnectCancelledError",
]

__version__ = "0.1.0"
