"""Secrets-aware PostgreSQL connector.

``SecretsConnector`` wraps a connection opener and a credentials provider:

    connect() → lock → budget = provider.retries()
    → loop { provider.get_dsn() → opener.open(dsn) → classify }
    → native connection, or the terminal error

Only authentication failures (SQLSTATE 28P01) are retried, each time with a
freshly fetched data source name, and never more often than the provider's
budget.  Provider errors and every other connection failure are raised on the
spot, unchanged.

Calls on one connector are fully serialized: the lock is held across every
credential fetch and every open attempt of a call, so two callers can never
consume a provider's rotation sequence at the same time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from pgsecrets.credentials import CredentialsProvider
from pgsecrets.exceptions import ConnectCancelledError, RetryBudgetError
from pgsecrets.opener import AuthFailure, Connected, Psycopg2Opener, RawConnectionOpener

logger = logging.getLogger("pgsecrets.connector")


class SecretsConnector:
    """Produces one physical connection per call, rotating credentials on auth failure.

    Parameters
    ----------
    provider:
        Source of data source names and of the attempt budget.
    opener:
        Opens physical connections.  Defaults to :class:`Psycopg2Opener`.

    Usage::

        connector = SecretsConnector(provider)
        conn = connector.connect()   # native psycopg2 connection

        # As a pool creator:
        engine = sqlalchemy.create_engine("postgresql+psycopg2://", creator=connector)
    """

    def __init__(
        self,
        provider: CredentialsProvider,
        opener: Optional[RawConnectionOpener] = None,
    ) -> None:
        self._provider = provider
        self._opener = opener if opener is not None else Psycopg2Opener()
        self._lock = threading.Lock()

    @property
    def opener(self) -> RawConnectionOpener:
        """The wrapped connection opener."""
        return self._opener

    @property
    def provider(self) -> CredentialsProvider:
        return self._provider

    def connect(self, cancel: Optional[threading.Event] = None) -> Any:
        """Open and return a native connection.

        *cancel* is checked before each attempt; an attempt already in flight
        is never interrupted.

        Raises
        ------
        RetryBudgetError
            The provider reported a budget of zero or less.
        ConnectCancelledError
            *cancel* was set before an attempt could start.
        Exception
            Whatever the provider raised, the driver error of a non-auth
            failure, or the driver error of the last auth failure once the
            budget is spent.
        """
        with self._lock:
            budget = self._provider.retries()
            if budget <= 0:
                raise RetryBudgetError(f"Credentials provider declared a budget of {budget}")

            last_auth_error: Optional[BaseException] = None
            for attempt in range(budget):
                if cancel is not None and cancel.is_set():
                    raise ConnectCancelledError(
                        f"Connect cancelled before attempt {attempt + 1}/{budget}"
                    ) from last_auth_error

                dsn = self._provider.get_dsn()
                outcome = self._opener.open(dsn)

                if isinstance(outcome, Connected):
                    if attempt:
                        logger.info("Connected after %d credential rotation(s)", attempt)
                    return outcome.connection
                if not isinstance(outcome, AuthFailure):
                    logger.debug("Attempt %d/%d failed, not retrying", attempt + 1, budget)
                    raise outcome.error

                logger.debug(
                    "Attempt %d/%d rejected (%s), rotating credentials",
                    attempt + 1,
                    budget,
                    outcome.code,
                )
                last_auth_error = outcome.error

            logger.warning("Authentication failed with all %d credential(s)", budget)
            assert last_auth_error is not None
            raise last_auth_error

    def __call__(self) -> Any:
        return self.connect()
