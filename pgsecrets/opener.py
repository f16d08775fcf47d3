"""Connection openers and the outcome of a single connection attempt.

An opener turns one data source name into one physical connection.  It never
raises driver errors; instead it classifies them so the connector can decide
whether another credential is worth trying:

    ``Connected``     — the connection is open
    ``AuthFailure``   — the server rejected the credentials (SQLSTATE 28P01)
    ``OtherFailure``  — anything else (DNS, refused, timeout, protocol, ...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

from pgsecrets.dsn import redact_dsn
from pgsecrets.exceptions import ConnectionError as PgSecretsConnectionError

logger = logging.getLogger("pgsecrets.opener")

# SQLSTATE 28P01: invalid_password.
INVALID_PASSWORD = "28P01"

# libpq reports failures during connection start-up without a SQLSTATE.
_AUTH_FAILED_MESSAGE = "password authentication failed"


@dataclass(frozen=True, slots=True)
class Connected:
    connection: Any


@dataclass(frozen=True, slots=True)
class AuthFailure:
    error: BaseException
    code: str = INVALID_PASSWORD


@dataclass(frozen=True, slots=True)
class OtherFailure:
    error: BaseException


ConnectOutcome = Union[Connected, AuthFailure, OtherFailure]


def sqlstate_of(exc: BaseException) -> Optional[str]:
    """Return the SQLSTATE carried by a driver error, if any.

    psycopg2 exposes it as ``pgcode``, psycopg 3 as ``sqlstate``.
    """
    for attr in ("pgcode", "sqlstate"):
        code = getattr(exc, attr, None)
        if code:
            return str(code)
    return None


def classify_error(exc: BaseException) -> ConnectOutcome:
    """Map a failed connection attempt to :class:`AuthFailure` or :class:`OtherFailure`."""
    code = sqlstate_of(exc)
    if code == INVALID_PASSWORD:
        return AuthFailure(exc, code)
    if code is None and _AUTH_FAILED_MESSAGE in str(exc):
        return AuthFailure(exc, INVALID_PASSWORD)
    return OtherFailure(exc)


@runtime_checkable
class RawConnectionOpener(Protocol):
    """Opens one physical connection for a data source name."""

    def open(self, dsn: str) -> ConnectOutcome:
        ...


class Psycopg2Opener:
    """Opener backed by ``psycopg2.connect``.

    Extra keyword arguments (``connect_timeout``, ``application_name``, ...)
    are passed through to ``psycopg2.connect`` on every attempt.

    Usage::

        opener = Psycopg2Opener(connect_timeout=5)
        outcome = opener.open("postgresql://localhost/postgres?user=postgres")
    """

    def __init__(self, **connect_kwargs: Any) -> None:
        self._connect_kwargs = connect_kwargs

    @property
    def connect_kwargs(self) -> dict[str, Any]:
        return dict(self._connect_kwargs)

    def open(self, dsn: str) -> ConnectOutcome:
        try:
            import psycopg2  # type: ignore[import-untyped]
        except ImportError as exc:
            raise PgSecretsConnectionError(
                "psycopg2 is required for PostgreSQL support. "
                "Install it with: pip install pgsecrets[postgres]"
            ) from exc

        try:
            conn = psycopg2.connect(dsn, **self._connect_kwargs)
        except psycopg2.Error as exc:
            outcome = classify_error(exc)
            logger.debug(
                "Connection to %s failed (%s): %s",
                redact_dsn(dsn),
                type(outcome).__name__,
                sqlstate_of(exc) or "no sqlstate",
            )
            return outcome

        return Connected(conn)
