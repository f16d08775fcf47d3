"""Credentials providers.

A provider hands the connector one data source name per call and declares
how many attempts the connector may make before giving up.  Each call to
``get_dsn()`` conceptually advances to the next credential to try; how that
state is kept (and whether it is safe to share) is up to the provider.

The connector serializes its own calls, so a provider used by a single
connector never sees concurrent ``get_dsn()`` calls.  The providers in this
module still guard their cursor with a lock so they can be shared.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Iterable, Mapping, Optional, Protocol, Sequence, runtime_checkable

import httpx

from pgsecrets.dsn import DataSourceName, redact_dsn
from pgsecrets.exceptions import AuthError, CredentialError

logger = logging.getLogger("pgsecrets.credentials")

_DEFAULT_ENV_PREFIX = "PGSECRETS_"
_CREDENTIALS_PATH = "/v1/db/credentials"
_HTTP_TIMEOUT = 10


@runtime_checkable
class CredentialsProvider(Protocol):
    """Source of PostgreSQL data source names."""

    def get_dsn(self) -> str:
        """Return the next data source name to try.

        Raise to signal failure; the connector never retries a provider error.
        """
        ...

    def retries(self) -> int:
        """Maximum number of attempts for one connect call.

        ``1`` means no rotation.  The value must not change while a connect
        call is in progress.
        """
        ...


class StaticCredentialsProvider:
    """Walks a fixed list of data source names in order.

    Reading the budget starts the walk over, so every connect call sees the
    list from the top.
    """

    def __init__(self, dsns: Iterable[str]) -> None:
        self._dsns = list(dsns)
        self._count = 0
        self._lock = threading.Lock()

    @classmethod
    def repeat(cls, dsn: str, times: int) -> StaticCredentialsProvider:
        """Non-rotating provider returning *dsn* up to *times* times."""
        return cls([dsn] * times)

    @property
    def count(self) -> int:
        """Number of data source names handed out since the budget was last read."""
        return self._count

    def get_dsn(self) -> str:
        with self._lock:
            if self._count >= len(self._dsns):
                raise CredentialError(
                    f"No data source name left ({len(self._dsns)} configured)"
                )
            dsn = self._dsns[self._count]
            self._count += 1
        logger.debug("Returning data source name %s", redact_dsn(dsn))
        return dsn

    def retries(self) -> int:
        with self._lock:
            self._count = 0
            return len(self._dsns)


class PasswordListCredentialsProvider:
    """Templates one base DSN with each candidate password in turn.

    The n-th call to :meth:`get_dsn` returns *base* configured with the n-th
    password, so the budget is the number of passwords.  Reading the budget
    starts over at the first password.

    Usage::

        provider = PasswordListCredentialsProvider(
            DataSourceName(host="localhost", dbname="postgres", user="postgres"),
            ["current", "previous"],
        )
    """

    def __init__(self, base: DataSourceName, passwords: Sequence[str]) -> None:
        self._base = base
        self._passwords = list(passwords)
        self._count = 0
        self._lock = threading.Lock()

    def get_dsn(self) -> str:
        with self._lock:
            if self._count >= len(self._passwords):
                raise CredentialError(
                    f"No password left ({len(self._passwords)} configured)"
                )
            dsn = self._base.with_password(self._passwords[self._count])
            self._count += 1
        logger.debug("Returning data source name %s", dsn.redacted())
        return dsn.to_uri()

    def retries(self) -> int:
        with self._lock:
            self._count = 0
            return len(self._passwords)


class EnvironmentCredentialsProvider:
    """Reads data source names from environment variables.

    ``<prefix>DSN`` is the current DSN; ``<prefix>DSN_0``, ``<prefix>DSN_1``,
    ... are rotation candidates tried after it, in order.  Variables are read
    when the budget is computed, so a rotated value is picked up by the next
    connect call.
    """

    def __init__(
        self,
        prefix: str = _DEFAULT_ENV_PREFIX,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._prefix = prefix
        self._environ = environ if environ is not None else os.environ
        self._candidates: list[str] = []
        self._count = 0
        self._lock = threading.Lock()

    def _collect(self) -> list[str]:
        found: list[str] = []
        current = self._environ.get(f"{self._prefix}DSN")
        if current:
            found.append(current)
        index = 0
        while True:
            value = self._environ.get(f"{self._prefix}DSN_{index}")
            if value is None:
                break
            if value:
                found.append(value)
            index += 1
        return found

    def retries(self) -> int:
        with self._lock:
            self._candidates = self._collect()
            self._count = 0
            return len(self._candidates)

    def get_dsn(self) -> str:
        with self._lock:
            if not self._candidates:
                self._candidates = self._collect()
            if not self._candidates:
                raise CredentialError(f"{self._prefix}DSN is not set")
            if self._count >= len(self._candidates):
                raise CredentialError(
                    f"No data source name left in {self._prefix}DSN_* "
                    f"({len(self._candidates)} configured)"
                )
            dsn = self._candidates[self._count]
            self._count += 1
        return dsn


class HttpCredentialsProvider:
    """Fetches fresh database credentials from a control-plane API.

    Every :meth:`get_dsn` call asks the service for a credential set, so a
    retry after an authentication failure picks up a rotated password.

    Parameters
    ----------
    api_base_url:
        Root URL of the control-plane API.
    token:
        Bearer token for the credential service.
    database:
        Database name to connect to.
    attempts:
        Budget reported by :meth:`retries` (default ``2``: the current
        credential and one refetch).
    sslmode:
        libpq ``sslmode`` for the produced DSN.
    transport:
        Optional ``httpx`` transport (testing / custom networking).
    """

    def __init__(
        self,
        api_base_url: str,
        token: str,
        database: str,
        *,
        attempts: int = 2,
        sslmode: str = "require",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._database = database
        self._attempts = attempts
        self._sslmode = sslmode
        self._transport = transport

    def retries(self) -> int:
        return self._attempts

    def get_dsn(self) -> str:
        return self.fetch().to_uri()

    def fetch(self) -> DataSourceName:
        """Retrieve a credential set and return it as a :class:`DataSourceName`."""
        url = f"{self._api_base_url}{_CREDENTIALS_PATH}"
        headers = {"Authorization": f"Bearer {self._token}"}
        body = {"database": self._database, "db_type": "postgres"}

        logger.debug("Requesting credentials (database=%s)", self._database)

        try:
            with httpx.Client(timeout=_HTTP_TIMEOUT, transport=self._transport) as client:
                resp = client.post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise CredentialError(f"Credential request failed: {exc}") from exc

        if resp.status_code == 401:
            raise AuthError("Token rejected by credential service")
        if resp.status_code != 200:
            raise CredentialError(
                f"Credential service returned HTTP {resp.status_code}: {resp.text}"
            )

        try:
            data = resp.json()
            dsn = DataSourceName(
                host=data["host"],
                port=int(data["port"]),
                user=data["username"],
                password=data["password"],
                dbname=data.get("database") or self._database,
                sslmode=self._sslmode,
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise CredentialError(f"Malformed credential response: {exc}") from exc

        logger.debug("Credentials obtained for %s", dsn.redacted())
        return dsn
