"""PostgreSQL data source names.

``DataSourceName`` builds libpq connection URIs of the form::

    postgresql://host[:port]/dbname?user=...&password=...&sslmode=...

Connection parameters travel in the query string so that passwords with
reserved characters never have to be squeezed into the userinfo part.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

_SCHEME = "postgresql"
_MASK = "***"


@dataclass(frozen=True, slots=True)
class DataSourceName:
    """Connection parameters for a single PostgreSQL target."""

    host: str
    dbname: str
    user: str
    password: Optional[str] = field(default=None, repr=False)
    port: Optional[int] = None
    sslmode: str = "disable"

    def with_password(self, password: str) -> DataSourceName:
        """Return a copy carrying *password*."""
        return replace(self, password=password)

    def to_uri(self) -> str:
        return self._render(self.password)

    def redacted(self) -> str:
        """URI safe for logs: the password, if any, is masked."""
        return self._render(_MASK if self.password is not None else None)

    def _render(self, password: Optional[str]) -> str:
        host = f"[{self.host}]" if ":" in self.host and not self.host.startswith("[") else self.host
        netloc = host if self.port is None else f"{host}:{self.port}"
        query: list[tuple[str, str]] = [("user", self.user)]
        if password is not None:
            query.append(("password", password))
        query.append(("sslmode", self.sslmode))
        return urlunsplit(
            (
                _SCHEME,
                netloc,
                "/" + quote(self.dbname, safe=""),
                urlencode(query, quote_via=quote, safe="*"),
                "",
            )
        )

    def __str__(self) -> str:
        return self.redacted()


def redact_dsn(dsn: str) -> str:
    """Mask the password in an arbitrary DSN string.

    Handles both URI DSNs (userinfo or ``password=`` query parameter) and
    libpq key/value strings (``password=...``).
    """
    if "://" not in dsn:
        parts = []
        for token in dsn.split():
            key, sep, _value = token.partition("=")
            parts.append(f"{key}={_MASK}" if sep and key == "password" else token)
        return " ".join(parts)

    parts = urlsplit(dsn)
    netloc = parts.netloc
    if "@" in netloc:
        userinfo, _, hostport = netloc.rpartition("@")
        user, sep, _password = userinfo.partition(":")
        netloc = f"{user}:{_MASK}@{hostport}" if sep else netloc
    query = [
        (key, _MASK if key == "password" else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(
        (
            parts.scheme,
            netloc,
            parts.path,
            urlencode(query, quote_via=quote, safe="*"),
            parts.fragment,
        )
    )
