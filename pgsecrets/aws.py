"""AWS Secrets Manager credentials provider.

Rotation in Secrets Manager keeps older versions of a secret around
(``AWSPREVIOUS``) while a new one becomes ``AWSCURRENT``.  A connection
opened with a stale password is retried with the next version, newest
first, so a client survives the window in which the database and the
secret disagree.

The secret is expected in the RDS format::

    {"engine": "postgres", "username": "...", "password": "...",
     "host": "...", "port": 5432, "dbname": "..."}
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from pgsecrets.dsn import DataSourceName
from pgsecrets.exceptions import CredentialError

logger = logging.getLogger("pgsecrets.aws")

_STAGE_ORDER = {"AWSCURRENT": 0, "AWSPENDING": 1, "AWSPREVIOUS": 2}
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def _version_rank(version: dict[str, Any]) -> tuple[int, float]:
    stages = version.get("VersionStages") or []
    stage = min((_STAGE_ORDER.get(s, len(_STAGE_ORDER)) for s in stages), default=len(_STAGE_ORDER))
    created = version.get("CreatedDate") or _EPOCH
    if isinstance(created, datetime):
        created = created.timestamp()
    return stage, -float(created)


class AwsSecretsManagerCredentialsProvider:
    """Produces one DSN per stored version of an RDS-style secret.

    Parameters
    ----------
    secret_id:
        Name or ARN of the secret.
    client:
        Pre-built ``secretsmanager`` client.  Created with ``boto3`` when
        omitted.
    region_name:
        Region for the client created with ``boto3``.
    sslmode:
        libpq ``sslmode`` for the produced DSNs.
    """

    def __init__(
        self,
        secret_id: str,
        *,
        client: Any = None,
        region_name: Optional[str] = None,
        sslmode: str = "require",
    ) -> None:
        self._secret_id = secret_id
        self._region_name = region_name
        self._client = client
        self._sslmode = sslmode
        self._versions: Optional[list[str]] = None
        self._count = 0
        self._lock = threading.Lock()

    # -- CredentialsProvider -----------------------------------------------

    def retries(self) -> int:
        with self._lock:
            self._versions = self._list_versions()
            self._count = 0
            return len(self._versions)

    def get_dsn(self) -> str:
        with self._lock:
            if self._versions is None:
                self._versions = self._list_versions()
            if self._count >= len(self._versions):
                raise CredentialError(
                    f"No secret version left ({len(self._versions)} listed)"
                )
            version_id = self._versions[self._count]
            self._count += 1

        dsn = self._fetch(version_id)
        logger.debug("Secret version %s resolved to %s", version_id, dsn.redacted())
        return dsn.to_uri()

    # -- private -----------------------------------------------------------

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                import boto3  # type: ignore[import-untyped]
            except ImportError as exc:
                raise CredentialError(
                    "boto3 is required for AWS Secrets Manager support. "
                    "Install it with: pip install pgsecrets[aws]"
                ) from exc
            self._client = boto3.client("secretsmanager", region_name=self._region_name)
        return self._client

    def _list_versions(self) -> list[str]:
        client = self._get_client()
        versions: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"SecretId": self._secret_id}
        try:
            while True:
                page = client.list_secret_version_ids(**kwargs)
                versions.extend(page.get("Versions", []))
                next_token = page.get("NextToken")
                if not next_token:
                    break
                kwargs["NextToken"] = next_token
        except Exception as exc:
            raise CredentialError(f"Unable to list secret versions: {exc}") from exc

        versions.sort(key=_version_rank)
        ids = [v["VersionId"] for v in versions if v.get("VersionId")]
        logger.debug("Listed %d version(s) of secret %s", len(ids), self._secret_id)
        return ids

    def _fetch(self, version_id: str) -> DataSourceName:
        client = self._get_client()
        try:
            resp = client.get_secret_value(SecretId=self._secret_id, VersionId=version_id)
        except Exception as exc:
            raise CredentialError(f"Unable to read secret version {version_id}: {exc}") from exc

        secret_string = resp.get("SecretString")
        if secret_string is None:
            raise CredentialError(f"Secret version {version_id} has no SecretString")
        try:
            data = json.loads(secret_string)
            port = data.get("port")
            return DataSourceName(
                host=data["host"],
                port=int(port) if port not in (None, "") else None,
                user=data["username"],
                password=data["password"],
                dbname=data.get("dbname") or "postgres",
                sslmode=self._sslmode,
            )
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            raise CredentialError(f"Malformed secret version {version_id}: {exc}") from exc
