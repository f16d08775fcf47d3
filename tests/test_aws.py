import json
from datetime import datetime, timezone

import pytest

from pgsecrets import AwsSecretsManagerCredentialsProvider, CredentialError, SecretsConnector
from _helpers import ScriptedOpener


def _secret(password, host="db.internal"):
    return json.dumps(
        {
            "engine": "postgres",
            "username": "app",
            "password": password,
            "host": host,
            "port": 5432,
            "dbname": "app",
        }
    )


class FakeSecretsManager:
    def __init__(self, versions, values, page_size=None):
        self.versions = versions
        self.values = values
        self.page_size = page_size
        self.list_calls = 0
        self.fetched = []

    def list_secret_version_ids(self, SecretId, NextToken=None):
        self.list_calls += 1
        if self.page_size is None:
            return {"Versions": self.versions}
        start = int(NextToken or 0)
        end = start + self.page_size
        page = {"Versions": self.versions[start:end]}
        if end < len(self.versions):
            page["NextToken"] = str(end)
        return page

    def get_secret_value(self, SecretId, VersionId):
        self.fetched.append(VersionId)
        if VersionId not in self.values:
            raise RuntimeError("ResourceNotFoundException")
        return {"SecretString": self.values[VersionId]}


VERSIONS = [
    {
        "VersionId": "v-old",
        "VersionStages": [],
        "CreatedDate": datetime(2024, 1, 1, tzinfo=timezone.utc),
    },
    {
        "VersionId": "v-prev",
        "VersionStages": ["AWSPREVIOUS"],
        "CreatedDate": datetime(2024, 6, 1, tzinfo=timezone.utc),
    },
    {
        "VersionId": "v-cur",
        "VersionStages": ["AWSCURRENT"],
        "CreatedDate": datetime(2024, 9, 1, tzinfo=timezone.utc),
    },
]


def test_versions_are_tried_current_first():
    client = FakeSecretsManager(
        VERSIONS,
        {"v-cur": _secret("c"), "v-prev": _secret("p"), "v-old": _secret("o")},
        page_size=2,
    )
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client, sslmode="disable")

    assert provider.retries() == 3
    dsns = [provider.get_dsn() for _ in range(3)]

    assert client.fetched == ["v-cur", "v-prev", "v-old"]
    assert dsns[0] == "postgresql://db.internal:5432/app?user=app&password=c&sslmode=disable"


def test_rotation_through_secret_versions():
    client = FakeSecretsManager(VERSIONS, {"v-cur": _secret("c"), "v-prev": _secret("p")})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)
    dsn_cur = "postgresql://db.internal:5432/app?user=app&password=c&sslmode=require"
    dsn_prev = "postgresql://db.internal:5432/app?user=app&password=p&sslmode=require"
    opener = ScriptedOpener(good={dsn_prev}, bad={dsn_cur})

    conn = SecretsConnector(provider, opener).connect()

    assert conn == ("conn", dsn_prev)
    assert client.fetched == ["v-cur", "v-prev"]


def test_budget_is_refreshed_per_connect_call():
    client = FakeSecretsManager(VERSIONS[2:], {"v-cur": _secret("c")})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)
    dsn = "postgresql://db.internal:5432/app?user=app&password=c&sslmode=require"
    connector = SecretsConnector(provider, ScriptedOpener(good={dsn}))

    connector.connect()
    connector.connect()

    assert client.list_calls == 2
    assert client.fetched == ["v-cur", "v-cur"]


def test_missing_version_raises_credential_error():
    client = FakeSecretsManager(VERSIONS, {})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)

    with pytest.raises(CredentialError, match="v-cur") as excinfo:
        provider.get_dsn()
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_malformed_secret_raises_credential_error():
    client = FakeSecretsManager(VERSIONS[2:], {"v-cur": "not json"})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)

    with pytest.raises(CredentialError, match="Malformed"):
        provider.get_dsn()


def test_exhausted_versions():
    client = FakeSecretsManager(VERSIONS[2:], {"v-cur": _secret("c")})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)

    provider.get_dsn()
    with pytest.raises(CredentialError, match="No secret version left"):
        provider.get_dsn()


def test_list_failure_raises_credential_error():
    class Broken:
        def list_secret_version_ids(self, **kwargs):
            raise RuntimeError("AccessDenied")

    provider = AwsSecretsManagerCredentialsProvider("db/app", client=Broken())

    with pytest.raises(CredentialError, match="list secret versions"):
        provider.retries()


def test_new_version_is_picked_up_on_next_connect():
    client = FakeSecretsManager(VERSIONS[2:], {"v-cur": _secret("c"), "v-new": _secret("n")})
    provider = AwsSecretsManagerCredentialsProvider("db/app", client=client)
    dsn_cur = "postgresql://db.internal:5432/app?user=app&password=c&sslmode=require"
    dsn_new = "postgresql://db.internal:5432/app?user=app&password=n&sslmode=require"
    connector = SecretsConnector(provider, ScriptedOpener(good={dsn_cur, dsn_new}))

    assert connector.connect() == ("conn", dsn_cur)

    client.versions = [
        {
            "VersionId": "v-cur",
            "VersionStages": ["AWSPREVIOUS"],
            "CreatedDate": datetime(2024, 9, 1, tzinfo=timezone.utc),
        },
        {
            "VersionId": "v-new",
            "VersionStages": ["AWSCURRENT"],
            "CreatedDate": datetime(2024, 10, 1, tzinfo=timezone.utc),
        },
    ]

    assert connector.connect() == ("conn", dsn_new)
    assert client.fetched == ["v-cur", "v-new"]


def test_list_failure_propagates_from_connect_without_fetching():
    class Broken:
        def __init__(self):
            self.fetched = []

        def list_secret_version_ids(self, **kwargs):
            raise RuntimeError("AccessDenied")

        def get_secret_value(self, **kwargs):
            self.fetched.append(kwargs)

    client = Broken()
    opener = ScriptedOpener()
    connector = SecretsConnector(
        AwsSecretsManagerCredentialsProvider("db/app", client=client), opener
    )

    with pytest.raises(CredentialError, match="list secret versions"):
        connector.connect()

    assert client.fetched == []
    assert opener.opened == []
