from urllib.parse import urlsplit

from pgsecrets import DataSourceName, redact_dsn

BASE = DataSourceName(host="localhost", dbname="postgres", user="postgres")


def test_to_uri_encodes_password():
    dsn = BASE.with_password("pa$$w0rd")
    assert dsn.to_uri() == (
        "postgresql://localhost/postgres?user=postgres&password=pa%24%24w0rd&sslmode=disable"
    )


def test_to_uri_with_port_and_no_password():
    dsn = DataSourceName(host="db.internal", port=6432, dbname="app", user="svc", sslmode="require")
    assert dsn.to_uri() == "postgresql://db.internal:6432/app?user=svc&sslmode=require"


def test_redacted_and_str_hide_password():
    dsn = BASE.with_password("s3cret")
    assert "s3cret" not in dsn.redacted()
    assert "password=***" in dsn.redacted()
    assert str(dsn) == dsn.redacted()
    assert "s3cret" not in repr(dsn)


def test_with_password_returns_copy():
    dsn = BASE.with_password("a")
    assert BASE.password is None
    assert dsn.password == "a"


def test_redact_dsn_query_parameter():
    redacted = redact_dsn("postgresql://h/db?user=u&password=s3cret&sslmode=disable")
    assert redacted == "postgresql://h/db?user=u&password=***&sslmode=disable"


def test_redact_dsn_userinfo():
    assert redact_dsn("postgresql://u:s3cret@h:5432/db") == "postgresql://u:***@h:5432/db"


def test_redact_dsn_key_value():
    assert redact_dsn("host=h user=u password=s3cret") == "host=h user=u password=***"


def test_to_uri_brackets_ipv6_host():
    dsn = DataSourceName(host="::1", port=5432, dbname="db", user="u")
    assert dsn.to_uri() == "postgresql://[::1]:5432/db?user=u&sslmode=disable"
    assert urlsplit(dsn.to_uri()).hostname == "::1"
    assert urlsplit(dsn.to_uri()).port == 5432


def test_to_uri_keeps_bracketed_ipv6_host():
    dsn = DataSourceName(host="[fe80::1]", dbname="db", user="u")
    assert dsn.to_uri() == "postgresql://[fe80::1]/db?user=u&sslmode=disable"
