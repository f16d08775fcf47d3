#!/usr/bin/env python3
"""Example usage of pgsecrets.

Connectors are lazy — nothing touches the network until you call
`connect()`.  `connect()` returns the *native* psycopg2 connection, so you
get full access to everything the driver provides.
"""

import logging

from pgsecrets import (
    AwsSecretsManagerCredentialsProvider,
    DataSourceName,
    PasswordListCredentialsProvider,
    SecretsConnector,
)

logging.basicConfig(level=logging.DEBUG)

# ── Fixed list of candidate passwords ────────────────────────────────────
# Only "pa$$w0rd" is accepted by the server; the others fail with 28P01 and
# are rotated through.
provider = PasswordListCredentialsProvider(
    DataSourceName(host="localhost", dbname="postgres", user="postgres"),
    ["foo", "bar", "baz", "pa$$w0rd", "wrong-password"],
)
connector = SecretsConnector(provider)
try:
    conn = connector.connect()
    cur = conn.cursor()
    cur.execute("SELECT 1")
    print("PG:", cur.fetchone())
    conn.close()
except Exception as exc:
    logging.error("connect failed: %s", exc)

# ── AWS Secrets Manager (needs pgsecrets[aws] and AWS credentials) ───────
# Tries AWSCURRENT first, then older versions of the secret.
aws_provider = AwsSecretsManagerCredentialsProvider("PgSecretsDriverTest", region_name="eu-west-1")
connector = SecretsConnector(aws_provider)

# ── As a pool creator (SQLAlchemy) ───────────────────────────────────────
# engine = sqlalchemy.create_engine("postgresql+psycopg2://", creator=connector)
