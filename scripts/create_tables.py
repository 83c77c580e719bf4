"""Create the batch metadata tables and initialise the sequence counters.

Usage:
    python scripts/create_tables.py --endpoint-url http://localhost:4566
"""

from __future__ import annotations

import argparse
import logging
from typing import Any

import boto3

from chunkwise.core.logging import configure_logging
from chunkwise.persistence.documents import TABLE_NAMES
from chunkwise.persistence.dynamodb_backend import DynamoDBSequenceAllocator

logger = logging.getLogger("create_tables")


def create_tables(ddb: Any, suffix: str = "") -> list[str]:
    """Create the four PK/SK tables. Skips tables that already exist.

    Returns:
        Names of the tables created by this call.
    """
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    created: list[str] = []
    for base in TABLE_NAMES:
        table_name = f"{base}{suffix}"
        if table_name in existing:
            logger.info("Table %s already exists, skipping", table_name)
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        client.get_waiter("table_exists").wait(TableName=table_name)
        logger.info("Created table %s", table_name)
        created.append(table_name)
    return created


def bootstrap(suffix: str = "", region: str = "us-east-1",
              endpoint_url: str | None = None) -> list[str]:
    """Create missing tables, then seed missing sequence counters at zero."""
    kwargs: dict[str, Any] = {"region_name": region}
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    ddb = boto3.resource("dynamodb", **kwargs)

    created = create_tables(ddb, suffix=suffix)
    DynamoDBSequenceAllocator(
        table_suffix=suffix, region=region, endpoint_url=endpoint_url,
    ).ensure_sequences()
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description="Create DynamoDB tables for Chunkwise")
    parser.add_argument("--endpoint-url", default=None, help="DynamoDB endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    args = parser.parse_args()

    configure_logging("INFO")
    created = bootstrap(args.table_suffix, args.region, args.endpoint_url)
    logger.info("Done: %d table(s) created", len(created))


if __name__ == "__main__":
    main()
