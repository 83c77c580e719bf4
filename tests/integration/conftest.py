"""Integration test fixtures for LocalStack DynamoDB."""

from __future__ import annotations

import os

import boto3
import pytest

from scripts.create_tables import bootstrap

# Default LocalStack endpoint
LOCALSTACK_URL = os.environ.get("LOCALSTACK_URL", "http://localhost:4566")
TABLE_SUFFIX = "-inttest"
REGION = "us-east-1"


def _localstack_available() -> bool:
    """Check if LocalStack is reachable."""
    try:
        client = boto3.client("dynamodb", region_name=REGION, endpoint_url=LOCALSTACK_URL)
        client.list_tables()
        return True
    except Exception:
        return False


skip_no_localstack = pytest.mark.skipif(
    not _localstack_available(),
    reason="LocalStack not available",
)


@pytest.fixture(scope="session")
def localstack_ddb():
    """DynamoDB resource pointing at LocalStack."""
    return boto3.resource("dynamodb", region_name=REGION, endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def bootstrapped_tables(localstack_ddb):
    """Create the metadata tables and sequences via the bootstrap script."""
    bootstrap(suffix=TABLE_SUFFIX, region=REGION, endpoint_url=LOCALSTACK_URL)
    return TABLE_SUFFIX
