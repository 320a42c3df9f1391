"""Unit test fixtures shared across Lambda and library tests.

Lambda handlers are loaded with importlib under unique module names
(``<function>_index``), so cached ``index`` modules never leak between files.
"""

import sys

import boto3
import pytest
from moto import mock_aws

BRANDS_TABLE = "test-brands"
BRAND_URLS_TABLE = "test-brand-urls"
CONTENT_BUCKET = "test-content-bucket"


def pytest_sessionstart(session):
    """Clean any cached handler module from a previous run."""
    if "index" in sys.modules:
        del sys.modules["index"]


def create_tables(dynamodb):
    """Create the brands and brand URL tables as deployed."""
    dynamodb.create_table(
        TableName=BRANDS_TABLE,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "primary_domain", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "PrimaryDomainIndex",
                "KeySchema": [{"AttributeName": "primary_domain", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb.create_table(
        TableName=BRAND_URLS_TABLE,
        KeySchema=[
            {"AttributeName": "brand_id", "KeyType": "HASH"},
            {"AttributeName": "url", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "brand_id", "AttributeType": "S"},
            {"AttributeName": "url", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def aws_resources(monkeypatch):
    """Mocked DynamoDB tables and content bucket.

    The storage module's lazy S3 client is pointed at the mocked bucket.
    """
    from tedix_common import storage

    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_tables(dynamodb)

        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=CONTENT_BUCKET)
        monkeypatch.setattr(storage, "_s3_client", s3)

        yield {"dynamodb": dynamodb, "s3": s3, "bucket": CONTENT_BUCKET}


@pytest.fixture
def repository(aws_resources):
    """BrandRepository backed by the mocked tables."""
    from tedix_common.discovery.repository import BrandRepository

    return BrandRepository(BRANDS_TABLE, BRAND_URLS_TABLE, dynamodb=aws_resources["dynamodb"])
