#!/usr/bin/env python3
"""
Create the DynamoDB tables used by the maintenance request API.

Usage:
    python scripts/create_tables.py [--endpoint-url URL] [--region REGION]

Table names come from MAINTENANCE_REQUESTS_TABLE and USERS_TABLE.
Existing tables are left untouched.
"""

import argparse
import logging
import os
import sys

import boto3
from botocore.exceptions import ClientError

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def table_definitions() -> list[dict]:
    """Key schemas for the requests and users tables."""
    return [
        {
            "TableName": os.environ.get(
                "MAINTENANCE_REQUESTS_TABLE", "maintenance-requests-dev"
            ),
            "KeySchema": [
                {"AttributeName": "namespace", "KeyType": "HASH"},
                {"AttributeName": "request_id", "KeyType": "RANGE"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "namespace", "AttributeType": "S"},
                {"AttributeName": "request_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": os.environ.get("USERS_TABLE", "maintenance-users-dev"),
            "KeySchema": [{"AttributeName": "user_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "user_id", "AttributeType": "S"}
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]


def create_tables(dynamodb) -> list[str]:
    """Create any missing tables and return the names created."""
    created = []
    for definition in table_definitions():
        name = definition["TableName"]
        try:
            table = dynamodb.create_table(**definition)
            table.wait_until_exists()
            logger.info("Created table %s", name)
            created.append(name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceInUseException":
                logger.info("Table %s already exists", name)
                continue
            raise
    return created


def main():
    parser = argparse.ArgumentParser(description="Create maintenance DynamoDB tables")
    parser.add_argument(
        "--endpoint-url",
        default=os.environ.get("DYNAMODB_ENDPOINT_URL"),
        help="DynamoDB endpoint (e.g. http://localhost:8001 for DynamoDB Local)",
    )
    parser.add_argument(
        "--region", default=os.environ.get("AWS_DEFAULT_REGION", "ap-southeast-1")
    )
    args = parser.parse_args()

    try:
        dynamodb = boto3.resource(
            "dynamodb", region_name=args.region, endpoint_url=args.endpoint_url
        )
        create_tables(dynamodb)
    except ClientError as e:
        logger.error("AWS error: %s", e.response["Error"]["Message"])
        sys.exit(1)


if __name__ == "__main__":
    main()
