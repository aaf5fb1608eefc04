"""Pytest configuration and shared fixtures."""

import os
import sys
from concurrent.futures import Executor, Future
from datetime import UTC, datetime
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from models.maintenance_request import (
    MaintenanceRequest,
    MaintenanceRequestCreate,
    RequestStatus,
)

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

from create_tables import create_tables  # noqa: E402

TEST_REQUESTS_TABLE = "maintenance-requests-test"
TEST_USERS_TABLE = "maintenance-users-test"
TEST_JWT_SECRET = "unit-test-secret-key"
TEST_NAMESPACE = "hospital-a"


@pytest.fixture
def sample_request_create():
    """Form values from the electrical fault scenario."""
    return MaintenanceRequestCreate(
        date_notified="2026-10-18",
        system="งานระบบไฟฟ้า",
        area="ward 3",
        floor="4",
        building="A",
        symptoms="light flickering",
    )


@pytest.fixture
def sample_request():
    """A stored maintenance request."""
    return MaintenanceRequest(
        request_id="01JABCDEFGHJKMNPQRSTVWXYZ0",
        namespace=TEST_NAMESPACE,
        date_notified="2026-10-18",
        system="งานระบบไฟฟ้า",
        work_order_number="Somchai",
        area="ward 3",
        floor="4",
        building="A",
        symptoms="light flickering",
        status=RequestStatus.PENDING,
        reporter_id="user-123",
        created_at=datetime.now(UTC).isoformat(),
    )


@pytest.fixture
def mock_dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    mock_table = Mock()
    mock_table.put_item.return_value = {}
    mock_table.get_item.return_value = {"Item": {}}
    mock_table.update_item.return_value = {}
    mock_table.query.return_value = {"Items": []}
    return mock_table


@pytest.fixture
def aws_env(monkeypatch):
    """Point boto3 and the API at fake credentials and test tables."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-southeast-1")
    monkeypatch.delenv("DYNAMODB_ENDPOINT_URL", raising=False)
    monkeypatch.setenv("MAINTENANCE_REQUESTS_TABLE", TEST_REQUESTS_TABLE)
    monkeypatch.setenv("USERS_TABLE", TEST_USERS_TABLE)
    monkeypatch.setenv("JWT_SECRET_KEY", TEST_JWT_SECRET)


@pytest.fixture
def dynamodb_tables(aws_env):
    """Create the requests and users tables inside a moto mock."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="ap-southeast-1")
        create_tables(dynamodb)
        yield {
            "requests_table": dynamodb.Table(TEST_REQUESTS_TABLE),
            "users_table": dynamodb.Table(TEST_USERS_TABLE),
        }


class ImmediateExecutor(Executor):
    """Runs submitted work on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()
