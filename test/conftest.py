"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import boto3
import pytest
from moto import mock_aws

from playground_progress.dynamodb.profile_storage_table import ProfileStorageTable

REGION = "us-west-1"
PROFILE_STORAGE_TABLE_NAME = "test-profile-storage-table"


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    Session scoped: these env vars don't change between tests.
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = REGION

    # DynamoDB Table Names
    os.environ["PROFILE_STORAGE_TABLE_NAME"] = PROFILE_STORAGE_TABLE_NAME

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto (AWS mocking library).

    Note: This is different from the AWS_REGION set in setup_test_environment.
    - AWS_REGION: Used by the boto3 DynamoDB resource
    - These credentials: Used by moto for AWS service mocking
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION
    yield
    # Clean up after each test
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]


@pytest.fixture
def dynamodb_resource(aws_credentials) -> typing.Iterator:
    """Creates the mock ProfileStorage table inside moto's context."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        table = dynamodb.create_table(
            TableName=PROFILE_STORAGE_TABLE_NAME,
            KeySchema=[
                {"AttributeName": "profileId", "KeyType": "HASH"},  # Partition Key
                {"AttributeName": "storageKey", "KeyType": "RANGE"},  # Sort Key
            ],
            AttributeDefinitions=[
                {"AttributeName": "profileId", "AttributeType": "S"},
                {"AttributeName": "storageKey", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()
        yield dynamodb


@pytest.fixture
def profile_storage_table(dynamodb_resource) -> ProfileStorageTable:
    return ProfileStorageTable(PROFILE_STORAGE_TABLE_NAME)
