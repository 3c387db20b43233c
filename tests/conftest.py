"""
Global pytest configuration for all tests.

Provides shared fixtures to prevent test isolation issues.
"""

import os
from datetime import datetime, timezone

import pytest

from aws_reaper.core.models import ReaperConfig


@pytest.fixture(scope="function", autouse=True)
def aws_credentials():
    """
    Set mock AWS credentials for all tests.

    This prevents boto3 from looking for real credentials and ensures
    consistent environment across all test modules.
    """
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
    yield


@pytest.fixture
def now():
    """Fixed, whole-second UTC clock value."""
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """Live-mode configuration with instances enabled and no filters."""
    return ReaperConfig(
        regions=["us-east-1"],
        dry_run=False,
        default_email_host="example.com",
        instances={"enabled": True},
    )
