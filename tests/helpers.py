"""
Test helper utilities.

Common fixtures and helper functions for testing.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from aws_reaper.core.models import ResourceKind
from aws_reaper.handlers.base import ResourceHandler
from aws_reaper.reapable.instance import Instance


def create_mock_lambda_context(
    function_name="test-function",
    request_id="test-request-123",
    memory_limit_mb=128,
    remaining_time_ms=300000
):
    """
    Create a mock Lambda context object with proper attributes.

    This helper ensures that context objects have the expected attributes
    set to actual values instead of MagicMock objects, preventing
    JSON serialization errors.

    Args:
        function_name: Lambda function name
        request_id: AWS request ID
        memory_limit_mb: Memory limit in MB
        remaining_time_ms: Remaining execution time in milliseconds

    Returns:
        MagicMock configured as Lambda context

    Example:
        >>> context = create_mock_lambda_context()
        >>> context.aws_request_id
        'test-request-123'
    """
    context = MagicMock()
    context.function_name = function_name
    context.aws_request_id = request_id
    context.memory_limit_in_mb = memory_limit_mb
    context.get_remaining_time_in_millis.return_value = remaining_time_ms
    context.invoked_function_arn = (
        f"arn:aws:lambda:us-east-1:123456789012:function:{function_name}"
    )

    return context


def client_error(code="UnauthorizedOperation", operation="DescribeInstances"):
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised in test"}}, operation)


def make_instance(
    instance_id="i-0123456789abcdef0",
    region="us-east-1",
    tags: Optional[Dict[str, str]] = None,
    launched_hours_ago: float = 40,
    now: Optional[datetime] = None,
    **kwargs,
) -> Instance:
    """Build an Instance the way InstanceHandler would from a describe record."""
    now = now or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    record = {
        "InstanceId": instance_id,
        "InstanceType": kwargs.pop("instance_type", "t2.micro"),
        "State": {"Name": kwargs.pop("state_name", "running")},
        "LaunchTime": now - timedelta(hours=launched_hours_ago),
        "Tags": [{"Key": k, "Value": v} for k, v in (tags or {}).items()],
        "SecurityGroups": kwargs.pop("security_groups", []),
    }
    return Instance.from_api(region, record, "REAPER", now=now, **kwargs)


class FakeHandler(ResourceHandler):
    """
    In-memory handler serving prebuilt reapables.

    Records every provider call. Regions in ``failing_regions`` yield
    their resources and then raise a ClientError, so a partial listing
    can be told apart from a clean one.
    """

    service = "fake"

    def __init__(
        self,
        kind: ResourceKind,
        config,
        resources: Optional[Dict[str, Iterable]] = None,
        failing_regions: Iterable[str] = (),
        tag_result: bool = True,
    ):
        self.kind = ResourceKind(kind)
        super().__init__(config, client_factory=MagicMock())
        self.resources = {region: list(items) for region, items in (resources or {}).items()}
        self.failing_regions = set(failing_regions)
        self.tag_result = tag_result
        self.calls: List[tuple] = []

    def list(self, region):
        yield from self.resources.get(region, [])
        if region in self.failing_regions:
            raise client_error()

    def build(self, region, record, now=None):
        record.handler = self
        return record

    def tag(self, region, resource_id, key, value):
        self.calls.append(("tag", region, resource_id, key, value))
        return self.tag_result

    def untag(self, region, resource_id, key):
        self.calls.append(("untag", region, resource_id, key))
        return self.tag_result

    def terminate(self, region, resource_id):
        self.calls.append(("terminate", region, resource_id))
        return True

    def stop(self, region, resource_id, force=False):
        self.calls.append(("stop", region, resource_id, force))
        return True

    def start(self, region, resource_id):
        self.calls.append(("start", region, resource_id))
        return True

    def scale_to(self, region, resource_id, desired, min_size):
        self.calls.append(("scale_to", region, resource_id, desired, min_size))
        return True
