"""CloudFormation stack handler."""

from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from botocore.exceptions import ClientError

from ..core.models import ResourceKind
from ..reapable.cloudformation import Cloudformation
from .base import ResourceHandler

_DELETED_STATUSES = {"DELETE_COMPLETE"}


class CloudformationHandler(ResourceHandler):
    """
    Handler for CloudFormation stacks.

    Each listed stack is enriched with its ``StackResources`` so the
    dependency resolver can see which physical resources it owns. Stacks
    cannot be tagged in place, so ``tag`` and ``untag`` report False.
    """

    kind = ResourceKind.CLOUDFORMATION
    service = "cloudformation"

    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        client = self.client(region)
        paginator = client.get_paginator("describe_stacks")
        for page in paginator.paginate():
            for stack in page.get("Stacks", []):
                if stack.get("StackStatus") in _DELETED_STATUSES:
                    continue
                yield {**stack, "StackResources": self._stack_resources(region, stack["StackName"])}

    def _stack_resources(self, region: str, stack_name: str):
        try:
            response = self.client(region).describe_stack_resources(StackName=stack_name)
        except ClientError as e:
            self.logger.warning(
                "Failed to describe stack resources",
                extra={"region": region, "stack": stack_name, "error": str(e)},
            )
            return []
        return response.get("StackResources", [])

    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> Cloudformation:
        return Cloudformation.from_api(
            region,
            record,
            self.state_tag,
            handler=self,
            now=now,
            first_state_duration=self.config.states.first_state_duration,
        )

    def tag(self, region: str, resource_id: str, key: str, value: str) -> bool:
        return False

    def untag(self, region: str, resource_id: str, key: str) -> bool:
        return False

    def terminate(self, region: str, resource_id: str) -> bool:
        self.client(region).delete_stack(StackName=resource_id)
        self.logger.info("Deleting stack", extra={"region": region, "resource_id": resource_id})
        return True
