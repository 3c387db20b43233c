"""Autoscaling group handler."""

from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from ..core.models import ResourceKind
from ..reapable.autoscaling import AutoScalingGroup
from .base import ResourceHandler


class AutoScalingGroupHandler(ResourceHandler):
    """
    Handler for autoscaling groups.

    Groups are addressed by name. Stopping scales the group down instead of
    stopping instances, so the group does not replace them.
    """

    kind = ResourceKind.AUTOSCALING_GROUP
    service = "autoscaling"

    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        paginator = self.client(region).get_paginator("describe_auto_scaling_groups")
        for page in paginator.paginate():
            yield from page.get("AutoScalingGroups", [])

    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> AutoScalingGroup:
        return AutoScalingGroup.from_api(
            region, record, self.state_tag, handler=self, now=now, scaler_tag=self.scaler_tag
        )

    def tag(self, region: str, resource_id: str, key: str, value: str) -> bool:
        self.client(region).create_or_update_tags(
            Tags=[{
                "ResourceId": resource_id,
                "ResourceType": "auto-scaling-group",
                "Key": key,
                "Value": value,
                "PropagateAtLaunch": False,
            }]
        )
        self.logger.info(
            "Tagged autoscaling group",
            extra={"region": region, "resource_id": resource_id, "key": key, "value": value},
        )
        return True

    def untag(self, region: str, resource_id: str, key: str) -> bool:
        self.client(region).delete_tags(
            Tags=[{
                "ResourceId": resource_id,
                "ResourceType": "auto-scaling-group",
                "Key": key,
            }]
        )
        return True

    def terminate(self, region: str, resource_id: str) -> bool:
        self.client(region).delete_auto_scaling_group(
            AutoScalingGroupName=resource_id,
            ForceDelete=True,
        )
        self.logger.info("Deleted autoscaling group", extra={"region": region, "resource_id": resource_id})
        return True

    def scale_to(self, region: str, resource_id: str, desired: int, min_size: int) -> bool:
        self.client(region).update_auto_scaling_group(
            AutoScalingGroupName=resource_id,
            DesiredCapacity=desired,
            MinSize=min_size,
        )
        self.logger.info(
            "Scaled autoscaling group",
            extra={"region": region, "resource_id": resource_id, "desired": desired, "min_size": min_size},
        )
        return True
