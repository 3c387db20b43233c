"""Autoscaling groups, identified by name."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from ..core.models import ResourceKind
from .base import Reapable, Scalable, tags_from_api
from .scaling import ScalingSchedule


@dataclass
class AutoScalingGroup(Reapable, Scalable):
    kind: ClassVar[ResourceKind] = ResourceKind.AUTOSCALING_GROUP
    label: ClassVar[str] = "AutoScalingGroup"

    arn: str = ""
    desired_capacity: int = 0
    min_size: int = 0
    max_size: int = 0
    created_time: Optional[datetime] = None
    instance_ids: List[str] = field(default_factory=list)
    scaling: Optional[ScalingSchedule] = None

    @classmethod
    def from_api(cls, region: str, record: Dict[str, Any], state_tag: str, handler=None,
                 now: Optional[datetime] = None, scaler_tag: Optional[str] = None) -> "AutoScalingGroup":
        """Build from one ``describe_auto_scaling_groups`` record."""
        tags = tags_from_api(record.get("Tags"))
        name = record["AutoScalingGroupName"]
        group = cls(
            region=region,
            id=name,
            name=name,
            tags=tags,
            arn=record.get("AutoScalingGroupARN", ""),
            desired_capacity=record.get("DesiredCapacity", 0),
            min_size=record.get("MinSize", 0),
            max_size=record.get("MaxSize", 0),
            created_time=record.get("CreatedTime"),
            instance_ids=[i["InstanceId"] for i in record.get("Instances", [])],
            handler=handler,
        )
        group.apply_tag_flags()
        group.restore_state(state_tag, now)
        if scaler_tag:
            group.scaling = ScalingSchedule.from_tag(tags.get(scaler_tag), with_sizes=True)
        return group

    def stop(self) -> bool:
        """Scale to zero instances, keeping the minimum size."""
        return self._handler().scale_to(self.region, self.id, desired=0, min_size=self.min_size)

    def force_stop(self) -> bool:
        """Scale to zero instances and drop the minimum size to zero."""
        return self._handler().scale_to(self.region, self.id, desired=0, min_size=0)

    # Scalable

    @property
    def is_scaled_down(self) -> bool:
        return self.desired_capacity == 0

    def scale_down(self) -> bool:
        """
        Scale desired and minimum size to zero, recording the sizes to
        restore in the scaler tag.
        """
        if self.scaling is None or self.desired_capacity <= 0:
            return False
        handler = self._handler()
        if not handler.scale_to(self.region, self.id, desired=0, min_size=0):
            return False
        self.scaling.previous_desired = self.desired_capacity
        self.scaling.previous_min = self.min_size
        self.desired_capacity = 0
        self.min_size = 0
        value = self.scaling.tag_value(with_sizes=True)
        if handler.tag(self.region, self.id, handler.scaler_tag, value):
            self.tags[handler.scaler_tag] = value
        return True

    def scale_up(self) -> bool:
        """Restore the sizes recorded by the last scale-down."""
        if self.scaling is None or self.scaling.previous_desired <= self.desired_capacity:
            return False
        desired, min_size = self.scaling.previous_desired, self.scaling.previous_min
        if not self._handler().scale_to(self.region, self.id, desired=desired, min_size=min_size):
            return False
        self.desired_capacity = desired
        self.min_size = min_size
        return True

    def description_short(self) -> str:
        return (
            f"{super().description_short()} "
            f"[desired {self.desired_capacity}, min {self.min_size}, max {self.max_size}]"
        )
