"""EC2 instances."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from ..core.models import ResourceKind
from .base import AUTOSCALING_GROUP_TAG, Reapable, Scalable, tags_from_api
from .scaling import ScalingSchedule


@dataclass
class Instance(Reapable, Scalable):
    kind: ClassVar[ResourceKind] = ResourceKind.INSTANCE
    label: ClassVar[str] = "Instance"

    state_name: str = ""
    instance_type: str = ""
    launch_time: Optional[datetime] = None
    public_ip_address: Optional[str] = None
    security_groups: Dict[str, str] = field(default_factory=dict)
    auto_scaled: bool = False
    scaling: Optional[ScalingSchedule] = None

    @classmethod
    def from_api(cls, region: str, record: Dict[str, Any], state_tag: str, handler=None,
                 now: Optional[datetime] = None, scaler_tag: Optional[str] = None) -> "Instance":
        """Build from one ``describe_instances`` instance record."""
        tags = tags_from_api(record.get("Tags"))
        instance = cls(
            region=region,
            id=record["InstanceId"],
            name=tags.get("Name", ""),
            tags=tags,
            state_name=record.get("State", {}).get("Name", ""),
            instance_type=record.get("InstanceType", ""),
            launch_time=record.get("LaunchTime"),
            public_ip_address=record.get("PublicIpAddress"),
            security_groups={
                group["GroupId"]: group.get("GroupName", "")
                for group in record.get("SecurityGroups", [])
            },
            handler=handler,
        )
        instance.apply_tag_flags()
        instance.restore_state(state_tag, now)
        if scaler_tag:
            instance.scaling = ScalingSchedule.from_tag(tags.get(scaler_tag))
        return instance

    def apply_tag_flags(self) -> None:
        super().apply_tag_flags()
        if AUTOSCALING_GROUP_TAG in self.tags:
            self.dependency = True
            self.auto_scaled = True

    @property
    def running(self) -> bool:
        return self.state_name == "running"

    @property
    def stopped(self) -> bool:
        return self.state_name == "stopped"

    @property
    def terminated(self) -> bool:
        return self.state_name == "terminated"

    def stop(self) -> bool:
        return self._handler().stop(self.region, self.id, force=False)

    def force_stop(self) -> bool:
        return self._handler().stop(self.region, self.id, force=True)

    # Scalable

    @property
    def is_scaled_down(self) -> bool:
        return self.stopped

    def scale_down(self) -> bool:
        """Stop a running instance. Any other state is left alone."""
        if not self.running:
            return False
        ok = self._handler().stop(self.region, self.id, force=False)
        if ok:
            self.state_name = "stopping"
        return ok

    def scale_up(self) -> bool:
        """Start a stopped instance. Any other state is left alone."""
        if not self.stopped:
            return False
        ok = self._handler().start(self.region, self.id)
        if ok:
            self.state_name = "pending"
        return ok

    def description_short(self) -> str:
        text = super().description_short()
        details = ", ".join(part for part in (self.instance_type, self.state_name) if part)
        return f"{text} [{details}]" if details else text
