"""EC2 security groups."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from ..core.models import ResourceKind
from .base import Reapable, tags_from_api


@dataclass
class SecurityGroup(Reapable):
    kind: ClassVar[ResourceKind] = ResourceKind.SECURITY_GROUP
    label: ClassVar[str] = "SecurityGroup"

    group_name: str = ""
    vpc_id: Optional[str] = None

    @classmethod
    def from_api(cls, region: str, record: Dict[str, Any], state_tag: str, handler=None,
                 now: Optional[datetime] = None) -> "SecurityGroup":
        tags = tags_from_api(record.get("Tags"))
        group = cls(
            region=region,
            id=record["GroupId"],
            name=tags.get("Name") or record.get("GroupName", ""),
            tags=tags,
            group_name=record.get("GroupName", ""),
            vpc_id=record.get("VpcId"),
            handler=handler,
        )
        group.apply_tag_flags()
        group.restore_state(state_tag, now)
        return group
