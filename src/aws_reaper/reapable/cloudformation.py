"""CloudFormation stacks."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from ..core.models import ResourceKind
from ..state.state import ReaperState, StateEnum, normalize_time, utcnow
from .base import Reapable, tags_from_api


@dataclass
class Cloudformation(Reapable):
    """
    A stack. Stacks cannot be tagged without an update, so whitelist and
    save are no-ops; their state is rebuilt from the stack's own tags each
    cycle, starting late by ``first_state_duration``.
    """
    kind: ClassVar[ResourceKind] = ResourceKind.CLOUDFORMATION
    label: ClassVar[str] = "Cloudformation"

    stack_status: str = ""
    creation_time: Optional[datetime] = None
    resources: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, region: str, record: Dict[str, Any], state_tag: str, handler=None,
                 now: Optional[datetime] = None, first_state_duration=None) -> "Cloudformation":
        """Build from a ``describe_stacks`` record plus its ``StackResources``."""
        tags = tags_from_api(record.get("Tags"))
        stack = cls(
            region=region,
            id=record["StackId"],
            name=record.get("StackName", ""),
            tags=tags,
            stack_status=record.get("StackStatus", ""),
            creation_time=record.get("CreationTime"),
            resources=[
                resource["PhysicalResourceId"]
                for resource in record.get("StackResources", [])
                if resource.get("PhysicalResourceId")
            ],
            handler=handler,
        )
        stack.apply_tag_flags()
        if state_tag in tags:
            stack.restore_state(state_tag, now)
        elif first_state_duration is not None:
            start = normalize_time(now or utcnow())
            stack.reaper_state = ReaperState(StateEnum.INITIAL, start + first_state_duration)
        return stack

    def save(self, state: ReaperState) -> bool:
        return False

    def unsave(self) -> bool:
        return False

    def whitelist(self) -> bool:
        return False

    def description_short(self) -> str:
        return f"{super().description_short()} [{self.stack_status}]"
