"""EBS volumes."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, NamedTuple, Optional

from ..core.models import ResourceKind
from ..state.state import ReaperState, StateEnum, normalize_time, utcnow
from .base import Reapable, tags_from_api


class Attachment(NamedTuple):
    instance_id: str
    state: str


@dataclass
class Volume(Reapable):
    """
    A volume. Volumes without a state tag start in First, so the first
    notification goes out ``first_state_duration`` after discovery.
    """
    kind: ClassVar[ResourceKind] = ResourceKind.VOLUME
    label: ClassVar[str] = "Volume"

    size: int = 0
    state_name: str = ""
    create_time: Optional[datetime] = None
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def from_api(cls, region: str, record: Dict[str, Any], state_tag: str, handler=None,
                 now: Optional[datetime] = None, first_state_duration=None) -> "Volume":
        tags = tags_from_api(record.get("Tags"))
        volume = cls(
            region=region,
            id=record["VolumeId"],
            name=tags.get("Name", ""),
            tags=tags,
            size=record.get("Size", 0),
            state_name=record.get("State", ""),
            create_time=record.get("CreateTime"),
            attachments=[
                Attachment(a.get("InstanceId", ""), a.get("State", ""))
                for a in record.get("Attachments", [])
            ],
            handler=handler,
        )
        volume.apply_tag_flags()
        if state_tag in tags:
            volume.restore_state(state_tag, now)
        elif first_state_duration is not None:
            start = normalize_time(now or utcnow())
            volume.reaper_state = ReaperState(StateEnum.FIRST, start + first_state_duration)
        return volume

    @property
    def attached_instance_ids(self) -> List[str]:
        return [a.instance_id for a in self.attachments if a.instance_id]

    def description_short(self) -> str:
        return f"{super().description_short()} [{self.size} GiB, {self.state_name}]"
