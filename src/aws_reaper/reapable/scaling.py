"""
Scale-down/scale-up schedules carried in a resource tag.

Instances tag ``<down cron>,<up cron>``. Autoscaling groups append the size
to restore on scale-up: ``<down cron>,<up cron>,<desired>,<min>``. Six-field
expressions with a leading seconds field are accepted; the seconds are
dropped. Schedules are evaluated in UTC.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from croniter import croniter

from ..core.logger import setup_logger

logger = setup_logger(__name__)

TAG_SEPARATOR = ","


class ScheduleError(ValueError):
    """A scaler tag could not be parsed."""
    pass


class ScaleAction(str, Enum):
    DOWN = "down"
    UP = "up"


def normalize_cron(expression: str) -> str:
    fields = expression.split()
    if len(fields) == 6:
        fields = fields[1:]
    normalized = " ".join(fields)
    if not normalized or not croniter.is_valid(normalized):
        raise ScheduleError(f"invalid cron expression {expression!r}")
    return normalized


def last_firing(expression: str, now: datetime) -> datetime:
    """Most recent time at or before ``now`` that ``expression`` fires."""
    return croniter(expression, now + timedelta(seconds=1)).get_prev(datetime)


@dataclass
class ScalingSchedule:
    """
    Attributes:
        scale_down: Cron expression for scaling down
        scale_up: Cron expression for scaling up
        previous_desired: Desired capacity to restore (groups only)
        previous_min: Minimum size to restore (groups only)
    """
    scale_down: str
    scale_up: str
    previous_desired: int = 0
    previous_min: int = 0

    @classmethod
    def parse(cls, value: str, with_sizes: bool = False) -> "ScalingSchedule":
        """
        Parse a scaler tag value.

        Groups accept the two-field form too, restoring to size zero until a
        scale-down records the real sizes.

        Raises:
            ScheduleError: If the value is malformed
        """
        parts = [part.strip() for part in (value or "").split(TAG_SEPARATOR)]
        allowed = (2, 4) if with_sizes else (2,)
        if len(parts) not in allowed:
            raise ScheduleError(f"scaler tag must have {' or '.join(map(str, allowed))} fields: {value!r}")

        schedule = cls(normalize_cron(parts[0]), normalize_cron(parts[1]))
        if len(parts) == 4:
            try:
                schedule.previous_desired = int(parts[2])
                schedule.previous_min = int(parts[3])
            except ValueError:
                raise ScheduleError(f"invalid sizes in scaler tag {value!r}") from None
        return schedule

    @classmethod
    def from_tag(cls, value: Optional[str], with_sizes: bool = False) -> Optional["ScalingSchedule"]:
        """Like ``parse`` but logs and returns None for a missing or bad tag."""
        if not value:
            return None
        try:
            return cls.parse(value, with_sizes)
        except ScheduleError as e:
            logger.warning("Ignoring invalid scaler tag", extra={"value": value, "error": str(e)})
            return None

    def tag_value(self, with_sizes: bool = False) -> str:
        parts = [self.scale_down, self.scale_up]
        if with_sizes:
            parts += [str(self.previous_desired), str(self.previous_min)]
        return TAG_SEPARATOR.join(parts)

    def due_action(self, since: datetime, now: datetime) -> Optional[ScaleAction]:
        """
        The action whose most recent firing falls in ``(since, now]``.

        When both fired, the later one wins; a tie goes to scaling up.
        """
        down = last_firing(self.scale_down, now)
        up = last_firing(self.scale_up, now)
        candidates = [(at, action) for at, action in ((down, ScaleAction.DOWN), (up, ScaleAction.UP)) if at > since]
        if not candidates:
            return None
        return max(candidates, key=lambda candidate: (candidate[0], candidate[1] == ScaleAction.UP))[1]
