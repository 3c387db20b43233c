"""Filter values and typed argument access."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Sequence, Tuple

from ..core.durations import parse_duration


class FilterArgumentError(ValueError):
    """A filter argument is missing or cannot be parsed."""
    pass


_TRUE = {"1", "t", "true", "yes"}
_FALSE = {"0", "f", "false", "no"}


@dataclass(frozen=True)
class Filter:
    """A named predicate plus its string arguments."""
    function: str
    arguments: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.function}({', '.join(self.arguments)})"

    def argument(self, index: int = 0) -> str:
        try:
            return self.arguments[index]
        except IndexError:
            raise FilterArgumentError(
                f"{self.function} expects at least {index + 1} argument(s)"
            ) from None

    def int_argument(self, index: int = 0) -> int:
        value = self.argument(index)
        try:
            return int(value, 10)
        except ValueError:
            raise FilterArgumentError(f"{self.function}: {value!r} is not an integer") from None

    def bool_argument(self, index: int = 0) -> bool:
        value = self.argument(index).strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise FilterArgumentError(f"{self.function}: {value!r} is not a boolean")

    def duration_argument(self, index: int = 0) -> timedelta:
        value = self.argument(index)
        try:
            return parse_duration(value)
        except ValueError:
            raise FilterArgumentError(f"{self.function}: {value!r} is not a duration") from None

    def time_argument(self, index: int = 0) -> datetime:
        """Parse an RFC 3339 timestamp."""
        value = self.argument(index)
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise FilterArgumentError(f"{self.function}: {value!r} is not an RFC 3339 time") from None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


FilterGroup = List[Filter]


def build_filter_groups(config_groups: Mapping[str, Sequence]) -> Dict[str, FilterGroup]:
    """Convert configured ``FilterSpec`` groups into Filter lists."""
    return {
        name: [Filter(spec.function, tuple(spec.arguments)) for spec in specs]
        for name, specs in config_groups.items()
    }


def format_filter_group(group: Sequence[Filter]) -> str:
    """Human readable form, e.g. ``"InstanceType(t2.micro), Tagged(Owner)"``."""
    return ", ".join(sorted(str(f) for f in group))
