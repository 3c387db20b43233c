"""
Reclamation state machine and its tag encoding.

A resource moves through Initial -> First -> Second -> Third -> Final, each
step gated by the state's ``until`` boundary. Whitelisted and Ignored are
set externally and never advance. The state is persisted as a single tag
value of the form ``"<STATE_NAME>|<YYYY-MM-DDTHH:MM:SSZ>"``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import TYPE_CHECKING, Optional

from ..core.logger import setup_logger

if TYPE_CHECKING:
    from ..core.models import StatesConfig

logger = setup_logger(__name__)

TAG_SEPARATOR = "|"
TAG_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
# format written by earlier reaper releases, only ever with a UTC zone
LEGACY_TAG_TIME_FORMATS = ("%Y-%m-%d %I:%M%p UTC", "%Y-%m-%d %I:%M%p GMT")


class StateEnum(IntEnum):
    """Ordered reclamation states."""
    INITIAL = 0
    FIRST = 1
    SECOND = 2
    THIRD = 3
    FINAL = 4
    WHITELISTED = 5
    IGNORED = 6

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_absorbing(self) -> bool:
        return self in (StateEnum.FINAL, StateEnum.WHITELISTED, StateEnum.IGNORED)

    @classmethod
    def from_label(cls, label: str) -> "StateEnum":
        """Look up a state by tag label, accepting the legacy ``State`` suffix."""
        try:
            return _BY_LABEL[label]
        except KeyError:
            raise ValueError(f"unknown reaper state {label!r}") from None


_LABELS = {
    StateEnum.INITIAL: "Initial",
    StateEnum.FIRST: "First",
    StateEnum.SECOND: "Second",
    StateEnum.THIRD: "Third",
    StateEnum.FINAL: "Final",
    StateEnum.WHITELISTED: "Whitelisted",
    StateEnum.IGNORED: "Ignored",
}

_BY_LABEL = {label: state for state, label in _LABELS.items()}
_BY_LABEL.update({f"{label}State": state for state, label in _LABELS.items()})
_BY_LABEL["IgnoreState"] = StateEnum.IGNORED
_BY_LABEL["WhitelistState"] = StateEnum.WHITELISTED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_time(value: datetime) -> datetime:
    """Convert to UTC at whole-second precision, the resolution of the tag."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class ReaperState:
    """
    A resource's position in the reclamation lifecycle.

    Attributes:
        state: Current state
        until: Next evaluation boundary (entry time for Final)
        updated: True when the state changed during the current cycle
    """
    state: StateEnum = StateEnum.INITIAL
    until: datetime = field(default_factory=utcnow)
    updated: bool = field(default=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "state", StateEnum(self.state))
        object.__setattr__(self, "until", normalize_time(self.until))

    def __str__(self) -> str:
        return StateCodec.serialize(self)

    def is_due(self, now: datetime) -> bool:
        """Whether ``until`` has been reached."""
        return normalize_time(now) >= self.until

    def final_state_time(self, durations: "StatesConfig", now: Optional[datetime] = None) -> datetime:
        """When the resource will reach Final if nobody intervenes."""
        if self.state in (StateEnum.INITIAL, StateEnum.FIRST):
            return self.until + durations.third_state_duration + durations.final_state_duration
        if self.state == StateEnum.SECOND:
            return self.until + durations.final_state_duration
        if self.state == StateEnum.THIRD:
            return self.until
        return normalize_time(now or utcnow())


class StateCodec:
    """Encodes and decodes ReaperState tag values."""

    @staticmethod
    def serialize(state: ReaperState) -> str:
        return f"{state.state.label}{TAG_SEPARATOR}{state.until.strftime(TAG_TIME_FORMAT)}"

    @staticmethod
    def parse(value: Optional[str], now: Optional[datetime] = None) -> ReaperState:
        """
        Parse a tag value.

        Malformed or empty values yield Initial with ``until = now``; a
        tag that cannot be read never moves a resource forward.
        """
        now = now or utcnow()
        if not value:
            return ReaperState(StateEnum.INITIAL, now)

        parts = value.split(TAG_SEPARATOR)
        if len(parts) != 2:
            logger.warning("Malformed reaper state tag", extra={"value": value})
            return ReaperState(StateEnum.INITIAL, now)

        try:
            state = StateEnum.from_label(parts[0].strip())
            until = _parse_tag_time(parts[1].strip())
        except ValueError:
            logger.warning("Unparseable reaper state tag", extra={"value": value})
            return ReaperState(StateEnum.INITIAL, now)

        return ReaperState(state, until)


def _parse_tag_time(text: str) -> datetime:
    for fmt in (TAG_TIME_FORMAT,) + LEGACY_TAG_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"unparseable state time {text!r}")


def advance(state: ReaperState, now: datetime, durations: "StatesConfig") -> ReaperState:
    """
    Compute the next state.

    Initial -> First waits ``second_state_duration``, First -> Second waits
    ``third_state_duration``, Second -> Third waits ``final_state_duration``
    and Final keeps its entry time. Absorbing states are returned unchanged.
    The caller decides whether the state is due.
    """
    now = normalize_time(now)
    current = state.state

    if current == StateEnum.INITIAL:
        return ReaperState(StateEnum.FIRST, now + durations.second_state_duration, updated=True)
    if current == StateEnum.FIRST:
        return ReaperState(StateEnum.SECOND, now + durations.third_state_duration, updated=True)
    if current == StateEnum.SECOND:
        return ReaperState(StateEnum.THIRD, now + durations.final_state_duration, updated=True)
    if current == StateEnum.THIRD:
        return ReaperState(StateEnum.FINAL, now, updated=True)

    return state


def delayed(state: ReaperState, duration: timedelta) -> ReaperState:
    """Push ``until`` back by ``duration``, keeping the current state."""
    return ReaperState(state.state, state.until + duration, updated=True)
