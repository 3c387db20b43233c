"""
Base types for reapable resources.

Each concrete kind is a dataclass holding the shared fields plus its own
provider attributes. Behaviour is split into capability interfaces so the
reaper can ask "can this be stopped?" without knowing the kind. Provider
calls go through the kind's ResourceHandler; a ``ClientError`` from the
provider propagates to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional

from ..core.models import ResourceKind
from ..filters.engine import matches
from ..filters.filter import Filter, format_filter_group
from ..state.state import TAG_TIME_FORMAT, ReaperState, StateCodec, StateEnum, advance, utcnow

if TYPE_CHECKING:
    from ..core.models import StatesConfig
    from ..handlers.base import ResourceHandler

CLOUDFORMATION_STACK_TAG = "aws:cloudformation:stack-name"
AUTOSCALING_GROUP_TAG = "aws:autoscaling:groupName"


class UnownedError(Exception):
    """No owner can be resolved for a resource."""
    pass


class NotFoundError(KeyError):
    """A resource is not registered."""

    def __init__(self, region: str, resource_id: str):
        super().__init__(f"{resource_id} not found in {region}")
        self.region = region
        self.resource_id = resource_id

    def __str__(self) -> str:
        return self.args[0]


class Filterable(ABC):
    @abstractmethod
    def filter(self, f: Filter, now: Optional[datetime] = None) -> bool:
        pass


class Terminable(ABC):
    @abstractmethod
    def terminate(self) -> bool:
        pass


class Stoppable(ABC):
    @abstractmethod
    def stop(self) -> bool:
        pass

    @abstractmethod
    def force_stop(self) -> bool:
        pass


class Whitelistable(ABC):
    @abstractmethod
    def whitelist(self) -> bool:
        pass


class Saveable(ABC):
    @abstractmethod
    def save(self, state: ReaperState) -> bool:
        pass

    @abstractmethod
    def unsave(self) -> bool:
        pass

    @abstractmethod
    def increment_state(self, now: datetime, durations: "StatesConfig") -> bool:
        pass


class Scalable(ABC):
    """Resources that follow a scale-down/scale-up schedule."""

    @property
    @abstractmethod
    def is_scaled_down(self) -> bool:
        pass

    @abstractmethod
    def scale_down(self) -> bool:
        pass

    @abstractmethod
    def scale_up(self) -> bool:
        pass


def tags_from_api(tag_list: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    """Convert the provider's ``[{"Key": k, "Value": v}]`` shape to a dict."""
    return {tag["Key"]: tag.get("Value", "") for tag in tag_list or []}


@dataclass
class Reapable(Filterable, Terminable, Stoppable, Whitelistable, Saveable):
    """
    Shared fields and behaviour of every reapable resource.

    Attributes:
        region: AWS region
        id: Provider id, unique within the region
        name: Display name (Name tag or provider name)
        tags: Resource tags
        dependency: Something else uses this resource
        is_in_cloudformation: Owned by a CloudFormation stack
        reaper_state: Position in the reclamation lifecycle
        matched_filter_groups: Groups that matched during this cycle
        handler: Provider access for this kind
    """
    kind: ClassVar[ResourceKind]
    label: ClassVar[str] = "Resource"

    region: str
    id: str
    name: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    dependency: bool = False
    is_in_cloudformation: bool = False
    reaper_state: ReaperState = field(default_factory=ReaperState)
    matched_filter_groups: Dict[str, List[Filter]] = field(default_factory=dict, repr=False, compare=False)
    handler: Optional["ResourceHandler"] = field(default=None, repr=False, compare=False)

    def apply_tag_flags(self) -> None:
        """Set flags implied by AWS-managed tags."""
        if CLOUDFORMATION_STACK_TAG in self.tags:
            self.is_in_cloudformation = True
            self.dependency = True

    def restore_state(self, state_tag: str, now: Optional[datetime] = None) -> None:
        self.reaper_state = StateCodec.parse(self.tags.get(state_tag), now)

    # Filterable

    def filter(self, f: Filter, now: Optional[datetime] = None) -> bool:
        return matches(self, [f], now)

    # Saveable

    def save(self, state: ReaperState) -> bool:
        """Persist ``state`` as the state tag. Memory is updated only on success."""
        ok = self._handler().tag(self.region, self.id, self._handler().state_tag, StateCodec.serialize(state))
        if ok:
            self.reaper_state = state
            self.tags[self._handler().state_tag] = StateCodec.serialize(state)
        return ok

    def unsave(self) -> bool:
        ok = self._handler().untag(self.region, self.id, self._handler().state_tag)
        if ok:
            self.tags.pop(self._handler().state_tag, None)
        return ok

    def increment_state(self, now: datetime, durations: "StatesConfig") -> bool:
        """Advance the in-memory state if it is due. Returns True when it changed."""
        if self.reaper_state.state.is_absorbing or not self.reaper_state.is_due(now):
            return False
        self.reaper_state = advance(self.reaper_state, now, durations)
        return True

    # Whitelistable

    def whitelist(self) -> bool:
        handler = self._handler()
        ok = handler.tag(self.region, self.id, handler.whitelist_tag, "true")
        if ok:
            self.tags[handler.whitelist_tag] = "true"
            self.reaper_state = ReaperState(StateEnum.WHITELISTED, utcnow(), updated=True)
        return ok

    # Terminable

    def terminate(self) -> bool:
        return self._handler().terminate(self.region, self.id)

    # Stoppable, overridden by kinds that can be stopped

    def stop(self) -> bool:
        return False

    def force_stop(self) -> bool:
        return False

    def _handler(self) -> "ResourceHandler":
        if self.handler is None:
            raise RuntimeError(f"{self.label} {self.id} has no provider handler")
        return self.handler

    # Descriptions

    def matched_filters_description(self) -> str:
        return "; ".join(
            f"{name}: {format_filter_group(group)}"
            for name, group in sorted(self.matched_filter_groups.items())
        )

    def description_tiny(self) -> str:
        return f"{self.label} {self.id}"

    def description_short(self) -> str:
        name = f" ({self.name})" if self.name and self.name != self.id else ""
        return f"{self.label} '{self.id}'{name} in {self.region}"

    def description(self) -> str:
        """One line used in notifications and action responses."""
        state = self.reaper_state
        text = f"{self.description_short()} is in state {state.state.label} until {state.until.strftime(TAG_TIME_FORMAT)}"
        matched = self.matched_filters_description()
        if matched:
            text += f", matched {matched}"
        return text
