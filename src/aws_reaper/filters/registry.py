"""
Filter function registry.

Maps a filter function name to a typed predicate per resource kind. A base
vocabulary applies to every kind; kind entries take precedence over it.
Predicates receive ``(resource, filter, now)`` and return a bool. They may
raise ``FilterArgumentError`` for bad arguments; the engine turns that
into a non-match.
"""
import operator
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..core.models import ResourceKind
from ..state.state import StateEnum
from .filter import Filter, FilterArgumentError

Predicate = Callable[[object, Filter, datetime], bool]


class FilterRegistry:
    """Registered filter predicates keyed by kind and function name."""

    def __init__(self):
        self._base: Dict[str, Predicate] = {}
        self._by_kind: Dict[ResourceKind, Dict[str, Predicate]] = {kind: {} for kind in ResourceKind}

    def register(self, name: str, kind: Optional[ResourceKind] = None) -> Callable[[Predicate], Predicate]:
        """Decorator registering a predicate for ``kind`` (or every kind when None)."""
        def decorator(predicate: Predicate) -> Predicate:
            table = self._base if kind is None else self._by_kind[ResourceKind(kind)]
            table[name] = predicate
            return predicate
        return decorator

    def knows_kind(self, kind) -> bool:
        try:
            return ResourceKind(kind) in self._by_kind
        except ValueError:
            return False

    def lookup(self, kind, name: str) -> Optional[Predicate]:
        if not self.knows_kind(kind):
            return None
        return self._by_kind[ResourceKind(kind)].get(name) or self._base.get(name)

    def has(self, kind, name: str) -> bool:
        return self.lookup(kind, name) is not None

    def names(self, kind) -> List[str]:
        if not self.knows_kind(kind):
            return []
        return sorted(set(self._base) | set(self._by_kind[ResourceKind(kind)]))


FILTER_REGISTRY = FilterRegistry()
register = FILTER_REGISTRY.register


def _negate(predicate: Predicate) -> Predicate:
    def negated(resource, f: Filter, now: datetime) -> bool:
        return not predicate(resource, f, now)
    return negated


def _in_the_last(value: Optional[datetime], f: Filter, now: datetime) -> bool:
    window = f.duration_argument(0)
    if value is None:
        return False
    return now - value < window


def _not_in_the_last(value: Optional[datetime], f: Filter, now: datetime) -> bool:
    window = f.duration_argument(0)
    if value is None:
        return False
    return now - value > window


# Base vocabulary

@register("Region")
def _region(resource, f: Filter, now: datetime) -> bool:
    f.argument(0)
    return resource.region in f.arguments


@register("Tagged")
def _tagged(resource, f: Filter, now: datetime) -> bool:
    return f.argument(0) in resource.tags


@register("TagEqual")
def _tag_equal(resource, f: Filter, now: datetime) -> bool:
    return resource.tags.get(f.argument(0)) == f.argument(1)


@register("ReaperState")
def _reaper_state(resource, f: Filter, now: datetime) -> bool:
    try:
        wanted = StateEnum.from_label(f.argument(0))
    except ValueError as e:
        raise FilterArgumentError(f"{f.function}: {e}") from None
    return resource.reaper_state.state == wanted


@register("Named")
def _named(resource, f: Filter, now: datetime) -> bool:
    return resource.name == f.argument(0)


@register("NameContains")
def _name_contains(resource, f: Filter, now: datetime) -> bool:
    return f.argument(0) in (resource.name or "")


@register("IsDependency")
def _is_dependency(resource, f: Filter, now: datetime) -> bool:
    return resource.dependency == f.bool_argument(0)


@register("InCloudformation")
def _in_cloudformation(resource, f: Filter, now: datetime) -> bool:
    return resource.is_in_cloudformation == f.bool_argument(0)


register("NotRegion")(_negate(_region))
register("NotTagged")(_negate(_tagged))
register("TagNotEqual")(_negate(_tag_equal))
register("NotReaperState")(_negate(_reaper_state))
register("NotNamed")(_negate(_named))
register("NotNameContains")(_negate(_name_contains))


# Size comparisons shared by autoscaling groups (desired capacity) and volumes (GiB)

_SIZE_COMPARISONS = {
    "SizeGreaterThan": operator.gt,
    "SizeLessThan": operator.lt,
    "SizeEqualTo": operator.eq,
    "SizeLessThanOrEqualTo": operator.le,
    "SizeGreaterThanOrEqualTo": operator.ge,
}


def _register_size_filters(kind: ResourceKind, attribute: str) -> None:
    for name, compare in _SIZE_COMPARISONS.items():
        def predicate(resource, f: Filter, now: datetime, compare=compare) -> bool:
            return compare(getattr(resource, attribute), f.int_argument(0))
        register(name, kind)(predicate)


_register_size_filters(ResourceKind.AUTOSCALING_GROUP, "desired_capacity")
_register_size_filters(ResourceKind.VOLUME, "size")


# Instances

INSTANCE = ResourceKind.INSTANCE


@register("State", INSTANCE)
def _instance_state(resource, f: Filter, now: datetime) -> bool:
    return resource.state_name == f.argument(0)


@register("InstanceType", INSTANCE)
def _instance_type(resource, f: Filter, now: datetime) -> bool:
    return resource.instance_type == f.argument(0)


@register("HasPublicIpAddress", INSTANCE)
def _has_public_ip(resource, f: Filter, now: datetime) -> bool:
    return bool(resource.public_ip_address)


@register("PublicIpAddress", INSTANCE)
def _public_ip(resource, f: Filter, now: datetime) -> bool:
    return resource.public_ip_address == f.argument(0)


@register("AutoScaled", INSTANCE)
def _auto_scaled(resource, f: Filter, now: datetime) -> bool:
    return resource.auto_scaled == f.bool_argument(0)


@register("LaunchTimeBefore", INSTANCE)
def _launch_time_before(resource, f: Filter, now: datetime) -> bool:
    boundary = f.time_argument(0)
    return resource.launch_time is not None and resource.launch_time < boundary


@register("LaunchTimeAfter", INSTANCE)
def _launch_time_after(resource, f: Filter, now: datetime) -> bool:
    boundary = f.time_argument(0)
    return resource.launch_time is not None and resource.launch_time > boundary


@register("LaunchTimeInTheLast", INSTANCE)
def _launch_time_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _in_the_last(resource.launch_time, f, now)


@register("LaunchTimeNotInTheLast", INSTANCE)
def _launch_time_not_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _not_in_the_last(resource.launch_time, f, now)


# Autoscaling groups

@register("CreatedTimeInTheLast", ResourceKind.AUTOSCALING_GROUP)
def _asg_created_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _in_the_last(resource.created_time, f, now)


@register("CreatedTimeNotInTheLast", ResourceKind.AUTOSCALING_GROUP)
def _asg_created_not_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _not_in_the_last(resource.created_time, f, now)


# Cloudformation stacks

@register("Status", ResourceKind.CLOUDFORMATION)
def _stack_status(resource, f: Filter, now: datetime) -> bool:
    return resource.stack_status == f.argument(0)


register("NotStatus", ResourceKind.CLOUDFORMATION)(_negate(_stack_status))


@register("CreatedTimeInTheLast", ResourceKind.CLOUDFORMATION)
def _stack_created_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _in_the_last(resource.creation_time, f, now)


@register("CreatedTimeNotInTheLast", ResourceKind.CLOUDFORMATION)
def _stack_created_not_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _not_in_the_last(resource.creation_time, f, now)


# Volumes

VOLUME = ResourceKind.VOLUME


@register("CreatedInTheLast", VOLUME)
def _volume_created_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _in_the_last(resource.create_time, f, now)


@register("CreatedNotInTheLast", VOLUME)
def _volume_created_not_in_the_last(resource, f: Filter, now: datetime) -> bool:
    return _not_in_the_last(resource.create_time, f, now)


@register("State", VOLUME)
def _volume_state(resource, f: Filter, now: datetime) -> bool:
    return resource.state_name == f.argument(0)


@register("AttachmentState", VOLUME)
def _volume_attachment_state(resource, f: Filter, now: datetime) -> bool:
    wanted = f.argument(0)
    if not resource.attachments:
        return wanted == "detached"
    return any(attachment.state == wanted for attachment in resource.attachments)
