"""
Filter matching.

``matches`` ANDs the filters of one group. ``matches_filters`` combines the
named groups configured for a kind ("any" or "all") and applies whitelist
precedence. Evaluation never raises: bad arguments, unknown functions and
unexpected errors are logged and count as a non-match.
"""
from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence

from ..core.logger import setup_logger
from ..core.models import FilterMode
from ..state.state import normalize_time, utcnow
from .filter import Filter, FilterArgumentError, FilterGroup
from .registry import FILTER_REGISTRY, FilterRegistry

logger = setup_logger(__name__)


def is_whitelisted(resource, whitelist_tag: Optional[str]) -> bool:
    return bool(whitelist_tag) and whitelist_tag in resource.tags


def matches(
    resource,
    group: Sequence[Filter],
    now: Optional[datetime] = None,
    registry: FilterRegistry = FILTER_REGISTRY,
) -> bool:
    """Return True when every filter in ``group`` matches ``resource``."""
    now = normalize_time(now or utcnow())

    for f in group:
        predicate = registry.lookup(resource.kind, f.function)
        if predicate is None:
            logger.warning(
                "Unknown filter function",
                extra={"function": f.function, "kind": resource.kind, "resource_id": resource.id},
            )
            return False

        try:
            if not predicate(resource, f, now):
                return False
        except FilterArgumentError as e:
            logger.warning(
                "Invalid filter argument",
                extra={"filter": str(f), "resource_id": resource.id, "error": str(e)},
            )
            return False
        except Exception as e:
            logger.error(
                "Filter evaluation failed",
                extra={"filter": str(f), "resource_id": resource.id, "error": str(e)},
                exc_info=True,
            )
            return False

    return True


def matches_filters(
    resource,
    groups: Mapping[str, FilterGroup],
    whitelist_tag: Optional[str] = None,
    mode: str = FilterMode.ANY,
    now: Optional[datetime] = None,
    registry: FilterRegistry = FILTER_REGISTRY,
) -> bool:
    """
    Decide whether ``resource`` is subject to reaping.

    No groups, or only empty groups, match everything. Otherwise ``mode``
    "any" needs one matching group and "all" needs every group. The groups
    that matched are recorded on ``resource.matched_filter_groups``. A
    resource carrying ``whitelist_tag`` never matches.
    """
    resource.matched_filter_groups = {}

    if not registry.knows_kind(getattr(resource, "kind", None)):
        logger.error(
            "Unknown resource kind reached the filter engine",
            extra={"kind": getattr(resource, "kind", None), "resource_id": getattr(resource, "id", None)},
        )
        return False

    if is_whitelisted(resource, whitelist_tag):
        return False

    if not groups or all(len(group) == 0 for group in groups.values()):
        return True

    matched: Dict[str, FilterGroup] = {
        name: list(group) for name, group in groups.items() if matches(resource, group, now, registry)
    }

    if FilterMode(mode) == FilterMode.ALL:
        result = len(matched) == len(groups)
    else:
        result = len(matched) > 0

    if result:
        resource.matched_filter_groups = matched
    return result
