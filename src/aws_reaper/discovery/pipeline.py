"""
Concurrent resource discovery.

For every resource kind, one worker per region lists resources on a shared
ThreadPoolExecutor and feeds that kind's queue. When the last region worker
of a kind finishes it puts a sentinel on the queue, which ends the kind's
stream. A failing region is logged and contributes nothing. Per-region
counts are handed to a background thread that reports them as statistics,
so consumers of the streams never wait on the event transport.
"""

import queue
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..core.logger import setup_logger
from ..core.models import ReaperConfig, ResourceKind
from ..events.reporter import EventReporter, NoEventReporter
from ..filters.engine import is_whitelisted, matches_filters
from ..filters.filter import build_filter_groups
from ..handlers.base import ResourceHandler
from ..reapable.base import Reapable
from ..state.state import ReaperState, normalize_time, utcnow

logger = setup_logger(__name__)


class DiscoveryError(Exception):
    """Discovery could not be started or has been misused."""
    pass


_DONE = object()

# Attribute broken down in statistics, and the tag name it is reported under
_BREAKDOWNS = {
    ResourceKind.INSTANCE: ("instance_type", "instancetype"),
    ResourceKind.VOLUME: ("size", "volumesize"),
    ResourceKind.AUTOSCALING_GROUP: ("desired_capacity", "asgsize"),
}


@dataclass
class RegionStatistics:
    """Counts gathered by one region worker."""
    kind: ResourceKind
    region: str
    total: int = 0
    whitelisted: int = 0
    filtered: int = 0
    breakdown: Counter = field(default_factory=Counter)
    failed: bool = False


class DiscoveryStreams:
    """
    One lazy stream of reapables per kind.

    Each stream can be consumed once. ``close()`` waits for in-flight
    provider calls and for pending statistics to be reported.
    """

    def __init__(self, pipeline: "DiscoveryPipeline", queues: Dict[ResourceKind, "queue.Queue"]):
        self._pipeline = pipeline
        self._queues = queues

    def stream(self, kind: ResourceKind) -> Iterator[Reapable]:
        kind = ResourceKind(kind)
        if kind not in self._queues:
            return
        q = self._queues[kind]
        while True:
            item = q.get()
            if item is _DONE:
                return
            yield item

    @property
    def cloudformations(self) -> Iterator[Reapable]:
        return self.stream(ResourceKind.CLOUDFORMATION)

    @property
    def autoscaling_groups(self) -> Iterator[Reapable]:
        return self.stream(ResourceKind.AUTOSCALING_GROUP)

    @property
    def instances(self) -> Iterator[Reapable]:
        return self.stream(ResourceKind.INSTANCE)

    @property
    def security_groups(self) -> Iterator[Reapable]:
        return self.stream(ResourceKind.SECURITY_GROUP)

    @property
    def volumes(self) -> Iterator[Reapable]:
        return self.stream(ResourceKind.VOLUME)

    def close(self) -> None:
        self._pipeline.close()

    def __enter__(self) -> "DiscoveryStreams":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DiscoveryPipeline:
    """
    Fans discovery out over regions and kinds.

    Args:
        handlers: Handler per kind to discover
        regions: Regions to list
        config: Supplies whitelist tag and filter groups for statistics
        reporter: Receives per-region statistics
        saved_states: ``(region, id) -> ReaperState`` overriding tag state
        max_workers: Thread pool size (default: one per region and kind)
        now: Discovery time used to seed new states
    """

    def __init__(
        self,
        handlers: Mapping[ResourceKind, ResourceHandler],
        regions: Iterable[str],
        config: ReaperConfig,
        reporter: Optional[EventReporter] = None,
        saved_states: Optional[Mapping[Tuple[str, str], ReaperState]] = None,
        max_workers: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        self.handlers = {ResourceKind(kind): handler for kind, handler in handlers.items()}
        self.regions: List[str] = list(regions)
        self.config = config
        self.reporter = reporter or NoEventReporter()
        self.saved_states = dict(saved_states or {})
        self.max_workers = max_workers or max(1, len(self.regions) * len(self.handlers))
        self.now = normalize_time(now or utcnow())
        self._filter_groups = {
            kind: build_filter_groups(config.resource_config(kind).filter_groups) for kind in self.handlers
        }

        self._executor: Optional[ThreadPoolExecutor] = None
        self._remaining: Dict[ResourceKind, int] = {}
        self._remaining_lock = threading.Lock()
        self._statistics: "queue.Queue" = queue.Queue()
        self._statistics_thread: Optional[threading.Thread] = None
        self._closed = False

    def start(self) -> DiscoveryStreams:
        """Submit every region worker and return the streams immediately."""
        if self._executor is not None:
            raise DiscoveryError("discovery pipeline already started")

        queues: Dict[ResourceKind, queue.Queue] = {kind: queue.Queue() for kind in self.handlers}
        self._statistics_thread = threading.Thread(
            target=self._report_statistics, name="reaper-discovery-stats", daemon=True
        )
        self._statistics_thread.start()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="reaper-discovery"
        )

        logger.info(
            "Starting discovery",
            extra={"regions": self.regions, "kinds": [kind.value for kind in self.handlers]},
        )

        for kind, handler in self.handlers.items():
            self._remaining[kind] = len(self.regions)
            if not self.regions:
                queues[kind].put(_DONE)
                continue
            for region in self.regions:
                self._executor.submit(self._discover_region, kind, handler, region, queues[kind])

        return DiscoveryStreams(self, queues)

    def close(self) -> None:
        """Wait for region workers, then flush statistics."""
        if self._closed:
            return
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self._statistics.put(_DONE)
        if self._statistics_thread is not None:
            self._statistics_thread.join()

    def _discover_region(
        self,
        kind: ResourceKind,
        handler: ResourceHandler,
        region: str,
        out: "queue.Queue",
    ) -> None:
        stats = RegionStatistics(kind, region)
        resources: List[Reapable] = []
        try:
            for resource in handler.discover(region, self.now):
                saved = self.saved_states.get((region, resource.id))
                if saved is not None:
                    resource.reaper_state = saved
                self._count(stats, resource)
                resources.append(resource)
        except (ClientError, BotoCoreError) as e:
            stats = RegionStatistics(kind, region, failed=True)
            resources = []
            logger.error(
                "Region discovery failed",
                extra={"kind": kind.value, "region": region, "error": str(e)},
                exc_info=True,
            )
        except Exception as e:
            stats = RegionStatistics(kind, region, failed=True)
            resources = []
            logger.error(
                "Unexpected error during region discovery",
                extra={"kind": kind.value, "region": region, "error": str(e)},
                exc_info=True,
            )
        finally:
            for resource in resources:
                out.put(resource)
            self._statistics.put(stats)
            with self._remaining_lock:
                self._remaining[kind] -= 1
                last = self._remaining[kind] == 0
            if last:
                out.put(_DONE)

    def _count(self, stats: RegionStatistics, resource: Reapable) -> None:
        stats.total += 1
        # stopped and terminated instances stay out of the type and whitelist counts
        idle = getattr(resource, "stopped", False) or getattr(resource, "terminated", False)
        if not idle and is_whitelisted(resource, self.config.whitelist_tag):
            stats.whitelisted += 1
        if matches_filters(
            resource,
            self._filter_groups[stats.kind],
            self.config.whitelist_tag,
            self.config.resource_config(stats.kind).mode,
            self.now,
        ):
            stats.filtered += 1
        breakdown = _BREAKDOWNS.get(stats.kind)
        if breakdown is not None and not idle:
            stats.breakdown[getattr(resource, breakdown[0])] += 1

    def _report_statistics(self) -> None:
        while True:
            stats = self._statistics.get()
            if stats is _DONE:
                return
            try:
                self._emit(stats)
            except Exception as e:
                logger.error(
                    "Failed to report discovery statistics",
                    extra={"kind": stats.kind.value, "region": stats.region, "error": str(e)},
                )

    def _emit(self, stats: RegionStatistics) -> None:
        if stats.failed:
            self.reporter.new_count_statistic(
                f"reaper.{stats.kind.value}.region_errors", [f"region:{stats.region}"]
            )
            return

        logger.info(
            f"Found {stats.total} total {stats.kind.value} in {stats.region}",
            extra={
                "kind": stats.kind.value,
                "region": stats.region,
                "total": stats.total,
                "whitelisted": stats.whitelisted,
                "filtered": stats.filtered,
            },
        )
        tags = [f"region:{stats.region}"]
        prefix = f"reaper.{stats.kind.value}"
        self.reporter.new_statistic(f"{prefix}.total", float(stats.total), tags)
        self.reporter.new_statistic(f"{prefix}.whitelistedCount", float(stats.whitelisted), tags)
        self.reporter.new_statistic(f"{prefix}.filtered", float(stats.filtered), tags)

        breakdown = _BREAKDOWNS.get(stats.kind)
        if breakdown is not None:
            for value, count in sorted(stats.breakdown.items(), key=lambda item: str(item[0])):
                self.reporter.new_statistic(
                    f"{prefix}.{breakdown[1]}", float(count), tags + [f"{breakdown[1]}:{value}"]
                )
