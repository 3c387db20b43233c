"""
Reap cycle orchestration.

The Reaper is the explicit context object of a running process: it owns
the configuration, the handlers, the event reporter and the registry, and
it is handed to action link processing. One cycle runs discovery,
dependency resolution, filtering, state advance and persistence, swaps the
registry, then notifies owners in the background. A failure is local to
the resource or region that caused it; the cycle always completes.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.logger import setup_logger
from ..core.models import ReaperConfig, ResourceKind
from ..discovery.dependencies import DependencyResolver, ResolvedResources
from ..discovery.pipeline import DiscoveryPipeline
from ..events.autoscaler import Autoscaler
from ..events.notifications import NotificationOrchestrator
from ..events.owners import resolve_owner
from ..events.reporter import EventReporter, LoggingEventReporter
from ..filters.engine import matches_filters
from ..filters.filter import FilterGroup, build_filter_groups
from ..handlers.base import HandlerResult, ResourceHandler
from ..handlers.factory import get_handlers
from ..reapable.base import Reapable, UnownedError
from ..reapable.registry import Reapables
from ..state.state import delayed, normalize_time, utcnow
from ..state.statefile import load_states, save_states

logger = setup_logger(__name__)


class ActionError(Exception):
    """A dispatched action failed at the provider."""
    pass


class Reaper:
    """
    Reaper context: configuration, provider handlers, registry and events.

    Args:
        config: Reaper configuration
        reporter: Event transport (default: structured log)
        handlers: Handler per kind (default: one per registered kind)
        registry: Shared registry of live reapables
        client_factory: Builds boto3 clients for the default handlers
        clock: Returns the current time
    """

    def __init__(
        self,
        config: ReaperConfig,
        reporter: Optional[EventReporter] = None,
        handlers: Optional[Mapping[ResourceKind, ResourceHandler]] = None,
        registry: Optional[Reapables] = None,
        client_factory: Callable[..., Any] = boto3.client,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.reporter = reporter or LoggingEventReporter()
        self.handlers = dict(handlers) if handlers is not None else get_handlers(config, client_factory)
        self.registry = registry if registry is not None else Reapables(config.regions)
        self.clock = clock
        self.notifications = NotificationOrchestrator(config, self.reporter)
        self.autoscaler = Autoscaler(config.scaling, config.dry_run, self.reporter)
        self._last_scaling_check: Optional[datetime] = None
        self._filter_groups: Dict[ResourceKind, Dict[str, FilterGroup]] = {
            kind: build_filter_groups(config.resource_config(kind).filter_groups) for kind in ResourceKind
        }

    # Cycle

    def discover(self, now: datetime) -> ResolvedResources:
        """Run discovery and dependency resolution for every kind with a handler."""
        saved_states = {}
        if self.config.load_from_state_file and self.config.state_file:
            saved_states = load_states(self.config.state_file)

        pipeline = DiscoveryPipeline(
            self.handlers,
            self.config.regions,
            self.config,
            reporter=self.reporter,
            saved_states=saved_states,
            now=now,
        )
        with pipeline.start() as streams:
            return DependencyResolver().resolve(
                streams.cloudformations,
                streams.autoscaling_groups,
                streams.instances,
                streams.security_groups,
                streams.volumes,
            )

    def refresh(self) -> int:
        """Repopulate the registry from discovery without advancing any state."""
        now = normalize_time(self.clock())
        enabled = set(self.config.enabled_kinds())
        resources = [resource for resource in self.discover(now).all() if resource.kind in enabled]
        self.registry.replace_all(resources)
        logger.info("Registry refreshed", extra={"count": len(resources)})
        return len(resources)

    def matches(self, resource: Reapable, now: Optional[datetime] = None) -> bool:
        resource_config = self.config.resource_config(resource.kind)
        return matches_filters(
            resource,
            self._filter_groups[resource.kind],
            self.config.whitelist_tag,
            resource_config.mode,
            now,
        )

    def run_cycle(self) -> Dict[str, Any]:
        """
        Run one reap cycle.

        Returns:
            Summary with total, matched, advanced, saved, save_failed,
            unowned and scaled counts
        """
        now = normalize_time(self.clock())
        enabled = set(self.config.enabled_kinds())
        logger.info(
            "Starting reap cycle",
            extra={"dry_run": self.config.dry_run, "enabled_kinds": sorted(k.value for k in enabled)},
        )

        resolved = self.discover(now)
        resources = [resource for resource in resolved.all() if resource.kind in enabled]

        summary = {"total": len(resources), "matched": 0, "advanced": 0,
                   "saved": 0, "save_failed": 0, "unowned": 0, "scaled": 0}
        matched: List[Reapable] = []

        for resource in resources:
            try:
                if not self.matches(resource, now):
                    continue
                matched.append(resource)
                if resource.increment_state(now, self.config.states):
                    summary["advanced"] += 1
                    self._persist(resource, summary)
            except Exception as e:
                logger.error(
                    "Failed to process resource",
                    extra={"resource": resource.description_tiny(), "region": resource.region, "error": str(e)},
                    exc_info=True,
                )

        summary["matched"] = len(matched)
        summary["unowned"] = sum(1 for resource in matched if not self._has_owner(resource))
        summary["scaled"] = self._autoscale(resolved.all(), now)

        self.registry.replace_all(resources)
        if self.config.state_file:
            self._write_state_file(resources)

        self.notifications.dispatch(matched, now)

        logger.info("Reap cycle completed", extra=summary)
        return summary

    def _autoscale(self, resources: List[Reapable], now: datetime) -> int:
        """Apply scaler schedules that fired since the previous cycle, or one interval back."""
        since = self._last_scaling_check or now - self.config.states.interval
        self._last_scaling_check = now
        try:
            return self.autoscaler.run(resources, since, now).scaled
        except Exception as e:
            logger.error("Autoscaling failed", extra={"error": str(e)}, exc_info=True)
            return 0

    def _persist(self, resource: Reapable, summary: Dict[str, int]) -> None:
        state = resource.reaper_state
        if self.config.dry_run:
            logger.info(
                "Dry run: not saving state",
                extra={"resource": resource.description_tiny(), "region": resource.region, "state": str(state)},
            )
            return
        try:
            if resource.save(state):
                summary["saved"] += 1
            else:
                logger.debug(
                    "State not persisted for this kind",
                    extra={"resource": resource.description_tiny(), "region": resource.region},
                )
        except (ClientError, BotoCoreError) as e:
            # state stays advanced in memory; the tag is retried next cycle
            summary["save_failed"] += 1
            logger.error(
                "Failed to save reaper state",
                extra={"resource": resource.description_tiny(), "region": resource.region,
                       "state": str(state), "error": str(e)},
                exc_info=True,
            )

    def _has_owner(self, resource: Reapable) -> bool:
        try:
            resolve_owner(resource, self.config.default_owner, self.config.default_email_host)
        except UnownedError:
            return False
        return True

    def _write_state_file(self, resources: List[Reapable]) -> None:
        try:
            save_states(
                self.config.state_file,
                ((resource.region, resource.id, resource.reaper_state) for resource in resources),
            )
        except OSError as e:
            logger.error("Unable to write state file", extra={"path": self.config.state_file, "error": str(e)})

    def close(self, timeout: Optional[float] = None) -> None:
        """Wait for background notifications."""
        self.notifications.join(timeout)

    # Dispatch

    def _dispatch(self, action: str, region: str, resource_id: str,
                  operation: Callable[[Reapable], bool]) -> HandlerResult:
        """
        Raises:
            NotFoundError: If the resource is not registered
            ActionError: If the provider call fails
        """
        resource = self.registry.get(region, resource_id)
        log_extra = {"action": action, "resource": resource.description_tiny(), "region": region}

        if self.config.dry_run:
            logger.info("Dry run: action not executed", extra=log_extra)
            return HandlerResult(
                success=True,
                action=action,
                resource_kind=resource.kind.value,
                resource_id=resource_id,
                message=f"Dry run: would {action} {resource.description_short()}",
            )

        try:
            ok = operation(resource)
        except (ClientError, BotoCoreError) as e:
            logger.error("Action failed", extra={**log_extra, "error": str(e)}, exc_info=True)
            raise ActionError(f"{action} failed for {resource.description_tiny()}: {e}") from e

        if not ok:
            logger.warning("Action not performed", extra=log_extra)
            return HandlerResult(
                success=False,
                action=action,
                resource_kind=resource.kind.value,
                resource_id=resource_id,
                message=f"{action.capitalize()} failed for {resource.description_tiny()}.",
            )

        logger.info("Action performed", extra=log_extra)
        self.reporter.new_event(
            f"Reaper: {action.replace('_', ' ').title()} Request Received",
            resource.description_short(),
            None,
            [],
        )
        self.reporter.new_count_statistic("reaper.reapables.requests", [f"type:{action}"])
        return HandlerResult(
            success=True,
            action=action,
            resource_kind=resource.kind.value,
            resource_id=resource_id,
            message=resource.description(),
        )

    def terminate(self, region: str, resource_id: str) -> HandlerResult:
        return self._dispatch("terminate", region, resource_id, lambda r: r.terminate())

    def stop(self, region: str, resource_id: str) -> HandlerResult:
        return self._dispatch("stop", region, resource_id, lambda r: r.stop())

    def force_stop(self, region: str, resource_id: str) -> HandlerResult:
        return self._dispatch("force_stop", region, resource_id, lambda r: r.force_stop())

    def whitelist(self, region: str, resource_id: str) -> HandlerResult:
        return self._dispatch("whitelist", region, resource_id, lambda r: r.whitelist())

    def delay(self, region: str, resource_id: str, duration: timedelta) -> HandlerResult:
        """Push the resource's ``until`` back by ``duration`` and save it."""
        return self._dispatch(
            "delay", region, resource_id, lambda r: r.save(delayed(r.reaper_state, duration))
        )
