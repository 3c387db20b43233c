"""
Owner notifications.

Matched resources are grouped by owner. An owner with one resource gets a
single "Reapable resource discovered" event; several resources are packed,
in order, into as few batch events as fit under ``max_batch_size`` bytes.
Dispatch happens on a background thread so a slow transport never holds up
the next cycle.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.logger import setup_logger
from ..core.models import ReaperConfig, ResourceKind
from ..reapable.base import Reapable, UnownedError
from ..token.token import JobAction, make_link
from .owners import resolve_owner
from .reaper_action import ReaperActionRunner
from .reporter import EventReporter

logger = setup_logger(__name__)

BATCH_SEPARATOR = "\n"
SINGLE_EVENT_TITLE = "Reapable resource discovered"
DELAY_CHOICES = (timedelta(days=1), timedelta(days=3), timedelta(days=7))


def _truncate(text: str, max_bytes: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def pack_batches(descriptions: Sequence[str], max_size: int, separator: str = BATCH_SEPARATOR) -> List[str]:
    """
    Greedily pack ``descriptions`` into order-preserving batches.

    A batch is its descriptions joined by ``separator``; its UTF-8 length
    never exceeds ``max_size``. A description longer than ``max_size`` on
    its own is truncated and sent alone.
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")

    separator_size = len(separator.encode("utf-8"))
    batches: List[str] = []
    current: List[str] = []
    current_size = 0

    for text in descriptions:
        text = _truncate(text, max_size)
        size = len(text.encode("utf-8"))
        if current and current_size + separator_size + size > max_size:
            batches.append(separator.join(current))
            current, current_size = [], 0
        current_size = size if not current else current_size + separator_size + size
        current.append(text)

    if current:
        batches.append(separator.join(current))
    return batches


@dataclass
class NotificationSummary:
    owners: int = 0
    events: int = 0
    unowned: List[str] = field(default_factory=list)
    failed: int = 0


class NotificationOrchestrator:
    """Groups matched reapables by owner and emits their events."""

    def __init__(self, config: ReaperConfig, reporter: EventReporter, tags: Optional[Sequence[str]] = None):
        self.config = config
        self.reporter = reporter
        self.tags = list(tags or [])
        self.reaper_action = ReaperActionRunner(
            config.notifications.reaper_action, config.dry_run, reporter
        )
        self._threads: List[threading.Thread] = []
        self._threads_lock = threading.Lock()

    def group_by_owner(self, resources: Sequence[Reapable]) -> Tuple[Dict[str, List[Reapable]], List[Reapable]]:
        """Return ``(owner -> resources, unowned resources)``, keeping input order."""
        owners: Dict[str, List[Reapable]] = {}
        unowned: List[Reapable] = []
        for resource in resources:
            try:
                owner = resolve_owner(resource, self.config.default_owner, self.config.default_email_host)
            except UnownedError as e:
                logger.error("Resource has no owner", extra={"resource": resource.description_tiny(),
                                                             "region": resource.region, "error": str(e)})
                unowned.append(resource)
                continue
            owners.setdefault(owner, []).append(resource)
        return owners, unowned

    def action_links(self, resource: Reapable) -> Dict[str, str]:
        http = self.config.http

        def link(action: JobAction, extra: Optional[timedelta] = None) -> str:
            return make_link(
                http.api_url,
                http.token_secret,
                action,
                resource.region,
                resource.id,
                extra=extra,
                lifetime=http.token_lifetime,
                action_param=http.action_param,
                token_param=http.token_param,
            )

        links = {f"delay_{delay.days}d": link(JobAction.DELAY, delay) for delay in DELAY_CHOICES}
        links["terminate"] = link(JobAction.TERMINATE)
        links["whitelist"] = link(JobAction.WHITELIST)
        if resource.kind in (ResourceKind.INSTANCE, ResourceKind.AUTOSCALING_GROUP):
            links["stop"] = link(JobAction.STOP)
            links["force_stop"] = link(JobAction.FORCE_STOP)
        return links

    def _single_event(self, owner: str, resource: Reapable) -> None:
        state = resource.reaper_state
        text = resource.description()
        links = self.action_links(resource)
        text += "".join(f"\n{name}: {url}" for name, url in links.items())
        fields = {
            "owner": owner,
            "region": resource.region,
            "id": resource.id,
            "kind": resource.kind.value,
            "state": state.state.label,
            "final_state_time": state.final_state_time(self.config.states).isoformat(),
        }
        self.reporter.new_event(SINGLE_EVENT_TITLE, text, fields, self.tags)

    def _batch_events(self, owner: str, resources: Sequence[Reapable]) -> int:
        batches = pack_batches(
            [resource.description() for resource in resources],
            self.config.notifications.max_batch_size,
        )
        for index, batch in enumerate(batches, start=1):
            title = f"{len(resources)} reapable resources discovered ({index}/{len(batches)})"
            self.reporter.new_event(title, batch, {"owner": owner}, self.tags)
        return len(batches)

    def notify(self, resources: Sequence[Reapable], now: Optional[datetime] = None) -> NotificationSummary:
        """Emit owner events for ``resources`` and run the reaper action. Blocks."""
        summary = NotificationSummary()
        self.reaper_action.run(resources, now)

        if not self.config.notifications.enabled:
            return summary

        owners, unowned = self.group_by_owner(resources)
        summary.owners = len(owners)
        summary.unowned = [resource.id for resource in unowned]

        for owner, owned in owners.items():
            try:
                if len(owned) == 1:
                    self._single_event(owner, owned[0])
                    summary.events += 1
                else:
                    summary.events += self._batch_events(owner, owned)
            except Exception as e:
                summary.failed += 1
                logger.error(
                    "Failed to send owner notification",
                    extra={"owner": owner, "count": len(owned), "error": str(e)},
                    exc_info=True,
                )

        logger.info(
            "Notifications sent",
            extra={"owners": summary.owners, "events": summary.events,
                   "unowned": len(summary.unowned), "failed": summary.failed},
        )
        return summary

    def dispatch(self, resources: Sequence[Reapable], now: Optional[datetime] = None) -> threading.Thread:
        """Run ``notify`` on a background thread and return it."""
        snapshot = list(resources)
        thread = threading.Thread(
            target=self._run_dispatch, args=(snapshot, now), name="reaper-notifications"
        )
        with self._threads_lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()
        return thread

    def _run_dispatch(self, resources: Sequence[Reapable], now: Optional[datetime]) -> None:
        try:
            self.notify(resources, now)
        except Exception as e:
            logger.error("Notification dispatch failed", extra={"error": str(e)}, exc_info=True)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding dispatch threads."""
        with self._threads_lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
