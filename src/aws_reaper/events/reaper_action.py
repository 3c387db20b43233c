"""
Automatic action on resources that reached Final.

When enabled and not in dry-run mode, every reapable in Final whose
``until`` has passed is stopped or terminated according to the configured
mode. Failures are logged per resource.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..core.logger import setup_logger
from ..core.models import ReaperAction, ReaperActionConfig
from ..reapable.base import Reapable
from ..state.state import StateEnum, normalize_time, utcnow
from .reporter import EventReporter, NoEventReporter

logger = setup_logger(__name__)


@dataclass
class ReaperActionSummary:
    acted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: int = 0


class ReaperActionRunner:
    """Stops or terminates resources whose Final deadline has passed."""

    def __init__(
        self,
        config: ReaperActionConfig,
        dry_run: bool,
        reporter: Optional[EventReporter] = None,
    ):
        self.config = config
        self.dry_run = dry_run
        self.reporter = reporter or NoEventReporter()

    @property
    def active(self) -> bool:
        return self.config.enabled and not self.dry_run

    @staticmethod
    def is_due(resource: Reapable, now: datetime) -> bool:
        state = resource.reaper_state
        return state.state == StateEnum.FINAL and state.is_due(now)

    def run(self, resources: Iterable[Reapable], now: Optional[datetime] = None) -> ReaperActionSummary:
        summary = ReaperActionSummary()
        if not self.active:
            return summary

        now = normalize_time(now or utcnow())
        mode = ReaperAction(self.config.mode)

        for resource in resources:
            if not self.is_due(resource, now):
                summary.skipped += 1
                continue

            try:
                if mode == ReaperAction.TERMINATE:
                    ok = resource.terminate()
                else:
                    ok = resource.stop()
            except (ClientError, BotoCoreError) as e:
                logger.error(
                    "Reaper action failed",
                    extra={"mode": mode.value, "resource": resource.description_tiny(),
                           "region": resource.region, "error": str(e)},
                    exc_info=True,
                )
                summary.failed.append(resource.id)
                continue

            if ok:
                summary.acted.append(resource.id)
                logger.info(
                    "Reaper action applied",
                    extra={"mode": mode.value, "resource": resource.description_tiny(), "region": resource.region},
                )
                self.reporter.new_count_statistic(
                    "reaper.reapables.reaped", [f"action:{mode.value.lower()}", f"region:{resource.region}"]
                )
            else:
                summary.failed.append(resource.id)
                logger.warning(
                    "Reaper action not supported or refused",
                    extra={"mode": mode.value, "resource": resource.description_tiny(), "region": resource.region},
                )

        return summary
