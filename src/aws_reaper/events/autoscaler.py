"""
Scheduled scale-down and scale-up.

Every instance and autoscaling group carrying a valid scaler tag is
checked once per cycle. If its scale-down or scale-up expression fired
since the previous check, the resource is scaled accordingly. Resources
already in the target state are left alone.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..core.logger import setup_logger
from ..core.models import ScalingConfig
from ..reapable.base import Reapable, Scalable
from ..reapable.scaling import ScaleAction
from ..state.state import normalize_time
from .reporter import EventReporter, NoEventReporter

logger = setup_logger(__name__)


@dataclass
class AutoscalerSummary:
    scaled_down: List[str] = field(default_factory=list)
    scaled_up: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def scaled(self) -> int:
        return len(self.scaled_down) + len(self.scaled_up)


class Autoscaler:
    """Applies due scaler tag schedules."""

    def __init__(self, config: ScalingConfig, dry_run: bool, reporter: Optional[EventReporter] = None):
        self.config = config
        self.dry_run = dry_run
        self.reporter = reporter or NoEventReporter()

    def run(self, resources: Iterable[Reapable], since: datetime, now: datetime) -> AutoscalerSummary:
        """Scale every scheduled resource whose expression fired in ``(since, now]``."""
        summary = AutoscalerSummary()
        if not self.config.enabled:
            return summary

        since = normalize_time(since)
        now = normalize_time(now)

        for resource in resources:
            schedule = getattr(resource, "scaling", None)
            if not isinstance(resource, Scalable) or schedule is None:
                continue

            action = schedule.due_action(since, now)
            if action is None:
                summary.unchanged += 1
                continue

            log_extra = {"action": action.value, "resource": resource.description_tiny(), "region": resource.region}
            if self.dry_run:
                logger.info("Dry run: not scaling", extra=log_extra)
                continue

            try:
                ok = resource.scale_down() if action == ScaleAction.DOWN else resource.scale_up()
            except (ClientError, BotoCoreError) as e:
                logger.error("Scaling failed", extra={**log_extra, "error": str(e)}, exc_info=True)
                summary.failed.append(resource.id)
                continue

            if not ok:
                summary.unchanged += 1
                logger.debug("Already scaled", extra=log_extra)
                continue

            if action == ScaleAction.DOWN:
                summary.scaled_down.append(resource.id)
            else:
                summary.scaled_up.append(resource.id)
            logger.info("Scaled resource", extra=log_extra)
            self.reporter.new_count_statistic(
                "reaper.reapables.scaled", [f"action:{action.value}", f"region:{resource.region}"]
            )

        return summary
