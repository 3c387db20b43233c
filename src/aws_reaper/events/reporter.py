"""
Event reporters.

Notification transports (mail, metrics, chat) sit behind EventReporter.
The reaper ships a no-op reporter and one that writes events as structured
log entries; real transports implement the same three methods.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ..core.logger import setup_logger


class EventReporter(ABC):
    """Transport for reaper events and statistics. Errors are raised."""

    @abstractmethod
    def new_event(self, title: str, text: str, fields: Optional[Dict[str, str]], tags: Sequence[str]) -> None:
        pass

    @abstractmethod
    def new_statistic(self, name: str, value: float, tags: Sequence[str]) -> None:
        pass

    @abstractmethod
    def new_count_statistic(self, name: str, tags: Sequence[str]) -> None:
        pass


class NoEventReporter(EventReporter):
    """Discards everything."""

    def new_event(self, title, text, fields, tags) -> None:
        return None

    def new_statistic(self, name, value, tags) -> None:
        return None

    def new_count_statistic(self, name, tags) -> None:
        return None


class LoggingEventReporter(EventReporter):
    """Writes events and statistics to the structured log."""

    def __init__(self, name: str = "aws_reaper.events"):
        self.logger = setup_logger(name)

    def new_event(self, title, text, fields, tags) -> None:
        self.logger.info(title, extra={"text": text, "fields": fields or {}, "tags": list(tags)})

    def new_statistic(self, name, value, tags) -> None:
        self.logger.info("statistic", extra={"statistic": name, "value": value, "tags": list(tags)})

    def new_count_statistic(self, name, tags) -> None:
        self.logger.info("count", extra={"statistic": name, "value": 1, "tags": list(tags)})


class RecordingEventReporter(EventReporter):
    """Keeps every call in memory; handy for dry runs and tests."""

    def __init__(self):
        self.events: List[Dict] = []
        self.statistics: List[Dict] = []

    def new_event(self, title, text, fields, tags) -> None:
        self.events.append({"title": title, "text": text, "fields": fields, "tags": list(tags)})

    def new_statistic(self, name, value, tags) -> None:
        self.statistics.append({"name": name, "value": value, "tags": list(tags)})

    def new_count_statistic(self, name, tags) -> None:
        self.statistics.append({"name": name, "value": 1, "tags": list(tags)})

