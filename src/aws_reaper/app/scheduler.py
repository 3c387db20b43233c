"""Recurring reap cycles on a worker thread."""
import threading
from datetime import timedelta
from typing import Any, Dict, Optional

from ..core.logger import setup_logger
from .reaper import Reaper

logger = setup_logger(__name__)


class ReapScheduler:
    """
    Runs ``reaper.run_cycle()`` every ``interval``, first run immediately.

    Cycles never overlap: the next wait starts after a cycle returns.
    ``stop()`` lets a running cycle finish, then waits for outstanding
    notification threads.
    """

    def __init__(self, reaper: Reaper, interval: Optional[timedelta] = None):
        self.reaper = reaper
        self.interval = interval if interval is not None else reaper.config.states.interval
        if self.interval.total_seconds() <= 0:
            raise ValueError("interval must be positive")

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0
        self.last_summary: Optional[Dict[str, Any]] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("scheduler already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="reaper-scheduler")
        self._thread.start()
        logger.info("Scheduler started", extra={"interval_seconds": self.interval.total_seconds()})

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.last_summary = self.reaper.run_cycle()
            except Exception as e:
                logger.error("Reap cycle failed", extra={"error": str(e)}, exc_info=True)
            self.cycles += 1
            self._stop_event.wait(self.interval.total_seconds())

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and drain the cycle thread and notifications."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self.reaper.close(timeout)
        logger.info("Scheduler stopped", extra={"cycles": self.cycles})
