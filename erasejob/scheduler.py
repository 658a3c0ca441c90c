"""Periodic task scheduling for running jobs."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a periodic callback."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the task. Calling it again has no effect."""
        if self._cancelled:
            return
        self._cancelled = True
        self._on_cancel()

    def _on_cancel(self) -> None:
        pass


class Scheduler(ABC):
    @abstractmethod
    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        """Run callback every interval seconds until the task is cancelled."""


class _ThreadTask(ScheduledTask):

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        super().__init__(name, interval, callback)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"erasejob-{name}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Scheduled task %s failed", self.name)

    def _on_cancel(self) -> None:
        # The callback may cancel its own task, so never join here
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)


class ThreadScheduler(Scheduler):
    """Runs each periodic task on its own daemon thread."""

    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        task = _ThreadTask(name, interval, callback)
        task.start()
        return task


class _ManualTask(ScheduledTask):
    pass


class ManualScheduler(Scheduler):
    """Records tasks and fires them only when asked.

    Useful for deterministic tests and for hosts that drive ticks from their
    own event loop.
    """

    def __init__(self):
        self.tasks: List[ScheduledTask] = []

    def every(self, interval: float, callback: Callable[[], None], name: str = "task") -> ScheduledTask:
        task = _ManualTask(name, interval, callback)
        self.tasks.append(task)
        return task

    def active(self, name: Optional[str] = None) -> List[ScheduledTask]:
        return [t for t in self.tasks if not t.cancelled and (name is None or t.name == name)]

    def fire(self, name: str, times: int = 1) -> int:
        """Invoke every live task with this name; returns the number of calls made."""
        calls = 0
        for _ in range(times):
            for task in self.active(name):
                task.callback()
                calls += 1
        return calls
