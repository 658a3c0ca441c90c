"""Notification sinks for job lifecycle events."""

import logging
from typing import Callable, List, Optional

from .models import EventKind, JobEvent

logger = logging.getLogger(__name__)


class NotificationSink:
    """Receives lifecycle events. Presentation layers subclass this."""

    def notify(self, event: JobEvent) -> None:
        raise NotImplementedError


class LoggingSink(NotificationSink):
    """Writes one log line per event; progress events go to DEBUG."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def notify(self, event: JobEvent) -> None:
        level = logging.DEBUG if event.kind == EventKind.JOB_PROGRESS else logging.INFO
        if event.kind == EventKind.JOB_FAILED:
            level = logging.ERROR
        self.log.log(level, "[%s] job=%s state=%s %s",
                     event.kind.value, event.job_id or "-", event.state.value, event.message)


class CallbackSink(NotificationSink):
    def __init__(self, callback: Callable[[JobEvent], None]):
        self.callback = callback

    def notify(self, event: JobEvent) -> None:
        self.callback(event)


class RecordingSink(NotificationSink):
    """Keeps every event it receives, in order."""

    def __init__(self):
        self.events: List[JobEvent] = []

    def notify(self, event: JobEvent) -> None:
        self.events.append(event)

    def kinds(self, include_progress: bool = False) -> List[EventKind]:
        return [e.kind for e in self.events
                if include_progress or e.kind != EventKind.JOB_PROGRESS]

    def of_kind(self, kind: EventKind) -> List[JobEvent]:
        return [e for e in self.events if e.kind == kind]


class FanoutSink(NotificationSink):
    """Delivers each event to several sinks; one failing sink does not block the rest."""

    def __init__(self, *sinks: NotificationSink):
        self.sinks = list(sinks)

    def add(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    def notify(self, event: JobEvent) -> None:
        for sink in self.sinks:
            try:
                sink.notify(event)
            except Exception:
                logger.exception("Notification sink %s failed on %s", type(sink).__name__, event.kind.value)
