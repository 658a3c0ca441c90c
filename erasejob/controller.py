"""Job controller - owns the erase job lifecycle and drives its progress.

State machine::

    idle -> confirming -> running <-> paused -> stopped
                 |            |                    |
                 v            +--> completed ------+--> idle (acknowledge)
               idle           +--> failed ---------+

Every public command returns a CommandResult; rejected commands leave the
controller exactly as it was. Progress and elapsed time advance from two
periodic tasks that exist only while the job is running.
"""

import logging
import threading
import uuid
from datetime import datetime
from functools import partial
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from . import progress as progress_model
from .backends import EraseBackend, SyntheticBackend
from .certificate import CertificateIssuer
from .configuration import validate
from .confirmation import confirm as confirmation_gate, confirm_stop
from .errors import BackendError, ErrorCode, IssuerError
from .models import (
    CertificateRecord, CommandResult, DeviceDescriptor, EraseConfiguration,
    EraseJob, EventKind, JobEvent, JobState,
)
from .notifications import LoggingSink, NotificationSink
from .scheduler import ScheduledTask, Scheduler, ThreadScheduler
from .settings import WorkflowSettings

logger = logging.getLogger(__name__)


class JobController:
    """Single-job erase controller."""

    def __init__(
        self,
        backend: Optional[EraseBackend] = None,
        scheduler: Optional[Scheduler] = None,
        issuer: Optional[CertificateIssuer] = None,
        sink: Optional[NotificationSink] = None,
        settings: Optional[WorkflowSettings] = None,
        area_catalog: Sequence[str] = progress_model.AREA_CATALOG,
        state_manager=None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or WorkflowSettings()
        self.backend = backend or SyntheticBackend(
            self.settings.min_increment, self.settings.max_increment, self.settings.seed
        )
        self.scheduler = scheduler or ThreadScheduler()
        self.issuer = issuer or CertificateIssuer(clock=clock)
        self.sink = sink or LoggingSink()
        self.area_catalog = tuple(area_catalog)
        self.state_manager = state_manager
        self._clock = clock

        self._lock = threading.RLock()
        self._state = JobState.IDLE
        self._pending_configuration: Optional[EraseConfiguration] = None
        self._pending_device: Optional[DeviceDescriptor] = None
        self._job: Optional[EraseJob] = None
        self._certificate: Optional[CertificateRecord] = None
        self._tasks: List[ScheduledTask] = []
        self._run_token = 0

    # ------------------------------------------------------------------ queries

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def job(self) -> Optional[EraseJob]:
        """Deep copy of the current job, or None."""
        return self.snapshot()

    @property
    def certificate(self) -> Optional[CertificateRecord]:
        return self._certificate

    @property
    def pending_configuration(self) -> Optional[EraseConfiguration]:
        return self._pending_configuration

    def snapshot(self) -> Optional[EraseJob]:
        with self._lock:
            return self._job.model_copy(deep=True) if self._job else None

    def estimated_remaining_seconds(self) -> Optional[int]:
        with self._lock:
            if not self._job:
                return None
            return progress_model.estimate_remaining_seconds(self._job.progress, self._job.elapsed_seconds)

    # ----------------------------------------------------------------- commands

    def request_start(self, configuration: Union[EraseConfiguration, Mapping[str, Any]],
                      device: DeviceDescriptor) -> CommandResult:
        """Bind a configuration and device and wait for confirmation."""
        with self._lock:
            if self._state != JobState.IDLE:
                return self._reject(ErrorCode.JOB_ALREADY_ACTIVE,
                                    f"A job is already {self._state.value}; acknowledge or finish it first")

            result = validate(configuration)
            if not result.ok:
                return self._reject(result.error.code, result.error.message)

            # Frozen model: later edits by the caller cannot reach the job
            self._pending_configuration = result.configuration
            self._pending_device = device
            self._state = JobState.CONFIRMING
            logger.info("Start requested for %s (%s, %d passes)",
                        device.path, result.configuration.method.value, result.configuration.passes)
            return self._accept()

    def confirm(self, typed_text: str = "", checkbox_checked: bool = False) -> CommandResult:
        """Pass the confirmation gate and start erasing."""
        with self._lock:
            if self._state != JobState.CONFIRMING:
                return self._invalid("confirm")

            if not confirmation_gate(typed_text, checkbox_checked):
                self._emit(EventKind.CONFIRMATION_REQUIRED,
                           "Please type DELETE or check the confirmation box.")
                return self._reject(ErrorCode.CONFIRMATION_REQUIRED,
                                    "Type DELETE or check the confirmation box to continue")

            configuration = self._pending_configuration
            device = self._pending_device
            snapshot = progress_model.derive(0, configuration.passes, device.total_sectors, self.area_catalog)
            self._job = EraseJob(
                id=uuid.uuid4().hex,
                configuration=configuration,
                device=device,
                state=JobState.RUNNING,
                status_message=snapshot.status_message,
                created_at=self._clock(),
            )
            self._certificate = None
            self._pending_configuration = None
            self._pending_device = None
            self._enter_running()
            self._emit(EventKind.JOB_STARTED,
                       f"Starting {configuration.method.value} erase of {device.name or device.path}")
            return self._accept()

    def cancel(self) -> CommandResult:
        """Abandon a pending start request."""
        with self._lock:
            if self._state != JobState.CONFIRMING:
                return self._invalid("cancel")
            self._pending_configuration = None
            self._pending_device = None
            self._state = JobState.IDLE
            logger.info("Start request cancelled")
            return self._accept()

    def pause(self) -> CommandResult:
        with self._lock:
            if self._state != JobState.RUNNING:
                return self._invalid("pause")
            self._leave_running(JobState.PAUSED)
            self._job.status_message = progress_model.PAUSED_MESSAGE
            self._emit(EventKind.JOB_PAUSED, "You can resume or stop the wipe process.")
            return self._accept()

    def resume(self) -> CommandResult:
        with self._lock:
            if self._state != JobState.PAUSED:
                return self._invalid("resume")
            self._job.status_message = progress_model.status_message(self._job.progress, self._job.current_pass)
            self._enter_running()
            self._emit(EventKind.JOB_RESUMED, "Continuing secure wipe...")
            return self._accept()

    def stop(self, acknowledged: bool = False) -> CommandResult:
        """Terminate the job. Requires acknowledging the partial-erasure risk."""
        with self._lock:
            if self._state not in (JobState.RUNNING, JobState.PAUSED):
                return self._invalid("stop")
            if not confirm_stop(acknowledged):
                return self._reject(ErrorCode.STOP_CONFIRMATION_REQUIRED,
                                    "Stopping leaves the drive partially erased; confirm to stop")
            self._leave_running(JobState.STOPPED)
            self._job.stopped_at = self._clock()
            self._job.status_message = progress_model.STOPPED_MESSAGE
            self._emit(EventKind.JOB_STOPPED,
                       "Wipe has been terminated. Some data may still be recoverable.")
            return self._accept()

    def acknowledge(self) -> CommandResult:
        """Dismiss a finished job and return to idle."""
        with self._lock:
            if not self._state.is_terminal:
                return self._invalid("acknowledge")
            job = self._job
            result = self._accept()
            if self.state_manager is not None:
                try:
                    self.state_manager.archive_job(job, self._certificate)
                except OSError as e:
                    logger.error("Could not archive job %s: %s", job.id, e)
            self._job = None
            self._certificate = None
            self._state = JobState.IDLE
            result.state = JobState.IDLE
            return result

    def attempt_recovery(self) -> CommandResult:
        """Report how much of the device is still recoverable while paused.

        Only the part not yet overwritten can be recovered; the controller never
        claims the already-wiped fraction.
        """
        with self._lock:
            if self._state != JobState.PAUSED:
                return self._reject(ErrorCode.RECOVERY_UNAVAILABLE,
                                    "Recovery can only be attempted while the job is paused")
            if self._job.progress >= 100:
                return self._reject(ErrorCode.RECOVERY_UNAVAILABLE,
                                    "Every sector has been overwritten; nothing is recoverable")
            result = self._accept()
            result.recoverable_percent = round(100 - self._job.progress, 4)
            logger.info("Recovery attempt on job %s: %.2f%% not yet overwritten",
                        self._job.id, result.recoverable_percent)
            return result

    def shutdown(self) -> None:
        """Cancel any periodic tasks and release the backend."""
        with self._lock:
            self._cancel_tasks()
            self.backend.close()

    # -------------------------------------------------------------- ticking

    def _enter_running(self) -> None:
        self._state = JobState.RUNNING
        self._job.state = JobState.RUNNING
        self._run_token += 1
        token = self._run_token
        self._tasks = [
            self.scheduler.every(self.settings.tick_interval, partial(self._progress_tick, token), "progress"),
            self.scheduler.every(self.settings.clock_interval, partial(self._clock_tick, token), "clock"),
        ]

    def _leave_running(self, new_state: JobState) -> None:
        self._cancel_tasks()
        self._state = new_state
        self._job.state = new_state

    def _cancel_tasks(self) -> None:
        # Invalidate callbacks already in flight before cancelling the tasks
        self._run_token += 1
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    def _is_current(self, token: int) -> bool:
        return token == self._run_token and self._state == JobState.RUNNING

    def _clock_tick(self, token: int) -> None:
        with self._lock:
            if not self._is_current(token):
                return
            self._job.elapsed_seconds += 1

    def _progress_tick(self, token: int) -> None:
        with self._lock:
            if not self._is_current(token):
                logger.debug("Discarding stale progress tick")
                return
            working_copy = self._job.model_copy(deep=True)

        # Backend I/O runs without the lock held
        try:
            delta = self.backend.advance(working_copy)
        except BackendError as e:
            with self._lock:
                if self._is_current(token):
                    self._fail(str(e))
            return

        with self._lock:
            if not self._is_current(token):
                logger.debug("Discarding progress reported after the run was interrupted")
                return
            job = self._job
            self._apply_delta(job, delta.bytes_processed, delta.regions_completed)
            if job.progress >= 100:
                self._complete()
            else:
                self._emit(EventKind.JOB_PROGRESS, job.status_message)

    def _apply_delta(self, job: EraseJob, bytes_processed: int, regions: Optional[List[str]]) -> None:
        total = job.total_bytes
        job.bytes_processed = min(total, job.bytes_processed + max(0, bytes_processed))
        new_progress = 100.0 if job.bytes_processed >= total else job.bytes_processed / total * 100
        job.progress = max(job.progress, new_progress)

        snapshot = progress_model.derive(job.progress, job.total_passes,
                                         job.device.total_sectors, self.area_catalog)
        job.current_pass = max(job.current_pass, snapshot.current_pass)
        job.sectors_completed = max(job.sectors_completed, snapshot.sectors_completed)

        if regions is None:
            regions = progress_model.areas_through(job.progress, self.area_catalog)
        for region in regions:
            if region not in job.completed_areas:
                job.completed_areas.append(region)

        job.status_message = progress_model.status_message(job.progress, job.current_pass)

    def _complete(self) -> None:
        job = self._job
        self._leave_running(JobState.COMPLETED)
        job.completed_at = self._clock()
        job.status_message = progress_model.COMPLETED_MESSAGE
        try:
            self._certificate = self.issuer.issue(job)
        except IssuerError as e:
            logger.error("Certificate issuance failed for job %s: %s", job.id, e)
            self._emit(EventKind.JOB_COMPLETED, job.status_message)
            return
        job.certificate_id = self._certificate.id
        self._emit(EventKind.JOB_COMPLETED, "All data has been securely wiped from the drive.",
                   certificate=self._certificate)

    def _fail(self, message: str) -> None:
        logger.error("Backend failure on job %s at %.2f%%: %s", self._job.id, self._job.progress, message)
        self._leave_running(JobState.FAILED)
        self._job.error_message = message
        self._job.status_message = f"Wipe failed: {message}"
        self._emit(EventKind.JOB_FAILED, message)

    # -------------------------------------------------------------- helpers

    def _emit(self, kind: EventKind, message: str, certificate: Optional[CertificateRecord] = None) -> None:
        event = JobEvent(
            kind=kind,
            state=self._state,
            job_id=self._job.id if self._job else None,
            message=message,
            progress=self._job.progress if self._job else None,
            certificate=certificate,
            timestamp=self._clock(),
        )
        try:
            self.sink.notify(event)
        except Exception:
            logger.exception("Notification sink failed on %s", kind.value)

    def _accept(self) -> CommandResult:
        return CommandResult(accepted=True, state=self._state, job=self.snapshot())

    def _reject(self, code: ErrorCode, reason: str) -> CommandResult:
        logger.warning("Rejected (%s): %s", code.value, reason)
        return CommandResult(accepted=False, state=self._state, error=code, reason=reason, job=self.snapshot())

    def _invalid(self, command: str) -> CommandResult:
        return self._reject(ErrorCode.INVALID_TRANSITION, f"Cannot {command} while {self._state.value}")
