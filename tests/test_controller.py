import threading

import pytest

from erasejob.backends import SyntheticBackend
from erasejob.controller import JobController
from erasejob.errors import ErrorCode
from erasejob.models import EraseConfiguration, EraseMethod, EraseScope, EventKind, JobState
from erasejob.notifications import CallbackSink
from erasejob.progress import AREA_CATALOG, COMPLETED_MESSAGE, PAUSED_MESSAGE
from erasejob.scheduler import ManualScheduler
from erasejob.state import StateManager

from conftest import StepBackend


def test_starts_idle(make_controller):
    controller = make_controller()
    assert controller.state == JobState.IDLE
    assert controller.job is None
    assert controller.certificate is None


def test_secure_three_pass_runs_to_completion(make_controller, device, scheduler, sink):
    controller = make_controller(StepBackend(10.0))
    config = EraseConfiguration(method=EraseMethod.SECURE, passes=3, scope=EraseScope.WHOLE)

    assert controller.request_start(config, device).state == JobState.CONFIRMING
    result = controller.confirm(typed_text="DELETE")
    assert result.accepted
    assert controller.state == JobState.RUNNING
    job = controller.job
    assert job.progress == 0
    assert job.current_pass == 1
    assert job.completed_areas == []
    assert len(scheduler.active()) == 2

    scheduler.fire("progress", times=10)

    assert controller.state == JobState.COMPLETED
    job = controller.job
    assert job.progress == 100
    assert job.current_pass == 3
    assert job.completed_areas == list(AREA_CATALOG)
    assert job.sectors_completed == device.total_sectors
    assert job.status_message == COMPLETED_MESSAGE
    assert job.completed_at is not None

    certificate = controller.certificate
    assert certificate is not None
    assert certificate.passes == 3
    assert certificate.method == EraseMethod.SECURE
    assert certificate.device_snapshot == device
    assert job.certificate_id == certificate.id

    # Completion cancels both periodic tasks
    assert scheduler.active() == []
    assert sink.kinds() == [EventKind.JOB_STARTED, EventKind.JOB_COMPLETED]
    assert sink.of_kind(EventKind.JOB_COMPLETED)[0].certificate == certificate


def test_pause_then_stop_never_issues_certificate(running, scheduler, sink):
    controller = running(StepBackend(37.0, 10.0))
    scheduler.fire("progress")
    assert controller.job.progress == pytest.approx(37.0)

    assert controller.pause().accepted
    assert controller.state == JobState.PAUSED

    rejected = controller.stop()
    assert not rejected.accepted
    assert rejected.error == ErrorCode.STOP_CONFIRMATION_REQUIRED
    assert controller.state == JobState.PAUSED

    assert controller.stop(acknowledged=True).accepted
    assert controller.state == JobState.STOPPED
    job = controller.job
    assert job.progress == pytest.approx(37.0)
    assert job.stopped_at is not None
    assert controller.certificate is None
    assert controller.issuer.get(job.id) is None
    assert EventKind.JOB_COMPLETED not in sink.kinds()
    assert sink.kinds()[-1] == EventKind.JOB_STOPPED

    assert controller.acknowledge().state == JobState.IDLE
    assert controller.certificate is None


def test_stop_from_running_requires_confirmation(running, scheduler):
    controller = running(StepBackend(5.0))
    scheduler.fire("progress")
    result = controller.stop(acknowledged=False)
    assert result.error == ErrorCode.STOP_CONFIRMATION_REQUIRED
    assert controller.state == JobState.RUNNING
    assert len(scheduler.active()) == 2

    assert controller.stop(acknowledged=True).accepted
    assert controller.state == JobState.STOPPED
    assert scheduler.active() == []


def test_second_start_while_running_is_rejected(running, scheduler, device):
    controller = running(StepBackend(12.0))
    scheduler.fire("progress")
    scheduler.fire("clock", times=3)
    before = controller.job

    result = controller.request_start(EraseConfiguration(method=EraseMethod.QUICK, passes=1), device)

    assert not result.accepted
    assert result.error == ErrorCode.JOB_ALREADY_ACTIVE
    assert controller.state == JobState.RUNNING
    assert controller.job == before


@pytest.mark.parametrize("pause_first", [False, True])
def test_start_rejected_while_confirming_or_paused(make_controller, running, secure_config, device, pause_first):
    if pause_first:
        controller = running()
        controller.pause()
    else:
        controller = make_controller()
        controller.request_start(secure_config, device)
    result = controller.request_start(secure_config, device)
    assert result.error == ErrorCode.JOB_ALREADY_ACTIVE


def test_failed_confirmation_keeps_confirming(make_controller, secure_config, device, scheduler, sink):
    controller = make_controller()
    controller.request_start(secure_config, device)

    result = controller.confirm(typed_text="nope", checkbox_checked=False)

    assert not result.accepted
    assert result.error == ErrorCode.CONFIRMATION_REQUIRED
    assert controller.state == JobState.CONFIRMING
    assert controller.job is None
    assert scheduler.active() == []
    assert sink.kinds() == [EventKind.CONFIRMATION_REQUIRED]

    assert controller.confirm(checkbox_checked=True).accepted
    assert controller.state == JobState.RUNNING


def test_cancel_returns_to_idle(make_controller, secure_config, device):
    controller = make_controller()
    controller.request_start(secure_config, device)
    assert controller.cancel().state == JobState.IDLE
    assert controller.pending_configuration is None
    assert controller.request_start(secure_config, device).accepted


def test_invalid_configuration_is_rejected(make_controller, device):
    controller = make_controller()
    result = controller.request_start({"method": "secure", "passes": 36}, device)
    assert not result.accepted
    assert result.error == ErrorCode.INVALID_PASS_COUNT
    assert controller.state == JobState.IDLE

    result = controller.request_start({"scope": "galaxy"}, device)
    assert result.error == ErrorCode.INVALID_ENUM


def test_configuration_is_copied_on_start(make_controller, device, scheduler):
    controller = make_controller()
    raw = {"method": "secure", "passes": 3}
    controller.request_start(raw, device)
    raw["passes"] = 35
    controller.confirm("DELETE")
    assert controller.job.configuration.passes == 3


@pytest.mark.parametrize("command", ["pause", "resume", "cancel", "acknowledge", "attempt_recovery"])
def test_commands_rejected_when_idle(make_controller, command):
    controller = make_controller()
    result = getattr(controller, command)()
    assert not result.accepted
    assert result.error in (ErrorCode.INVALID_TRANSITION, ErrorCode.RECOVERY_UNAVAILABLE)
    assert controller.state == JobState.IDLE


def test_invalid_transitions_while_running(running):
    controller = running()
    for result in (controller.resume(), controller.cancel(), controller.acknowledge(), controller.confirm("DELETE")):
        assert not result.accepted
        assert result.error == ErrorCode.INVALID_TRANSITION
        assert controller.state == JobState.RUNNING


def test_pause_resume_freezes_progress(running, scheduler, sink):
    controller = running(StepBackend(7.0))
    scheduler.fire("progress", times=5)
    scheduler.fire("clock", times=4)
    before = controller.job

    for _ in range(3):
        assert controller.pause().accepted
        paused = controller.job
        assert paused.status_message == PAUSED_MESSAGE
        assert scheduler.fire("progress") == 0
        assert scheduler.fire("clock", times=10) == 0
        assert controller.resume().accepted

    after = controller.job
    assert after.progress == before.progress
    assert after.current_pass == before.current_pass
    assert after.completed_areas == before.completed_areas
    assert after.elapsed_seconds == 4
    assert sink.kinds().count(EventKind.JOB_PAUSED) == 3
    assert sink.kinds().count(EventKind.JOB_RESUMED) == 3


def test_elapsed_counts_only_running_time(running, scheduler):
    controller = running()
    scheduler.fire("clock", times=3)
    stale_clock = scheduler.active("clock")[0]
    controller.pause()

    stale_clock.callback()
    assert controller.job.elapsed_seconds == 3

    controller.resume()
    scheduler.fire("clock", times=2)
    assert controller.job.elapsed_seconds == 5


def test_stale_tick_after_stop_is_discarded(running, scheduler):
    controller = running(StepBackend(20.0))
    scheduler.fire("progress")
    stale_progress = scheduler.active("progress")[0]
    controller.stop(acknowledged=True)

    stale_progress.callback()

    assert controller.state == JobState.STOPPED
    assert controller.job.progress == pytest.approx(20.0)


def test_stale_tick_from_previous_running_interval_is_discarded(running, scheduler):
    controller = running(StepBackend(20.0))
    stale_progress = scheduler.active("progress")[0]
    controller.pause()
    controller.resume()

    stale_progress.callback()
    assert controller.job.progress == 0

    scheduler.fire("progress")
    assert controller.job.progress == pytest.approx(20.0)


class PausingBackend(StepBackend):
    """Pauses the controller from another thread while a write is in flight."""

    def __init__(self):
        super().__init__(20.0)
        self.controller = None
        self.pause_finished = False

    def advance(self, job):
        worker = threading.Thread(target=self.controller.pause)
        worker.start()
        worker.join(timeout=2.0)
        self.pause_finished = not worker.is_alive()
        return super().advance(job)


def test_pause_is_not_blocked_by_backend_write(running, scheduler):
    backend = PausingBackend()
    controller = running(backend)
    backend.controller = controller

    scheduler.fire("progress")

    assert backend.pause_finished
    assert controller.state == JobState.PAUSED
    # Work reported after the pause belongs to the interrupted run
    assert controller.job.progress == 0


def test_progress_properties_hold_for_random_increments(running, scheduler, device):
    config = EraseConfiguration(method=EraseMethod.MILITARY, passes=7)
    controller = running(SyntheticBackend(0.5, 10.0, seed=1234), configuration=config)

    last_progress, last_pass, last_areas = 0.0, 1, []
    while controller.state == JobState.RUNNING:
        scheduler.fire("progress")
        job = controller.job
        assert job.progress >= last_progress
        assert 1 <= job.current_pass <= 7
        assert job.current_pass >= last_pass
        assert job.completed_areas[:len(last_areas)] == last_areas
        assert len(set(job.completed_areas)) == len(job.completed_areas)
        assert 0 <= job.progress <= 100
        last_progress, last_pass, last_areas = job.progress, job.current_pass, job.completed_areas

    assert controller.state == JobState.COMPLETED
    assert controller.certificate.passes == 7


def test_backend_regions_are_appended_verbatim(running, scheduler):
    backend = StepBackend(40.0, 40.0, 20.0, regions=[["LBA 0-4095"], ["LBA 0-4095", "LBA 4096-8191"], ["Spare area"]])
    controller = running(backend)
    scheduler.fire("progress", times=3)
    assert controller.state == JobState.COMPLETED
    assert controller.job.completed_areas == ["LBA 0-4095", "LBA 4096-8191", "Spare area"]


def test_backend_error_moves_job_to_failed(running, scheduler, sink):
    controller = running(StepBackend(10.0, fail_at=3))
    scheduler.fire("progress", times=5)

    assert controller.state == JobState.FAILED
    job = controller.job
    assert job.progress == pytest.approx(20.0)
    assert "sector 4096" in job.error_message
    assert controller.certificate is None
    assert scheduler.active() == []
    assert sink.kinds()[-1] == EventKind.JOB_FAILED

    assert controller.pause().error == ErrorCode.INVALID_TRANSITION
    assert controller.acknowledge().state == JobState.IDLE


def test_recovery_only_while_paused(running, scheduler):
    controller = running(StepBackend(37.0))
    scheduler.fire("progress")

    result = controller.attempt_recovery()
    assert result.error == ErrorCode.RECOVERY_UNAVAILABLE

    controller.pause()
    result = controller.attempt_recovery()
    assert result.accepted
    assert result.recoverable_percent == pytest.approx(63.0)
    assert controller.job.progress == pytest.approx(37.0)
    assert controller.state == JobState.PAUSED


def test_snapshots_do_not_leak_job_state(running, scheduler):
    controller = running()
    scheduler.fire("progress")
    snapshot = controller.job
    snapshot.completed_areas.append("Injected")
    snapshot.progress = 99
    assert "Injected" not in controller.job.completed_areas
    assert controller.job.progress == pytest.approx(10.0)


def test_estimated_remaining_seconds(running, scheduler):
    controller = running(StepBackend(10.0))
    assert controller.estimated_remaining_seconds() is None
    scheduler.fire("progress")
    scheduler.fire("clock", times=2)
    assert controller.estimated_remaining_seconds() == 18


def test_failing_sink_does_not_break_transitions(secure_config, device):
    def explode(event):
        raise RuntimeError("display went away")

    scheduler = ManualScheduler()
    controller = JobController(backend=StepBackend(50.0), scheduler=scheduler, sink=CallbackSink(explode))
    controller.request_start(secure_config, device)
    assert controller.confirm("DELETE").accepted
    scheduler.fire("progress", times=2)
    assert controller.state == JobState.COMPLETED
    assert controller.certificate is not None


def test_acknowledge_archives_job(running, scheduler, tmp_path):
    state_manager = StateManager(str(tmp_path / "state.json"), str(tmp_path))
    controller = running(StepBackend(50.0), state_manager=state_manager)
    scheduler.fire("progress", times=2)
    certificate_id = controller.certificate.id

    controller.acknowledge()

    history = state_manager.get_history()
    assert len(history) == 1
    assert history[0]["state"] == "completed"
    assert history[0]["certificate_id"] == certificate_id
    assert history[0]["passes"] == 3


def test_new_job_after_acknowledge(running, scheduler, device, secure_config):
    controller = running(StepBackend(100.0))
    scheduler.fire("progress")
    first = controller.certificate
    controller.acknowledge()

    controller.request_start(secure_config, device)
    controller.confirm(checkbox_checked=True)
    assert controller.job.progress == 0
    assert controller.certificate is None
    scheduler.fire("progress")
    assert controller.certificate.id != first.id
