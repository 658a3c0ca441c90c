import pytest

from erasejob.backends import EraseBackend
from erasejob.controller import JobController
from erasejob.errors import BackendError
from erasejob.models import DeviceDescriptor, EraseConfiguration, EraseMethod, ProgressDelta, StorageType
from erasejob.notifications import RecordingSink
from erasejob.scheduler import ManualScheduler
from erasejob.settings import WorkflowSettings


class StepBackend(EraseBackend):
    """Advances a job by fixed percentages, one per tick (repeating the last)."""

    name = "step"

    def __init__(self, *percent_steps, regions=None, fail_at=None):
        self.steps = list(percent_steps) or [10.0]
        self.regions = regions
        self.fail_at = fail_at
        self.calls = 0

    def advance(self, job):
        self.calls += 1
        if self.fail_at is not None and self.calls >= self.fail_at:
            raise BackendError("simulated write error on sector 4096")
        pct = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        regions = self.regions.pop(0) if self.regions else None
        return ProgressDelta(bytes_processed=int(job.total_bytes * pct / 100), regions_completed=regions)


@pytest.fixture
def device():
    # 10,000 sectors keeps percentage arithmetic exact
    return DeviceDescriptor(
        name="Primary Drive",
        path="/dev/sda",
        model="Samsung SSD 980 PRO",
        serial="S6XNMU0R123456",
        capacity_bytes=10000 * 512,
        media_type=StorageType.SSD,
    )


@pytest.fixture
def secure_config():
    return EraseConfiguration(method=EraseMethod.SECURE, passes=3)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def settings():
    return WorkflowSettings(tick_interval=0.8, clock_interval=1.0)


@pytest.fixture
def make_controller(scheduler, sink, settings):
    def _make(backend=None, **kwargs):
        return JobController(
            backend=backend or StepBackend(10.0),
            scheduler=scheduler,
            sink=sink,
            settings=settings,
            **kwargs
        )
    return _make


@pytest.fixture
def running(make_controller, secure_config, device):
    """Controller with a confirmed, running job."""
    def _start(backend=None, configuration=None, **kwargs):
        controller = make_controller(backend, **kwargs)
        controller.request_start(configuration or secure_config, device)
        result = controller.confirm(typed_text="DELETE")
        assert result.accepted
        return controller
    return _start
