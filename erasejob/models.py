"""Data models for erase devices, configurations, jobs and certificates."""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorCode

MIN_PASSES = 1
MAX_PASSES = 35
SECTOR_SIZE = 512


class StorageType(str, Enum):
    HDD = "hdd"
    SSD = "ssd"
    NVME = "nvme"
    EMMC = "emmc"


class EraseMethod(str, Enum):
    QUICK = "quick"
    SECURE = "secure"
    MILITARY = "military"


class EraseScope(str, Enum):
    PARTITION = "partition"
    WHOLE = "whole"
    FREE_SPACE = "free-space"


class JobState(str, Enum):
    """Lifecycle states of the job controller."""
    IDLE = "idle"
    CONFIRMING = "confirming"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.STOPPED, JobState.COMPLETED, JobState.FAILED)


class EventKind(str, Enum):
    JOB_STARTED = "job_started"
    JOB_PAUSED = "job_paused"
    JOB_RESUMED = "job_resumed"
    JOB_STOPPED = "job_stopped"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_PROGRESS = "job_progress"
    CONFIRMATION_REQUIRED = "confirmation_required"


def format_bytes(bytes_value: float) -> str:
    """Format bytes into human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_value < 1024.0:
            return f"{bytes_value:.1f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.1f} PB"


class DeviceDescriptor(BaseModel):
    """Storage device targeted by an erase job."""
    model_config = ConfigDict(frozen=True)

    path: str
    model: str = "Unknown"
    serial: str = "Unknown"
    capacity_bytes: int = Field(gt=0)
    media_type: StorageType = StorageType.SSD
    name: Optional[str] = None
    firmware: Optional[str] = None

    @property
    def capacity_display(self) -> str:
        return format_bytes(self.capacity_bytes)

    @property
    def total_sectors(self) -> int:
        return self.capacity_bytes // SECTOR_SIZE


class EraseConfiguration(BaseModel):
    """Validated erase policy. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    storage_type: StorageType = StorageType.SSD
    method: EraseMethod = EraseMethod.SECURE
    scope: EraseScope = EraseScope.WHOLE
    passes: int = Field(default=3, ge=MIN_PASSES, le=MAX_PASSES, strict=True)
    verify: bool = True
    secure_delete: bool = True


class ProgressDelta(BaseModel):
    """Work reported by a backend for a single tick."""
    bytes_processed: int = Field(default=0, ge=0)
    # None means the backend has no region ledger; areas are derived instead
    regions_completed: Optional[List[str]] = None


class EraseJob(BaseModel):
    """A single erase run. Mutated only by the job controller."""
    id: str
    configuration: EraseConfiguration
    device: DeviceDescriptor
    state: JobState = JobState.RUNNING
    progress: float = 0.0
    current_pass: int = 1
    completed_areas: List[str] = Field(default_factory=list)
    sectors_completed: int = 0
    bytes_processed: int = 0
    status_message: str = ""
    elapsed_seconds: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    error_message: Optional[str] = None
    certificate_id: Optional[str] = None

    @property
    def total_passes(self) -> int:
        return self.configuration.passes

    @property
    def total_bytes(self) -> int:
        """Bytes to write across every pass."""
        return self.device.capacity_bytes * self.configuration.passes


class CertificateRecord(BaseModel):
    """Immutable attestation that an erase job completed."""
    model_config = ConfigDict(frozen=True)

    id: str
    job_id: str
    device_snapshot: DeviceDescriptor
    method: EraseMethod
    passes: int
    storage_type: StorageType
    scope: EraseScope
    verified: bool
    secure_delete: bool
    started_at: datetime
    completed_at: datetime
    elapsed_seconds: int
    issued_at: datetime = Field(default_factory=datetime.now)


class JobEvent(BaseModel):
    """Lifecycle notification for presentation layers."""
    kind: EventKind
    state: JobState
    job_id: Optional[str] = None
    message: str = ""
    progress: Optional[float] = None
    certificate: Optional[CertificateRecord] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class CommandResult(BaseModel):
    """Outcome of a controller command."""
    accepted: bool
    state: JobState
    error: Optional[ErrorCode] = None
    reason: Optional[str] = None
    job: Optional[EraseJob] = None
    recoverable_percent: Optional[float] = None
