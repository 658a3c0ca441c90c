"""Erase backends - the work performed for each progress tick."""

import hashlib
import logging
import math
import os
import random
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import BackendError
from .models import DeviceDescriptor, EraseJob, ProgressDelta, StorageType

logger = logging.getLogger(__name__)

# Pattern per pass, cycled: None means random data
PASS_PATTERNS: Tuple[Tuple[str, Optional[bytes]], ...] = (
    ("random", None),
    ("0x00", b"\x00"),
    ("0xFF", b"\xff"),
)


class EraseBackend(ABC):
    """Performs erase work for a job and reports how much was done."""

    name = "backend"

    @abstractmethod
    def advance(self, job: EraseJob) -> ProgressDelta:
        """Do one tick of work. Raise BackendError on I/O failure."""

    def close(self) -> None:
        """Release any resources held by the backend."""


class SyntheticBackend(EraseBackend):
    """Generates bounded random progress without touching any device."""

    name = "synthetic"

    def __init__(self, min_increment: float = 0.5, max_increment: float = 2.5, seed: Optional[int] = None):
        if min_increment <= 0 or max_increment < min_increment:
            raise ValueError(f"invalid increment range {min_increment}..{max_increment}")
        self.min_increment = min_increment
        self.max_increment = max_increment
        self._rng = random.Random(seed)

    def advance(self, job: EraseJob) -> ProgressDelta:
        increment = self._rng.uniform(self.min_increment, self.max_increment)
        return ProgressDelta(bytes_processed=max(1, math.ceil(job.total_bytes * increment / 100)))


class ImageFileBackend(EraseBackend):
    """Overwrites a disk image file in place, one chunk per tick."""

    name = "image"

    def __init__(self, path: Union[str, Path], chunk_size: int = 256 * 1024):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.path = Path(path)
        self.chunk_size = chunk_size

    def image_size(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError as e:
            raise BackendError(f"Cannot stat image {self.path}: {e}")

    def describe(self, model: str = "Disk image") -> DeviceDescriptor:
        """Build a device descriptor for the image file."""
        digest = hashlib.sha256(str(self.path.resolve()).encode()).hexdigest()[:12].upper()
        return DeviceDescriptor(
            path=str(self.path),
            model=model,
            serial=f"IMG-{digest}",
            capacity_bytes=self.image_size(),
            media_type=StorageType.HDD,
            name=self.path.name,
        )

    def advance(self, job: EraseJob) -> ProgressDelta:
        size = self.image_size()
        if size != job.device.capacity_bytes:
            raise BackendError(
                f"Image {self.path} is {size} bytes but job expects {job.device.capacity_bytes}"
            )

        total = job.total_bytes
        # Position comes from the job so one backend can serve successive jobs
        written = job.bytes_processed
        if written >= total:
            return ProgressDelta(bytes_processed=0, regions_completed=[])

        pass_index = written // size
        position = written % size
        length = min(self.chunk_size, size - position)
        label, pattern = PASS_PATTERNS[pass_index % len(PASS_PATTERNS)]
        data = os.urandom(length) if pattern is None else pattern * length

        try:
            with open(self.path, "r+b") as f:
                f.seek(position)
                f.write(data)
                f.flush()
        except OSError as e:
            raise BackendError(f"Write failed at offset {position} of {self.path}: {e}")

        written += length
        regions: List[str] = []
        if written % size == 0:
            regions.append(f"Pass {pass_index + 1} ({label})")
            logger.debug("Image %s pass %d complete", self.path, pass_index + 1)
        return ProgressDelta(bytes_processed=length, regions_completed=regions)


def create_backend(settings, device: Optional[DeviceDescriptor] = None) -> EraseBackend:
    """Select a backend from workflow settings."""
    if settings.backend == "synthetic":
        return SyntheticBackend(settings.min_increment, settings.max_increment, settings.seed)
    if settings.backend == "image":
        path = settings.image_path or (device.path if device else None)
        if not path:
            raise ValueError("ERASEJOB_IMAGE_PATH is required for the image backend")
        return ImageFileBackend(path)
    raise ValueError(f"Unknown erase backend: {settings.backend}")
