"""Progress model - pure derivations from a job's progress percentage."""

import math
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

AREA_CATALOG: Tuple[str, ...] = (
    "Boot Sector",
    "Primary Partition",
    "System Files",
    "User Data",
    "Application Data",
    "Temporary Files",
    "Deleted Files Area",
    "Slack Space",
    "Bad Sectors",
    "Reserved Areas",
)

# (lower bound inclusive, phase key, message template); each band runs to the next lower bound
PHASE_BANDS: Tuple[Tuple[float, str, str], ...] = (
    (0.0, "scanning", "Scanning drive structure and partitions..."),
    (10.0, "boot_sector", "Overwriting boot sector and partition tables (Pass {current_pass})"),
    (20.0, "data_overwrite", "Overwriting data sectors with random patterns (Pass {current_pass})"),
    (80.0, "verification", "Verifying erasure and checking for residual data..."),
    (95.0, "finalization", "Finalizing secure wipe and clearing caches..."),
)

COMPLETED_MESSAGE = "Wipe completed successfully"
PAUSED_MESSAGE = "Wipe process paused - data partially erased"
STOPPED_MESSAGE = "Wipe process stopped - drive partially erased"


class ProgressSnapshot(BaseModel):
    """Everything the presentation layer shows for one progress value."""
    model_config = ConfigDict(frozen=True)

    progress: float
    current_pass: int
    total_passes: int
    sectors_completed: int
    total_sectors: int
    area_index: int
    phase: str
    status_message: str


def clamp_progress(progress: float) -> float:
    return min(100.0, max(0.0, float(progress)))


def current_pass(progress: float, total_passes: int) -> int:
    """Pass being written at this progress, always within [1, total_passes]."""
    if total_passes < 1:
        raise ValueError("total_passes must be at least 1")
    calculated = math.floor(clamp_progress(progress) / 100 * total_passes) + 1
    return max(1, min(calculated, total_passes))


def sectors_completed(progress: float, total_sectors: int) -> int:
    return math.floor(clamp_progress(progress) / 100 * total_sectors)


def area_index(progress: float, area_count: int = len(AREA_CATALOG)) -> int:
    """Index of the area reached at this progress."""
    if area_count < 1:
        raise ValueError("area catalog is empty")
    return min(math.floor(clamp_progress(progress) / 100 * area_count), area_count - 1)


def areas_through(progress: float, catalog: Sequence[str] = AREA_CATALOG) -> List[str]:
    """Areas whose start threshold (i/N * 100) has been crossed, in catalog order."""
    return list(catalog[:area_index(progress, len(catalog)) + 1])


def phase_for(progress: float) -> Tuple[str, str]:
    """Return (phase key, message template) for the band containing progress."""
    value = clamp_progress(progress)
    selected = PHASE_BANDS[0]
    for band in PHASE_BANDS:
        if value >= band[0]:
            selected = band
    return selected[1], selected[2]


def status_message(progress: float, pass_number: int = 1) -> str:
    _, template = phase_for(progress)
    return template.format(current_pass=pass_number)


def derive(progress: float, total_passes: int, total_sectors: int,
           catalog: Sequence[str] = AREA_CATALOG) -> ProgressSnapshot:
    """Derive pass, sectors, area and status text from a progress value."""
    value = clamp_progress(progress)
    pass_number = current_pass(value, total_passes)
    phase, template = phase_for(value)
    return ProgressSnapshot(
        progress=value,
        current_pass=pass_number,
        total_passes=total_passes,
        sectors_completed=sectors_completed(value, total_sectors),
        total_sectors=total_sectors,
        area_index=area_index(value, len(catalog)),
        phase=phase,
        status_message=template.format(current_pass=pass_number),
    )


def estimate_remaining_seconds(progress: float, elapsed_seconds: int) -> Optional[int]:
    """Linear estimate of the time left; None until there is something to extrapolate."""
    value = clamp_progress(progress)
    if value >= 100:
        return 0
    if value <= 0 or elapsed_seconds <= 0:
        return None
    return round(elapsed_seconds * (100 - value) / value)


def format_elapsed(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
