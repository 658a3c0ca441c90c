"""State management for erase workflow runs."""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional

from .models import CertificateRecord, EraseJob

PHASES = ("configure", "confirm", "erase", "certificate")


class StateManager:
    """Manages the state JSON file recording workflow phases and finished jobs."""

    def __init__(self, state_file: str = "build/state.json", report_dir: str = "build"):
        self.state_file = Path(state_file)
        self.report_dir = Path(report_dir)
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self.report_dir.mkdir(parents=True, exist_ok=True)
        self._state: Dict[str, Any] = {}
        self._load_state()

    def _fresh_state(self) -> Dict[str, Any]:
        return {
            "created_at": datetime.now().isoformat(),
            "phases": {phase: {"status": "pending", "data": {}} for phase in PHASES},
            "history": [],
        }

    def _load_state(self) -> None:
        """Load existing state from file."""
        if self.state_file.exists():
            try:
                with open(self.state_file, 'r') as f:
                    self._state = json.load(f)
            except json.JSONDecodeError:
                self._state = self._fresh_state()
        else:
            self._state = self._fresh_state()
        self._state.setdefault("phases", self._fresh_state()["phases"])
        self._state.setdefault("history", [])

    def save_state(self) -> None:
        """Save current state to file."""
        self._state["updated_at"] = datetime.now().isoformat()
        with open(self.state_file, 'w') as f:
            json.dump(self._state, f, indent=2, default=str)

    def update_phase(self, phase: str, status: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Update a specific phase with status and data."""
        if phase not in self._state["phases"]:
            raise ValueError(f"Unknown phase: {phase}")

        self._state["phases"][phase]["status"] = status
        if data:
            self._state["phases"][phase]["data"].update(data)

        self.save_state()

    def reset_phases(self) -> None:
        """Mark every phase pending again, keeping the job history."""
        self._state["phases"] = self._fresh_state()["phases"]
        self.save_state()

    def archive_job(self, job: EraseJob, certificate: Optional[CertificateRecord] = None) -> None:
        """Append a finished job to the history."""
        entry = {
            "job_id": job.id,
            "state": job.state.value,
            "device": job.device.path,
            "serial": job.device.serial,
            "method": job.configuration.method.value,
            "passes": job.configuration.passes,
            "progress": round(job.progress, 2),
            "elapsed_seconds": job.elapsed_seconds,
            "completed_areas": list(job.completed_areas),
            "created_at": job.created_at.isoformat(),
            "finished_at": (job.completed_at or job.stopped_at or datetime.now()).isoformat(),
            "error_message": job.error_message,
            "certificate_id": certificate.id if certificate else None,
        }
        self._state["history"].append(entry)
        self.save_state()

    def get_history(self) -> List[Dict[str, Any]]:
        return list(self._state["history"])

    def get_phase_data(self, phase: str) -> Dict[str, Any]:
        """Get data for a specific phase."""
        return self._state["phases"].get(phase, {}).get("data", {})

    def get_phase_status(self, phase: str) -> str:
        """Get status for a specific phase."""
        return self._state["phases"].get(phase, {}).get("status", "pending")
