"""Workflow settings loaded from the environment and an optional .env file."""

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


class WorkflowSettings(BaseModel):
    """Tunable knobs for the job controller, backends and reports."""
    tick_interval: float = Field(default=0.8, gt=0)
    clock_interval: float = Field(default=1.0, gt=0)
    min_increment: float = Field(default=0.5, gt=0)
    max_increment: float = Field(default=2.5, gt=0)
    backend: str = Field(default="synthetic", pattern="^(synthetic|image)$")
    image_path: Optional[str] = None
    seed: Optional[int] = None
    report_dir: str = "build"
    state_file: str = "build/state.json"
    log_level: str = "INFO"
    business_info: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_increments(self) -> "WorkflowSettings":
        if self.max_increment < self.min_increment:
            raise ValueError("max_increment must not be smaller than min_increment")
        return self

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "WorkflowSettings":
        """Load settings from environment variables (and .env)."""
        load_dotenv(env_file)

        values = {
            "tick_interval": os.getenv("ERASEJOB_TICK_INTERVAL"),
            "clock_interval": os.getenv("ERASEJOB_CLOCK_INTERVAL"),
            "min_increment": os.getenv("ERASEJOB_MIN_INCREMENT"),
            "max_increment": os.getenv("ERASEJOB_MAX_INCREMENT"),
            "backend": os.getenv("ERASEJOB_BACKEND"),
            "image_path": os.getenv("ERASEJOB_IMAGE_PATH"),
            "seed": os.getenv("ERASEJOB_SEED"),
            "report_dir": os.getenv("ERASEJOB_REPORT_DIR"),
            "log_level": os.getenv("ERASEJOB_LOG_LEVEL"),
        }
        values = {k: v for k, v in values.items() if v not in (None, "")}
        if "report_dir" in values:
            values["state_file"] = str(Path(values["report_dir"]) / "state.json")
        values["business_info"] = load_business_info()
        return cls(**values)


def load_business_info() -> Dict[str, str]:
    """Business details printed on certificates."""
    return {
        "business_name": os.getenv("BUSINESS_NAME", "Your Company Name"),
        "business_address": os.getenv("BUSINESS_ADDRESS", "123 Main St, City, State 12345"),
        "business_contact": os.getenv("BUSINESS_CONTACT", "John Doe"),
        "business_email": os.getenv("BUSINESS_EMAIL", "contact@yourcompany.com"),
        "technician_name": os.getenv("TECHNICIAN_NAME", "Technician"),
    }
