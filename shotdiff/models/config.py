"""Configuration model for shotdiff."""

from __future__ import annotations

import json
import os
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Known "failed test" screenshot filename conventions
DEFAULT_FAILURE_MARKERS = [
    " (failed).",  # cypress
    "-failed-",  # playwright
]


class ShotDiffConfig(BaseModel):
    # Storage
    data_dir: str = ".shotdiff"
    public_url_base: Optional[str] = None
    app_base_url: str = "http://localhost:4001"

    # Job lifecycle
    staleness_threshold_hours: float = Field(default=2.0, ge=0)
    expiry_policy: Literal["advisory", "veto"] = "advisory"

    # Diffing
    failure_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_FAILURE_MARKERS))
    reference_branch: str = "main"
    channel_tolerance: int = Field(default=0, ge=0, le=255)
    max_parallel_diffs: int = Field(default=4, ge=1)

    # Reporting
    report_output_dir: str = "./shotdiff-reports"

    @field_validator("staleness_threshold_hours", mode="before")
    @classmethod
    def resolve_env_threshold(cls, v):
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return float(resolved)
        return v

    @property
    def staleness_threshold(self) -> timedelta:
        return timedelta(hours=self.staleness_threshold_hours)

    @property
    def registry_path(self) -> Path:
        return Path(self.data_dir) / "registry.json"

    @property
    def assets_dir(self) -> Path:
        return Path(self.data_dir) / "assets"

    @classmethod
    def load(cls, path: str | Path) -> "ShotDiffConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
