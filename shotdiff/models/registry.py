"""Entity registry data structure persisted as JSON."""

from __future__ import annotations

from pydantic import BaseModel, Field

from shotdiff.models.entities import Build, Screenshot, ScreenshotBucket, ScreenshotDiff


class BuildRegistry(BaseModel):
    last_updated: str = ""
    buckets: dict[str, ScreenshotBucket] = Field(default_factory=dict)
    screenshots: dict[str, Screenshot] = Field(default_factory=dict)
    builds: dict[str, Build] = Field(default_factory=dict)
    diffs: dict[str, ScreenshotDiff] = Field(default_factory=dict)
    # all dicts keyed by entity id, in insertion order
