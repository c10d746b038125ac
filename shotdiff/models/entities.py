"""Entity snapshots: builds, screenshot buckets, screenshots and screenshot diffs.

Snapshots are immutable. A change is expressed with ``patched()``, which
returns a new, re-validated snapshot and leaves the original untouched.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shotdiff.errors import InvalidBucketPair
from shotdiff.jobs.job_status import JobStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class DiffStatus(str, Enum):
    FAILURE = "failure"
    CHANGED = "changed"
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


class Conclusion(str, Enum):
    STABLE = "stable"
    DIFF_DETECTED = "diffDetected"


class ReviewStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    def patched(self, **changes):
        """Return a copy with ``changes`` applied, running validation again."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


class FileRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str  # asset reference in the asset store
    width: Optional[int] = None
    height: Optional[int] = None


class Screenshot(Snapshot):
    id: str = Field(default_factory=new_id)
    name: str
    file: FileRef
    bucket_id: str
    created_at: datetime = Field(default_factory=utcnow)


class ScreenshotBucket(Snapshot):
    id: str = Field(default_factory=new_id)
    name: str
    branch: str
    commit: str
    complete: bool = False
    repository_id: str
    created_at: datetime = Field(default_factory=utcnow)


class ScreenshotDiff(Snapshot):
    id: str = Field(default_factory=new_id)
    build_id: str
    base_screenshot_id: Optional[str] = None
    compare_screenshot_id: Optional[str] = None
    score: Optional[float] = Field(default=None, ge=0)
    s3_id: Optional[str] = None  # diff mask asset reference
    width: Optional[int] = None
    height: Optional[int] = None
    job_status: JobStatus = JobStatus.PENDING
    validation_status: Optional[str] = None  # accepted, rejected, unknown, ...
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_has_screenshot(self) -> "ScreenshotDiff":
        if self.base_screenshot_id is None and self.compare_screenshot_id is None:
            raise ValueError("A screenshot diff needs a base or a compare screenshot")
        return self


class Build(Snapshot):
    id: str = Field(default_factory=new_id)
    repository_id: str
    number: Optional[int] = None  # assigned by the registry on creation
    name: str = "default"
    base_screenshot_bucket_id: Optional[str] = None  # resolved by the build job
    compare_screenshot_bucket_id: str
    job_status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    external_id: Optional[str] = None  # parallel nonce
    batch_count: Optional[int] = None
    total_batch: Optional[int] = None

    @model_validator(mode="after")
    def check_bucket_pair(self) -> "Build":
        # InvalidBucketPair is not a ValueError, so pydantic lets it propagate as is
        if self.base_screenshot_bucket_id is not None and (
            self.base_screenshot_bucket_id == self.compare_screenshot_bucket_id
        ):
            raise InvalidBucketPair(self.compare_screenshot_bucket_id)
        return self


class BuildSummary(BaseModel):
    """User-visible verdicts of a build, derived on read."""
    build_id: str
    number: Optional[int] = None
    status: JobStatus
    conclusion: Optional[Conclusion] = None
    review_status: Optional[ReviewStatus] = None
    url: Optional[str] = None
