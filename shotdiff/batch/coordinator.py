"""Parallel batch coordinator: merges shards sharing a parallel nonce into one build."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from shotdiff.errors import InconsistentParallelTotal
from shotdiff.models.entities import Build, FileRef, Screenshot, ScreenshotBucket
from shotdiff.store.registry import BuildRegistryManager

logger = logging.getLogger(__name__)


class ScreenshotInput(BaseModel):
    key: str  # content key of the uploaded file
    name: str
    width: Optional[int] = None
    height: Optional[int] = None


class BatchSubmission(BaseModel):
    repository_id: str
    commit: str
    branch: str
    name: str = "default"
    screenshots: list[ScreenshotInput] = Field(default_factory=list)
    parallel: bool = False
    parallel_nonce: Optional[str] = None
    parallel_total: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_parallel(self) -> "BatchSubmission":
        if self.parallel and not self.parallel_nonce:
            raise ValueError("`parallelNonce` is required when `parallel` is `true`")
        return self


@dataclass
class BatchReceipt:
    build: Build
    bucket: ScreenshotBucket
    screenshots: list[Screenshot]


class BatchCoordinator:
    """Creates builds from batch submissions.

    Parallel shards of one (repository, nonce) share a build and a compare
    bucket. Their create-or-join and count-and-complete steps run under a
    lock dedicated to that key, so exactly one shard completes the bucket.
    """

    def __init__(self, registry: BuildRegistryManager):
        self.registry = registry
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, repository_id: str, nonce: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((repository_id, nonce), threading.Lock())

    def submit_batch(self, submission: BatchSubmission) -> BatchReceipt:
        if not submission.parallel:
            return self._submit_single(submission)
        with self._lock_for(submission.repository_id, submission.parallel_nonce):
            build = self.registry.find_build_by_external_id(
                submission.repository_id, submission.parallel_nonce,
            )
            if build is None:
                return self._start_parallel(submission)
            return self._join_parallel(build, submission)

    def _new_bucket(self, submission: BatchSubmission) -> ScreenshotBucket:
        return self.registry.create_bucket(ScreenshotBucket(
            name=submission.name,
            branch=submission.branch,
            commit=submission.commit,
            repository_id=submission.repository_id,
        ))

    def _add_screenshots(
        self, bucket: ScreenshotBucket, submission: BatchSubmission,
    ) -> list[Screenshot]:
        return self.registry.add_screenshots(
            Screenshot(
                name=s.name,
                file=FileRef(key=s.key, width=s.width, height=s.height),
                bucket_id=bucket.id,
            )
            for s in submission.screenshots
        )

    def _submit_single(self, submission: BatchSubmission) -> BatchReceipt:
        bucket = self._new_bucket(submission)
        build = self.registry.create_build(Build(
            repository_id=submission.repository_id,
            name=submission.name,
            compare_screenshot_bucket_id=bucket.id,
        ))
        screenshots = self._add_screenshots(bucket, submission)
        bucket = self.registry.patch_bucket(bucket.id, complete=True)
        logger.info("Build #%d received %d screenshots", build.number, len(screenshots))
        return BatchReceipt(build=build, bucket=bucket, screenshots=screenshots)

    def _start_parallel(self, submission: BatchSubmission) -> BatchReceipt:
        bucket = self._new_bucket(submission)
        build = self.registry.create_build(Build(
            repository_id=submission.repository_id,
            name=submission.name,
            compare_screenshot_bucket_id=bucket.id,
            external_id=submission.parallel_nonce,
            batch_count=1,
            total_batch=submission.parallel_total,
        ))
        screenshots = self._add_screenshots(bucket, submission)
        if build.total_batch == 1:
            bucket = self.registry.patch_bucket(bucket.id, complete=True)
        logger.info(
            "Build #%d started by parallel batch 1/%s (nonce=%s)",
            build.number, build.total_batch or "?", submission.parallel_nonce,
        )
        return BatchReceipt(build=build, bucket=bucket, screenshots=screenshots)

    def _join_parallel(self, build: Build, submission: BatchSubmission) -> BatchReceipt:
        total = build.total_batch
        if submission.parallel_total is not None:
            if total is not None and total != submission.parallel_total:
                logger.warning(
                    "Build #%d: parallel total %d differs from %d",
                    build.number, submission.parallel_total, total,
                )
                raise InconsistentParallelTotal(total, submission.parallel_total)
            total = submission.parallel_total

        bucket = self.registry.get_bucket(build.compare_screenshot_bucket_id)
        screenshots = self._add_screenshots(bucket, submission)
        batch_count = (build.batch_count or 0) + 1
        build = self.registry.patch_build(build.id, batch_count=batch_count, total_batch=total)

        if total is not None and batch_count == total and not bucket.complete:
            bucket = self.registry.patch_bucket(bucket.id, complete=True)
            logger.info("Build #%d: all %d parallel batches received", build.number, total)
        elif total is not None and batch_count > total:
            logger.warning(
                "Build #%d received batch %d of %d", build.number, batch_count, total,
            )
        else:
            logger.info(
                "Build #%d joined by parallel batch %d/%s",
                build.number, batch_count, total or "?",
            )
        return BatchReceipt(build=build, bucket=bucket, screenshots=screenshots)
