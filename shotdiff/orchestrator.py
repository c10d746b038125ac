"""Pipeline orchestrator: coordinates submission, build jobs, diff jobs and summaries."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from shotdiff.aggregator.conclusion import summarize_builds
from shotdiff.batch.coordinator import (
    BatchCoordinator,
    BatchReceipt,
    BatchSubmission,
    ScreenshotInput,
)
from shotdiff.batch.pairing import pair_screenshots
from shotdiff.differ.classifier import classify_diff, sort_diffs_by_status
from shotdiff.differ.compute import run_diff_job
from shotdiff.differ.image_diff import get_max_dimensions
from shotdiff.jobs.job_status import JobStatus, effective_status, transition
from shotdiff.models.config import ShotDiffConfig
from shotdiff.models.entities import Build, BuildSummary, ScreenshotBucket, ScreenshotDiff
from shotdiff.store.assets import AssetStore, LocalAssetStore
from shotdiff.store.registry import BuildRegistryManager

logger = logging.getLogger(__name__)


class Orchestrator:
    """Plays the job-queue role: runs the build job, then one diff job per pair."""

    def __init__(
        self,
        config: ShotDiffConfig,
        registry: BuildRegistryManager | None = None,
        store: AssetStore | None = None,
    ):
        self.config = config
        self.registry = registry or BuildRegistryManager(config.registry_path)
        self.store = store or LocalAssetStore(config.assets_dir, config.public_url_base)
        self.coordinator = BatchCoordinator(self.registry)

    # -- submission --------------------------------------------------------

    def upload_screenshot(self, path: str | Path, name: str | None = None) -> ScreenshotInput:
        """Store a screenshot file and describe it for a batch submission."""
        path = Path(path)
        width, height = get_max_dimensions([path])
        key = self.store.store(path)
        return ScreenshotInput(key=key, name=name or path.stem, width=width, height=height)

    def submit(self, submission: BatchSubmission) -> BatchReceipt:
        return self.coordinator.submit_batch(submission)

    def build_url(self, build: Build) -> str:
        return f"{self.config.app_base_url.rstrip('/')}/{build.repository_id}/builds/{build.number}"

    # -- build job ---------------------------------------------------------

    def start_build_job(self, build_id: str) -> list[ScreenshotDiff]:
        """Resolve the base bucket and create the build's diffs.

        Returns the diffs of the build. Builds whose compare bucket is still
        waiting for batches are left pending.
        """
        build = self.registry.get_build(build_id)
        if build.job_status != JobStatus.PENDING:
            logger.debug("Build %s already %s", build_id, build.job_status.value)
            return self.registry.diffs_for_build(build_id)

        compare_bucket = self.registry.get_bucket(build.compare_screenshot_bucket_id)
        if not compare_bucket.complete:
            logger.info("Build #%d is waiting for more batches", build.number)
            return []

        build = self.registry.patch_build(
            build_id, job_status=transition(build.job_status, JobStatus.PROGRESS),
        )
        try:
            return self._create_diffs(build, compare_bucket)
        except Exception:
            logger.exception("Build #%d job failed", build.number)
            self.registry.patch_build(build_id, job_status=JobStatus.ERROR)
            raise

    def _create_diffs(self, build: Build, compare_bucket: ScreenshotBucket) -> list[ScreenshotDiff]:
        base_bucket = self.registry.latest_complete_bucket(
            build.repository_id,
            compare_bucket.name,
            self.config.reference_branch,
            exclude_id=compare_bucket.id,
        )
        base_screenshots = (
            self.registry.screenshots_for_bucket(base_bucket.id) if base_bucket else []
        )
        if base_bucket is None:
            logger.info("Build #%d has no base bucket on '%s'",
                        build.number, self.config.reference_branch)

        diffs = pair_screenshots(
            build.id,
            base_screenshots,
            self.registry.screenshots_for_bucket(compare_bucket.id),
            self.config.failure_markers,
        )
        self.registry.create_diffs(diffs)
        self.registry.patch_build(
            build.id,
            base_screenshot_bucket_id=base_bucket.id if base_bucket else None,
            job_status=transition(build.job_status, JobStatus.COMPLETE),
        )
        logger.info("Build #%d: %d screenshot diffs created", build.number, len(diffs))
        return diffs

    async def _run_diffs(self, diff_ids: list[str]) -> list[ScreenshotDiff]:
        semaphore = asyncio.Semaphore(self.config.max_parallel_diffs)

        async def _run_one(diff_id: str) -> ScreenshotDiff:
            async with semaphore:
                return await asyncio.to_thread(
                    run_diff_job, self.registry, self.store, diff_id, self.config,
                )

        return list(await asyncio.gather(*(_run_one(d) for d in diff_ids)))

    async def process_build(self, build_id: str) -> BuildSummary:
        start = time.time()
        diffs = await asyncio.to_thread(self.start_build_job, build_id)
        pending = [d.id for d in diffs if d.job_status == JobStatus.PENDING]
        if pending:
            logger.info("Running %d diff jobs", len(pending))
            await self._run_diffs(pending)
        summary = self.get_summaries([build_id])[0]
        logger.info("Build %s processed in %.1fs: %s", build_id, time.time() - start,
                    summary.status.value)
        return summary

    async def process_pending(self) -> list[BuildSummary]:
        """Process every pending build whose compare bucket is complete."""
        ready = [
            b.id for b in self.registry.list_builds()
            if b.job_status == JobStatus.PENDING
            and self.registry.get_bucket(b.compare_screenshot_bucket_id).complete
        ]
        return [await self.process_build(build_id) for build_id in ready]

    def run_pending(self) -> list[BuildSummary]:
        return asyncio.run(self.process_pending())

    def abort_build(self, build_id: str) -> Build:
        build = self.registry.get_build(build_id)
        build = self.registry.patch_build(
            build_id, job_status=transition(build.job_status, JobStatus.ABORTED),
        )
        logger.info("Build #%d aborted", build.number)
        return build

    # -- reads -------------------------------------------------------------

    def get_summaries(
        self, build_ids: list[str] | None = None, now: datetime | None = None,
    ) -> list[BuildSummary]:
        if build_ids is None:
            builds = self.registry.list_builds()
        else:
            builds = [self.registry.get_build(build_id) for build_id in build_ids]
        diffs_by_build = self.registry.diffs_by_build(b.id for b in builds)
        return summarize_builds(
            builds,
            diffs_by_build,
            now=now,
            threshold=self.config.staleness_threshold,
            url_for=self.build_url,
        )

    def review_diff(self, diff_id: str, validation_status: str) -> ScreenshotDiff:
        return self.registry.patch_diff(diff_id, validation_status=validation_status)

    def diff_details(self, build_id: str, now: datetime | None = None) -> list[dict[str, Any]]:
        """Per-diff rows of a build, most actionable first."""
        rows = []
        for diff in self.registry.diffs_for_build(build_id):
            base = (
                self.registry.get_screenshot(diff.base_screenshot_id)
                if diff.base_screenshot_id else None
            )
            compare = (
                self.registry.get_screenshot(diff.compare_screenshot_id)
                if diff.compare_screenshot_id else None
            )
            name = (base or compare).name
            rows.append({
                "id": diff.id,
                "name": name,
                "status": classify_diff(
                    base is not None,
                    compare is not None,
                    diff.score,
                    compare.name if compare else None,
                    self.config.failure_markers,
                ).value,
                "job_status": effective_status(
                    diff.job_status, diff.created_at, now, self.config.staleness_threshold,
                ).value,
                "score": diff.score,
                "width": diff.width,
                "height": diff.height,
                "validation_status": diff.validation_status,
                "url": self._diff_url(diff.s3_id),
            })
        return sort_diffs_by_status(rows, lambda row: row["status"])

    def _diff_url(self, s3_id: Optional[str]) -> Optional[str]:
        if not s3_id:
            return None
        return self.store.public_url(s3_id)
