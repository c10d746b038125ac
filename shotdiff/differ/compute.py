"""Screenshot diff job: computes one ScreenshotDiff and records its outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from shotdiff.errors import ImageDiffError, JobExpired
from shotdiff.jobs.job_status import JobStatus, can_transition, transition
from shotdiff.models.config import ShotDiffConfig
from shotdiff.models.entities import Screenshot, ScreenshotDiff
from shotdiff.store.assets import AssetStore
from shotdiff.store.registry import BuildRegistryManager

from .image_diff import diff_images

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffOutcome:
    score: Optional[float]
    s3_id: Optional[str]
    width: Optional[int]
    height: Optional[int]


def _max_known(*values: Optional[int]) -> Optional[int]:
    known = [v for v in values if v is not None]
    return max(known) if known else None


def compute_screenshot_diff(
    base: Screenshot | None,
    compare: Screenshot | None,
    store: AssetStore,
    channel_tolerance: int = 0,
) -> DiffOutcome:
    """Diff a pair of screenshots, uploading the mask when one is produced.

    A pair missing one side has nothing to compute. Two screenshots
    sharing the same file are identical without decoding them.
    """
    if base is None or compare is None:
        only = compare or base
        return DiffOutcome(score=None, s3_id=None, width=only.file.width, height=only.file.height)

    if base.file.key == compare.file.key:
        return DiffOutcome(
            score=0.0,
            s3_id=None,
            width=_max_known(base.file.width, compare.file.width),
            height=_max_known(base.file.height, compare.file.height),
        )

    result = diff_images(
        store.local_path(base.file.key),
        store.local_path(compare.file.key),
        channel_tolerance=channel_tolerance,
    )
    s3_id = None
    if result.diff_path is not None:
        try:
            s3_id = store.store(result.diff_path)
        finally:
            result.diff_path.unlink(missing_ok=True)
    return DiffOutcome(score=result.score, s3_id=s3_id, width=result.width, height=result.height)


def _compute(
    registry: BuildRegistryManager,
    store: AssetStore,
    diff: ScreenshotDiff,
    config: ShotDiffConfig,
) -> DiffOutcome:
    base = registry.get_screenshot(diff.base_screenshot_id) if diff.base_screenshot_id else None
    compare = (
        registry.get_screenshot(diff.compare_screenshot_id) if diff.compare_screenshot_id else None
    )
    return compute_screenshot_diff(base, compare, store, config.channel_tolerance)


def run_diff_job(
    registry: BuildRegistryManager,
    store: AssetStore,
    diff_id: str,
    config: ShotDiffConfig,
    now: datetime | None = None,
) -> ScreenshotDiff:
    """Run the diff job for one ScreenshotDiff.

    pending -> progress -> complete, or error when an image is missing or
    cannot be decoded. Any other failure also records error before
    propagating, so a diff never stays in progress. Running it again on a
    complete diff recomputes and overwrites the result. Failed and aborted
    diffs are left untouched.
    """
    diff = registry.get_diff(diff_id)
    current = JobStatus(diff.job_status)
    if current in (JobStatus.ERROR, JobStatus.ABORTED):
        logger.info("Skipping diff %s (%s)", diff_id, current.value)
        return diff
    if current == JobStatus.PENDING:
        current = transition(current, JobStatus.PROGRESS)
        diff = registry.patch_diff(diff_id, job_status=current)

    try:
        outcome = _compute(registry, store, diff, config)
    except ImageDiffError as e:
        logger.error("Diff %s failed: %s", diff_id, e)
        if not can_transition(current, JobStatus.ERROR):
            raise
        return registry.patch_diff(diff_id, job_status=JobStatus.ERROR)
    except Exception:
        logger.exception("Diff %s job crashed", diff_id)
        if can_transition(current, JobStatus.ERROR):
            registry.patch_diff(diff_id, job_status=JobStatus.ERROR)
        raise

    try:
        status = transition(
            current,
            JobStatus.COMPLETE,
            created_at=diff.created_at,
            now=now,
            threshold=config.staleness_threshold,
            policy=config.expiry_policy,
        )
    except JobExpired as e:
        logger.warning("Diff %s: %s", diff_id, e)
        return registry.patch_diff(diff_id, job_status=JobStatus.ERROR)

    logger.debug("Diff %s complete (score=%s)", diff_id, outcome.score)
    return registry.patch_diff(
        diff_id,
        job_status=status,
        score=outcome.score,
        s3_id=outcome.s3_id,
        width=outcome.width,
        height=outcome.height,
    )
