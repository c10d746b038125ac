"""Conclusion and review status aggregation for completed builds."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional, Sequence

from shotdiff.jobs.job_status import DEFAULT_STALENESS_THRESHOLD, JobStatus
from shotdiff.models.entities import (
    Build,
    BuildSummary,
    Conclusion,
    ReviewStatus,
    ScreenshotDiff,
)

from .build_status import get_build_statuses

logger = logging.getLogger(__name__)


def _has_diff(diff: ScreenshotDiff) -> bool:
    return diff.score is not None and diff.score > 0


def get_conclusion(status: JobStatus, diffs: Sequence[ScreenshotDiff]) -> Optional[Conclusion]:
    if JobStatus(status) != JobStatus.COMPLETE:
        return None
    if any(_has_diff(d) for d in diffs):
        return Conclusion.DIFF_DETECTED
    return Conclusion.STABLE


def get_review_status(
    conclusion: Optional[Conclusion], diffs: Sequence[ScreenshotDiff],
) -> Optional[ReviewStatus]:
    """Review verdict over the diffs that actually changed.

    Any rejection wins, then unanimous acceptance. Anything else
    (unknown, empty, mixed) is undecided.
    """
    if conclusion != Conclusion.DIFF_DETECTED:
        return None
    validations = [d.validation_status for d in diffs if _has_diff(d)]
    if any(v == ReviewStatus.REJECTED.value for v in validations):
        return ReviewStatus.REJECTED
    if validations and all(v == ReviewStatus.ACCEPTED.value for v in validations):
        return ReviewStatus.ACCEPTED
    return None


def get_conclusions(
    diff_lists: Sequence[Sequence[ScreenshotDiff]],
    statuses: Sequence[JobStatus],
) -> list[Optional[Conclusion]]:
    if len(diff_lists) != len(statuses):
        raise ValueError("diff_lists and statuses must have the same length")
    return [get_conclusion(status, diffs) for diffs, status in zip(diff_lists, statuses)]


def get_review_statuses(
    diff_lists: Sequence[Sequence[ScreenshotDiff]],
    conclusions: Sequence[Optional[Conclusion]],
) -> list[Optional[ReviewStatus]]:
    if len(diff_lists) != len(conclusions):
        raise ValueError("diff_lists and conclusions must have the same length")
    return [
        get_review_status(conclusion, diffs)
        for diffs, conclusion in zip(diff_lists, conclusions)
    ]


def summarize_builds(
    builds: Sequence[Build],
    diffs_by_build: Mapping[str, Sequence[ScreenshotDiff]],
    *,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
    url_for: Callable[[Build], Optional[str]] | None = None,
) -> list[BuildSummary]:
    """Statuses, then conclusions, then review statuses, for many builds at once."""
    statuses = get_build_statuses(builds, diffs_by_build, now=now, threshold=threshold)
    diff_lists = [list(diffs_by_build.get(b.id, ())) for b in builds]
    conclusions = get_conclusions(diff_lists, statuses)
    review_statuses = get_review_statuses(diff_lists, conclusions)
    return [
        BuildSummary(
            build_id=build.id,
            number=build.number,
            status=status,
            conclusion=conclusion,
            review_status=review,
            url=url_for(build) if url_for else None,
        )
        for build, status, conclusion, review in zip(builds, statuses, conclusions, review_statuses)
    ]
