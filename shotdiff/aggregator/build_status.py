"""Build status aggregation: combines a build's own job with its screenshot diff jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Sequence

from shotdiff.jobs.job_status import (
    ACTIVE_STATUSES,
    DEFAULT_STALENESS_THRESHOLD,
    JobStatus,
    is_expired,
)
from shotdiff.models.entities import Build, ScreenshotDiff

logger = logging.getLogger(__name__)


def reduce_child_statuses(child_statuses: Iterable[JobStatus]) -> JobStatus:
    """Reduce diff job statuses by priority: error > pending/progress > complete.

    Children are judged on their stored status. A diff job still queued
    past the staleness threshold keeps the build in progress.
    """
    statuses = {JobStatus(s) for s in child_statuses}
    if JobStatus.ERROR in statuses:
        return JobStatus.ERROR
    if statuses & (ACTIVE_STATUSES | {JobStatus.EXPIRED}):
        return JobStatus.PROGRESS
    return JobStatus.COMPLETE


def get_build_status(
    build_job_status: JobStatus,
    build_created_at: datetime,
    child_statuses: Iterable[JobStatus],
    *,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
) -> JobStatus:
    """Effective status of a build.

    Until the build's own job completes its children are ignored: an
    unfinished job reads ``pending`` (or ``expired`` once stale). Once it is
    complete the children decide.
    """
    own = JobStatus(build_job_status)
    if own in (JobStatus.ABORTED, JobStatus.ERROR, JobStatus.EXPIRED):
        return own
    if own in ACTIVE_STATUSES:
        if is_expired(own, build_created_at, now, threshold):
            return JobStatus.EXPIRED
        return JobStatus.PENDING
    return reduce_child_statuses(child_statuses)


def get_build_statuses(
    builds: Sequence[Build],
    diffs_by_build: Mapping[str, Sequence[ScreenshotDiff]],
    *,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
) -> list[JobStatus]:
    """Evaluate many builds at once; output order follows ``builds``."""
    statuses = []
    for build in builds:
        children = [d.job_status for d in diffs_by_build.get(build.id, ())]
        statuses.append(get_build_status(
            build.job_status, build.created_at, children, now=now, threshold=threshold,
        ))
    return statuses
