"""Screenshot pairing: one ScreenshotDiff per screenshot name across base and compare."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from shotdiff.differ.classifier import is_failure_name
from shotdiff.jobs.job_status import JobStatus
from shotdiff.models.config import DEFAULT_FAILURE_MARKERS
from shotdiff.models.entities import Screenshot, ScreenshotDiff

logger = logging.getLogger(__name__)


def pair_screenshots(
    build_id: str,
    base_screenshots: Sequence[Screenshot],
    compare_screenshots: Sequence[Screenshot],
    failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
) -> list[ScreenshotDiff]:
    """Match screenshots by name and create the diffs of a build.

    Compare screenshots come first, in bucket order, followed by base
    screenshots that disappeared. Failure screenshots are never matched
    with a base. Only matched pairs need computing; one-sided diffs are
    complete from the start.
    """
    markers = list(failure_markers)
    base_by_name = {s.name: s for s in base_screenshots}
    seen_names: set[str] = set()
    diffs: list[ScreenshotDiff] = []

    for compare in compare_screenshots:
        seen_names.add(compare.name)
        base = None
        if not is_failure_name(compare.name, markers):
            base = base_by_name.get(compare.name)
        diffs.append(ScreenshotDiff(
            build_id=build_id,
            base_screenshot_id=base.id if base else None,
            compare_screenshot_id=compare.id,
            job_status=JobStatus.PENDING if base else JobStatus.COMPLETE,
        ))

    for base in base_screenshots:
        if base.name not in seen_names:
            diffs.append(ScreenshotDiff(
                build_id=build_id,
                base_screenshot_id=base.id,
                job_status=JobStatus.COMPLETE,
            ))

    logger.debug(
        "Paired %d base / %d compare screenshots into %d diffs",
        len(base_screenshots), len(compare_screenshots), len(diffs),
    )
    return diffs
