"""Diff classification: status of a single screenshot pair.

The in-process classifier and the SQL expressions below must agree on
every input; both are built from the same failure marker pattern.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Optional, TypeVar

from shotdiff.models.config import DEFAULT_FAILURE_MARKERS
from shotdiff.models.entities import DiffStatus

T = TypeVar("T")

# Ascending: most actionable first
STATUS_RANK: dict[DiffStatus, int] = {
    DiffStatus.FAILURE: 0,
    DiffStatus.CHANGED: 1,
    DiffStatus.ADDED: 2,
    DiffStatus.REMOVED: 3,
    DiffStatus.UNCHANGED: 4,
}

_REGEX_SPECIAL = set(".^$*+?()[]{}|\\")


def _escape_literal(marker: str) -> str:
    # Escapes valid for both Python re and PostgreSQL regular expressions
    return "".join(f"\\{c}" if c in _REGEX_SPECIAL else c for c in marker)


def failure_pattern(markers: Iterable[str] = DEFAULT_FAILURE_MARKERS) -> str:
    """Regex alternation matching any failure marker as a literal substring."""
    return "(" + "|".join(_escape_literal(m) for m in markers) + ")"


def is_failure_name(name: str | None, markers: Iterable[str] = DEFAULT_FAILURE_MARKERS) -> bool:
    markers = list(markers)
    if not name or not markers:
        return False
    return re.search(failure_pattern(markers), name) is not None


def classify_diff(
    has_base: bool,
    has_compare: bool,
    score: Optional[float],
    compare_name: Optional[str] = None,
    failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
) -> DiffStatus:
    if not has_compare:
        return DiffStatus.REMOVED
    if not has_base:
        if is_failure_name(compare_name, failure_markers):
            return DiffStatus.FAILURE
        return DiffStatus.ADDED
    if score is not None and score > 0:
        return DiffStatus.CHANGED
    return DiffStatus.UNCHANGED


def diff_status_rank(status: DiffStatus) -> int:
    return STATUS_RANK[DiffStatus(status)]


def sort_diffs_by_status(items: Iterable[T], status_of: Callable[[T], DiffStatus]) -> list[T]:
    """Stable sort of ``items`` by the display rank of their status."""
    return sorted(items, key=lambda item: diff_status_rank(status_of(item)))


COMPARE_NAME_COLUMN = '"compareScreenshot"."name"'


def _failure_clause(failure_markers: Iterable[str], name_column: str, result: str) -> str:
    # Without markers no screenshot is a failure, so the branch is left out
    markers = list(failure_markers)
    if not markers:
        return ""
    pattern = failure_pattern(markers).replace("'", "''")
    return f'WHEN "baseScreenshotId" IS NULL AND {name_column} ~ \'{pattern}\' THEN {result} '


def select_diff_status_sql(
    failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
    name_column: str = COMPARE_NAME_COLUMN,
) -> str:
    """SQL expression computing the diff status column, equivalent to classify_diff."""
    return (
        "CASE "
        'WHEN "compareScreenshotId" IS NULL THEN \'removed\' '
        + _failure_clause(failure_markers, name_column, "'failure'")
        + 'WHEN "baseScreenshotId" IS NULL THEN \'added\' '
        'WHEN "score" IS NOT NULL AND "score" > 0 THEN \'changed\' '
        "ELSE 'unchanged' "
        "END AS status"
    )


def sort_diff_by_status_sql(
    failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
    name_column: str = COMPARE_NAME_COLUMN,
) -> str:
    """SQL ORDER BY expression ranking diffs like sort_diffs_by_status."""
    rank = STATUS_RANK
    return (
        "CASE "
        f'WHEN "compareScreenshotId" IS NULL THEN {rank[DiffStatus.REMOVED]} '
        + _failure_clause(failure_markers, name_column, str(rank[DiffStatus.FAILURE]))
        + f'WHEN "baseScreenshotId" IS NULL THEN {rank[DiffStatus.ADDED]} '
        f'WHEN "score" IS NOT NULL AND "score" > 0 THEN {rank[DiffStatus.CHANGED]} '
        f"ELSE {rank[DiffStatus.UNCHANGED]} "
        "END ASC"
    )
