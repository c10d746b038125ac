"""Job status lifecycle shared by build jobs and screenshot diff jobs.

    pending -> progress -> complete
    pending | progress  -> error | aborted

``expired`` is never stored. It is derived on read for units still
``pending``/``progress`` after the staleness threshold.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum

from shotdiff.errors import InvalidTransition, JobExpired

logger = logging.getLogger(__name__)

DEFAULT_STALENESS_THRESHOLD = timedelta(hours=2)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    ABORTED = "aborted"
    EXPIRED = "expired"  # derived only


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROGRESS})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.ERROR, JobStatus.ABORTED})

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROGRESS, JobStatus.ERROR, JobStatus.ABORTED}),
    JobStatus.PROGRESS: frozenset({JobStatus.COMPLETE, JobStatus.ERROR, JobStatus.ABORTED}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.ERROR: frozenset(),
    JobStatus.ABORTED: frozenset(),
}


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Whether a persisted status may move to ``target``.

    Re-applying the current status is accepted so that a re-dispatched
    unit of work can overwrite its own result.
    """
    current, target = JobStatus(current), JobStatus(target)
    if JobStatus.EXPIRED in (current, target):
        return False
    return current == target or target in _TRANSITIONS[current]


def is_expired(
    status: JobStatus,
    created_at: datetime,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
) -> bool:
    if JobStatus(status) not in ACTIVE_STATUSES:
        return False
    now = _as_utc(now or datetime.now(timezone.utc))
    return now - _as_utc(created_at) > threshold


def effective_status(
    status: JobStatus,
    created_at: datetime,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
) -> JobStatus:
    """Status as surfaced to readers: the persisted one, or ``expired``."""
    if is_expired(status, created_at, now, threshold):
        return JobStatus.EXPIRED
    return JobStatus(status)


def transition(
    current: JobStatus,
    target: JobStatus,
    *,
    created_at: datetime | None = None,
    now: datetime | None = None,
    threshold: timedelta = DEFAULT_STALENESS_THRESHOLD,
    policy: str = "advisory",
) -> JobStatus:
    """Validate a status change and return the new persisted status.

    With the ``veto`` expiry policy an expired unit can no longer be
    completed; with ``advisory`` a late completion wins.
    """
    current, target = JobStatus(current), JobStatus(target)
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)
    if (
        policy == "veto"
        and target == JobStatus.COMPLETE
        and created_at is not None
        and is_expired(current, created_at, now, threshold)
    ):
        raise JobExpired(current.value)
    if current != target:
        logger.debug("Job status %s -> %s", current.value, target.value)
    return target
