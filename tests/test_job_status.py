"""Tests for the job status lifecycle."""

from datetime import datetime, timedelta

import pytest

from shotdiff.errors import InvalidTransition, JobExpired
from shotdiff.jobs.job_status import (
    JobStatus,
    can_transition,
    effective_status,
    is_expired,
    transition,
)


class TestTransitions:
    """Tests for allowed and refused status changes."""

    @pytest.mark.parametrize("current,target", [
        (JobStatus.PENDING, JobStatus.PROGRESS),
        (JobStatus.PROGRESS, JobStatus.COMPLETE),
        (JobStatus.PENDING, JobStatus.ERROR),
        (JobStatus.PROGRESS, JobStatus.ERROR),
        (JobStatus.PENDING, JobStatus.ABORTED),
        (JobStatus.PROGRESS, JobStatus.ABORTED),
        (JobStatus.COMPLETE, JobStatus.COMPLETE),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert transition(current, target) == target

    @pytest.mark.parametrize("current,target", [
        (JobStatus.PENDING, JobStatus.COMPLETE),
        (JobStatus.COMPLETE, JobStatus.PROGRESS),
        (JobStatus.COMPLETE, JobStatus.ABORTED),
        (JobStatus.ERROR, JobStatus.PROGRESS),
        (JobStatus.ABORTED, JobStatus.COMPLETE),
        (JobStatus.PENDING, JobStatus.EXPIRED),
    ])
    def test_refused(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransition):
            transition(current, target)

    def test_accepts_plain_strings(self):
        assert transition("pending", "progress") == JobStatus.PROGRESS


class TestExpiry:
    """Tests for the read-time expired status."""

    def test_stale_pending_is_expired(self, now):
        created = now - timedelta(hours=3)
        assert is_expired(JobStatus.PENDING, created, now)
        assert effective_status(JobStatus.PENDING, created, now) == JobStatus.EXPIRED

    def test_stale_progress_is_expired(self, now):
        created = now - timedelta(hours=3)
        assert effective_status(JobStatus.PROGRESS, created, now) == JobStatus.EXPIRED

    def test_recent_job_keeps_status(self, now):
        created = now - timedelta(minutes=30)
        assert effective_status(JobStatus.PROGRESS, created, now) == JobStatus.PROGRESS

    def test_terminal_job_never_expires(self, now):
        created = now - timedelta(days=30)
        for status in (JobStatus.COMPLETE, JobStatus.ERROR, JobStatus.ABORTED):
            assert effective_status(status, created, now) == status

    def test_custom_threshold(self, now):
        created = now - timedelta(minutes=10)
        assert is_expired(JobStatus.PENDING, created, now, threshold=timedelta(minutes=5))
        assert not is_expired(JobStatus.PENDING, created, now, threshold=timedelta(hours=1))

    def test_naive_timestamps_are_utc(self, now):
        naive_created = datetime(2025, 1, 1, 8, 0)
        assert is_expired(JobStatus.PENDING, naive_created, now)


class TestExpiryPolicy:
    """Tests for late completion under both expiry policies."""

    def test_advisory_accepts_late_completion(self, now):
        created = now - timedelta(hours=5)
        status = transition(
            JobStatus.PROGRESS, JobStatus.COMPLETE,
            created_at=created, now=now, policy="advisory",
        )
        assert status == JobStatus.COMPLETE

    def test_veto_refuses_late_completion(self, now):
        created = now - timedelta(hours=5)
        with pytest.raises(JobExpired):
            transition(
                JobStatus.PROGRESS, JobStatus.COMPLETE,
                created_at=created, now=now, policy="veto",
            )

    def test_veto_allows_timely_completion(self, now):
        created = now - timedelta(minutes=5)
        status = transition(
            JobStatus.PROGRESS, JobStatus.COMPLETE,
            created_at=created, now=now, policy="veto",
        )
        assert status == JobStatus.COMPLETE

    def test_veto_still_allows_error(self, now):
        created = now - timedelta(hours=5)
        status = transition(
            JobStatus.PROGRESS, JobStatus.ERROR,
            created_at=created, now=now, policy="veto",
        )
        assert status == JobStatus.ERROR
