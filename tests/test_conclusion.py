"""Tests for conclusion and review status aggregation."""

import pytest

from shotdiff.aggregator.conclusion import (
    get_conclusion,
    get_conclusions,
    get_review_status,
    get_review_statuses,
    summarize_builds,
)
from shotdiff.jobs.job_status import JobStatus
from shotdiff.models.entities import Conclusion, ReviewStatus


class TestGetConclusions:
    """Tests for the stable / diffDetected verdict."""

    def test_null_for_uncompleted_builds(self, make_diff):
        statuses = [JobStatus.PENDING, JobStatus.PROGRESS, JobStatus.ERROR,
                    JobStatus.ABORTED, JobStatus.EXPIRED]
        diffs = [[make_diff(score=1.0)] for _ in statuses]
        assert get_conclusions(diffs, statuses) == [None] * 5

    def test_stable_when_empty(self):
        assert get_conclusions([[]], [JobStatus.COMPLETE]) == [Conclusion.STABLE]

    def test_stable_when_no_diff_detected(self, make_diff):
        diffs = [make_diff(), make_diff(score=0)]
        assert get_conclusion(JobStatus.COMPLETE, diffs) == Conclusion.STABLE

    def test_diff_detected(self, make_diff):
        diffs = [make_diff(), make_diff(score=1.3)]
        assert get_conclusion(JobStatus.COMPLETE, diffs) == Conclusion.DIFF_DETECTED
        assert get_conclusion(JobStatus.COMPLETE, diffs) == "diffDetected"

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            get_conclusions([[]], [])


class TestGetReviewStatuses:
    """Tests for the accepted / rejected verdict."""

    def test_null_for_uncompleted_and_stable(self, make_diff):
        diffs = [[make_diff(score=0.4, validation_status="accepted")]] * 2
        assert get_review_statuses(diffs, [None, Conclusion.STABLE]) == [None, None]

    def test_accepted_when_all_accepted(self, make_diff):
        diffs = [
            make_diff(score=1.3, validation_status="accepted"),
            make_diff(score=0.4, validation_status="accepted"),
        ]
        assert get_review_status(Conclusion.DIFF_DETECTED, diffs) == ReviewStatus.ACCEPTED

    def test_rejected_when_one_rejected(self, make_diff):
        diffs = [
            make_diff(score=1.3, validation_status="accepted"),
            make_diff(score=0.4, validation_status="rejected"),
        ]
        assert get_review_status(Conclusion.DIFF_DETECTED, diffs) == ReviewStatus.REJECTED

    @pytest.mark.parametrize("other", ["", "unknown", None])
    def test_null_when_undecided(self, make_diff, other):
        diffs = [
            make_diff(score=1.3, validation_status="accepted"),
            make_diff(score=0.4, validation_status=other),
        ]
        assert get_review_status(Conclusion.DIFF_DETECTED, diffs) is None

    def test_only_changed_diffs_count(self, make_diff):
        diffs = [
            make_diff(score=0.4, validation_status="accepted"),
            make_diff(score=0, validation_status="rejected"),
            make_diff(score=None, validation_status="unknown"),
        ]
        assert get_review_status(Conclusion.DIFF_DETECTED, diffs) == ReviewStatus.ACCEPTED


class TestSummarizeBuilds:
    """Tests for the three-phase bulk evaluation."""

    def test_preserves_order_and_chains_phases(self, make_build, make_diff, now):
        pending = make_build(JobStatus.PENDING)
        stable = make_build(JobStatus.COMPLETE)
        accepted = make_build(JobStatus.COMPLETE, number=7)
        diffs = {
            stable.id: [make_diff(stable.id, score=0)],
            accepted.id: [make_diff(accepted.id, score=0.2, validation_status="accepted")],
        }
        summaries = summarize_builds(
            [accepted, pending, stable], diffs, now=now,
            url_for=lambda b: f"https://app/builds/{b.number}",
        )
        assert [s.build_id for s in summaries] == [accepted.id, pending.id, stable.id]
        assert [s.status for s in summaries] == [
            JobStatus.COMPLETE, JobStatus.PENDING, JobStatus.COMPLETE,
        ]
        assert [s.conclusion for s in summaries] == [
            Conclusion.DIFF_DETECTED, None, Conclusion.STABLE,
        ]
        assert [s.review_status for s in summaries] == [ReviewStatus.ACCEPTED, None, None]
        assert summaries[0].url == "https://app/builds/7"
