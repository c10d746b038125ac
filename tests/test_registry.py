"""Tests for the JSON build registry."""

import json
from datetime import timedelta

import pytest

from shotdiff.errors import EntityNotFound
from shotdiff.jobs.job_status import JobStatus
from shotdiff.models.entities import Build, ScreenshotBucket
from shotdiff.store.registry import BuildRegistryManager


def _bucket(**kwargs) -> ScreenshotBucket:
    kwargs.setdefault("name", "default")
    kwargs.setdefault("branch", "main")
    kwargs.setdefault("commit", "abc123")
    kwargs.setdefault("repository_id", "acme/web")
    return ScreenshotBucket(**kwargs)


class TestBuildNumbers:
    """Per-repository build numbering."""

    def test_numbers_start_at_one_per_repository(self, registry):
        first = registry.create_build(Build(repository_id="acme/web", compare_screenshot_bucket_id="b1"))
        second = registry.create_build(Build(repository_id="acme/web", compare_screenshot_bucket_id="b2"))
        other = registry.create_build(Build(repository_id="acme/api", compare_screenshot_bucket_id="b3"))
        assert (first.number, second.number, other.number) == (1, 2, 1)

    def test_explicit_number_is_kept(self, registry):
        build = registry.create_build(
            Build(repository_id="acme/web", number=0, compare_screenshot_bucket_id="b1")
        )
        assert build.number == 0
        assert registry.next_build_number("acme/web") == 1

    def test_patch_never_changes_number(self, registry):
        build = registry.create_build(Build(repository_id="acme/web", compare_screenshot_bucket_id="b1"))
        patched = registry.patch_build(build.id, number=42, job_status=JobStatus.PROGRESS)
        assert patched.number == 1
        assert patched.job_status == JobStatus.PROGRESS

    def test_patch_returns_new_snapshot(self, registry):
        build = registry.create_build(Build(repository_id="acme/web", compare_screenshot_bucket_id="b1"))
        registry.patch_build(build.id, job_status=JobStatus.ABORTED)
        assert build.job_status == JobStatus.PENDING
        assert registry.get_build(build.id).job_status == JobStatus.ABORTED


class TestPersistence:
    """Loading and saving the registry file."""

    def test_round_trip_through_disk(self, registry, config):
        bucket = registry.create_bucket(_bucket())
        build = registry.create_build(
            Build(repository_id="acme/web", compare_screenshot_bucket_id=bucket.id)
        )
        reloaded = BuildRegistryManager(config.registry_path)
        assert reloaded.get_build(build.id) == build
        assert reloaded.get_bucket(bucket.id) == bucket

    def test_saved_file_is_json(self, registry, config):
        registry.create_bucket(_bucket())
        data = json.loads(config.registry_path.read_text())
        assert data["last_updated"]
        assert len(data["buckets"]) == 1

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text("{not json")
        manager = BuildRegistryManager(path)
        assert manager.registry.builds == {}

    def test_missing_entities(self, registry):
        with pytest.raises(EntityNotFound):
            registry.get_build("nope")
        with pytest.raises(EntityNotFound):
            registry.get_diff("nope")


class TestQueries:
    def test_latest_complete_bucket(self, registry, now):
        old = registry.create_bucket(_bucket(complete=True, created_at=now - timedelta(days=2)))
        recent = registry.create_bucket(_bucket(complete=True, created_at=now - timedelta(days=1)))
        registry.create_bucket(_bucket(complete=False, created_at=now))
        registry.create_bucket(_bucket(complete=True, branch="feature", created_at=now))
        registry.create_bucket(_bucket(complete=True, name="mobile", created_at=now))

        found = registry.latest_complete_bucket("acme/web", "default", "main")
        assert found.id == recent.id
        found = registry.latest_complete_bucket("acme/web", "default", "main", exclude_id=recent.id)
        assert found.id == old.id
        assert registry.latest_complete_bucket("acme/api", "default", "main") is None

    def test_diffs_grouped_by_build(self, registry, make_diff):
        registry.create_diffs([make_diff("b1"), make_diff("b2"), make_diff("b1")])
        grouped = registry.diffs_by_build(["b1", "b2", "b3"])
        assert [len(grouped[k]) for k in ("b1", "b2", "b3")] == [2, 1, 0]

    def test_find_build_by_external_id(self, registry):
        build = registry.create_build(Build(
            repository_id="acme/web", compare_screenshot_bucket_id="b1", external_id="nonce-1",
        ))
        assert registry.find_build_by_external_id("acme/web", "nonce-1").id == build.id
        assert registry.find_build_by_external_id("acme/api", "nonce-1") is None
