"""Build registry: persists builds, buckets, screenshots and diffs to a JSON file."""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Iterable, Optional

from shotdiff.errors import EntityNotFound
from shotdiff.models.entities import Build, Screenshot, ScreenshotBucket, ScreenshotDiff
from shotdiff.models.registry import BuildRegistry

logger = logging.getLogger(__name__)


class BuildRegistryManager:
    """Manages the entity registry JSON file.

    The registry is held in memory and written back after every mutation.
    Mutations are serialized with a re-entrant lock so worker threads can
    patch diffs concurrently.
    """

    def __init__(self, registry_path: Path):
        self.path = Path(registry_path)
        self._lock = threading.RLock()
        self.registry = self.load()

    def load(self) -> BuildRegistry:
        """Load registry from disk, or create a new one."""
        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = json.load(f)
                return BuildRegistry(**data)
            except Exception as e:
                logger.warning("Failed to load build registry: %s. Creating new.", e)
        return BuildRegistry()

    def save(self, registry: BuildRegistry | None = None) -> None:
        """Persist registry to disk."""
        with self._lock:
            if registry is None:
                registry = self.registry
            self.path.parent.mkdir(parents=True, exist_ok=True)
            registry.last_updated = time.strftime("%Y-%m-%dT%H:%M:%SZ")
            with open(self.path, "w") as f:
                json.dump(registry.model_dump(mode="json"), f, indent=2)
            logger.debug("Saved build registry to %s", self.path)

    # -- buckets -----------------------------------------------------------

    def create_bucket(self, bucket: ScreenshotBucket) -> ScreenshotBucket:
        with self._lock:
            self.registry.buckets[bucket.id] = bucket
            self.save()
        return bucket

    def get_bucket(self, bucket_id: str) -> ScreenshotBucket:
        bucket = self.registry.buckets.get(bucket_id)
        if bucket is None:
            raise EntityNotFound("ScreenshotBucket", bucket_id)
        return bucket

    def patch_bucket(self, bucket_id: str, **changes) -> ScreenshotBucket:
        with self._lock:
            bucket = self.get_bucket(bucket_id).patched(**changes)
            self.registry.buckets[bucket_id] = bucket
            self.save()
        return bucket

    def latest_complete_bucket(
        self,
        repository_id: str,
        name: str,
        branch: str,
        exclude_id: str | None = None,
    ) -> Optional[ScreenshotBucket]:
        """Most recent complete bucket with this name on ``branch``."""
        with self._lock:
            candidates = [
                b for b in self.registry.buckets.values()
                if b.repository_id == repository_id
                and b.name == name
                and b.branch == branch
                and b.complete
                and b.id != exclude_id
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda b: b.created_at)

    # -- screenshots -------------------------------------------------------

    def add_screenshots(self, screenshots: Iterable[Screenshot]) -> list[Screenshot]:
        screenshots = list(screenshots)
        with self._lock:
            for screenshot in screenshots:
                self.registry.screenshots[screenshot.id] = screenshot
            self.save()
        return screenshots

    def get_screenshot(self, screenshot_id: str) -> Screenshot:
        screenshot = self.registry.screenshots.get(screenshot_id)
        if screenshot is None:
            raise EntityNotFound("Screenshot", screenshot_id)
        return screenshot

    def screenshots_for_bucket(self, bucket_id: str) -> list[Screenshot]:
        with self._lock:
            return [s for s in self.registry.screenshots.values() if s.bucket_id == bucket_id]

    # -- builds ------------------------------------------------------------

    def next_build_number(self, repository_id: str) -> int:
        with self._lock:
            numbers = [
                b.number for b in self.registry.builds.values()
                if b.repository_id == repository_id and b.number is not None
            ]
        return max(numbers, default=0) + 1

    def create_build(self, build: Build) -> Build:
        """Insert a build, assigning the next per-repository number unless one is given."""
        with self._lock:
            if build.number is None:
                build = build.patched(number=self.next_build_number(build.repository_id))
            self.registry.builds[build.id] = build
            self.save()
        logger.info("Created build #%d for %s", build.number, build.repository_id)
        return build

    def get_build(self, build_id: str) -> Build:
        build = self.registry.builds.get(build_id)
        if build is None:
            raise EntityNotFound("Build", build_id)
        return build

    def patch_build(self, build_id: str, **changes) -> Build:
        """Apply changes to a build. The build number is never changed by a patch."""
        if changes.pop("number", None) is not None:
            logger.debug("Ignoring number change on build %s", build_id)
        with self._lock:
            build = self.get_build(build_id).patched(**changes)
            self.registry.builds[build_id] = build
            self.save()
        return build

    def list_builds(self, repository_id: str | None = None) -> list[Build]:
        with self._lock:
            return [
                b for b in self.registry.builds.values()
                if repository_id is None or b.repository_id == repository_id
            ]

    def find_build_by_external_id(self, repository_id: str, external_id: str) -> Optional[Build]:
        with self._lock:
            for build in self.registry.builds.values():
                if build.repository_id == repository_id and build.external_id == external_id:
                    return build
        return None

    # -- diffs -------------------------------------------------------------

    def create_diffs(self, diffs: Iterable[ScreenshotDiff]) -> list[ScreenshotDiff]:
        diffs = list(diffs)
        with self._lock:
            for diff in diffs:
                self.registry.diffs[diff.id] = diff
            self.save()
        return diffs

    def get_diff(self, diff_id: str) -> ScreenshotDiff:
        diff = self.registry.diffs.get(diff_id)
        if diff is None:
            raise EntityNotFound("ScreenshotDiff", diff_id)
        return diff

    def patch_diff(self, diff_id: str, **changes) -> ScreenshotDiff:
        with self._lock:
            diff = self.get_diff(diff_id).patched(**changes)
            self.registry.diffs[diff_id] = diff
            self.save()
        return diff

    def diffs_for_build(self, build_id: str) -> list[ScreenshotDiff]:
        with self._lock:
            return [d for d in self.registry.diffs.values() if d.build_id == build_id]

    def diffs_by_build(self, build_ids: Iterable[str]) -> dict[str, list[ScreenshotDiff]]:
        """Group diffs of many builds in a single pass."""
        grouped: dict[str, list[ScreenshotDiff]] = {build_id: [] for build_id in build_ids}
        with self._lock:
            for diff in self.registry.diffs.values():
                if diff.build_id in grouped:
                    grouped[diff.build_id].append(diff)
        return grouped
