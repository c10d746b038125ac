"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from shotdiff.jobs.job_status import JobStatus
from shotdiff.models.config import ShotDiffConfig
from shotdiff.models.entities import Build, ScreenshotDiff
from shotdiff.orchestrator import Orchestrator
from shotdiff.store.assets import LocalAssetStore
from shotdiff.store.registry import BuildRegistryManager


NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> ShotDiffConfig:
    """Create a test configuration rooted in a temporary directory."""
    return ShotDiffConfig(
        data_dir=str(tmp_path / ".shotdiff"),
        public_url_base="https://assets.example.com",
        report_output_dir=str(tmp_path / "reports"),
    )


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def registry(config: ShotDiffConfig) -> BuildRegistryManager:
    return BuildRegistryManager(config.registry_path)


@pytest.fixture
def store(config: ShotDiffConfig) -> LocalAssetStore:
    return LocalAssetStore(config.assets_dir, config.public_url_base)


@pytest.fixture
def orchestrator(
    config: ShotDiffConfig, registry: BuildRegistryManager, store: LocalAssetStore,
) -> Orchestrator:
    return Orchestrator(config, registry=registry, store=store)


# ============================================================================
# Image Fixtures
# ============================================================================


@pytest.fixture
def make_png(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a solid PNG, optionally with some pixels recolored."""
    images_dir = tmp_path / "images"
    images_dir.mkdir(exist_ok=True)

    def _make(
        name: str,
        size: tuple[int, int] = (10, 10),
        color: tuple[int, ...] = (255, 255, 255),
        pixels: dict[tuple[int, int], tuple[int, ...]] | None = None,
        mode: str = "RGB",
        fmt: str = "PNG",
    ) -> Path:
        image = Image.new(mode, size, color)
        for xy, value in (pixels or {}).items():
            image.putpixel(xy, value)
        path = images_dir / name
        image.save(path, format=fmt)
        return path

    return _make


# ============================================================================
# Entity Fixtures
# ============================================================================


@pytest.fixture
def make_build() -> Callable[..., Build]:
    def _make(job_status: JobStatus = JobStatus.COMPLETE, **kwargs) -> Build:
        kwargs.setdefault("repository_id", "acme/web")
        kwargs.setdefault("compare_screenshot_bucket_id", "compare-bucket")
        kwargs.setdefault("base_screenshot_bucket_id", "base-bucket")
        kwargs.setdefault("created_at", NOW)
        return Build(job_status=job_status, **kwargs)

    return _make


@pytest.fixture
def make_diff() -> Callable[..., ScreenshotDiff]:
    def _make(build_id: str = "build-1", **kwargs) -> ScreenshotDiff:
        kwargs.setdefault("base_screenshot_id", "base-shot")
        kwargs.setdefault("compare_screenshot_id", "compare-shot")
        kwargs.setdefault("job_status", JobStatus.COMPLETE)
        kwargs.setdefault("created_at", NOW)
        return ScreenshotDiff(build_id=build_id, **kwargs)

    return _make


@pytest.fixture
def now() -> datetime:
    """Fixed clock used as creation time of fixture entities."""
    return NOW
