"""Image diff engine: pixel comparison of two screenshots producing a score and a diff mask."""

from __future__ import annotations

import filecmp
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from shotdiff.errors import ImageDiffFailed, ImageNotFound

logger = logging.getLogger(__name__)

MASK_COLOR = (255, 0, 0, 255)


@dataclass(frozen=True)
class ImageDiffResult:
    """Outcome of comparing two images.

    ``width``/``height`` are the maximum of both images' dimensions.
    ``diff_path`` points to a temporary PNG mask owned by the caller, or is
    None when the images match.
    """

    width: int
    height: int
    diff_path: Path | None
    score: float


# Every way Pillow can refuse a file
_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def _load_rgba(path: Path) -> np.ndarray:
    if not path.exists():
        raise ImageNotFound(path)
    try:
        with Image.open(path) as image:
            return np.asarray(image.convert("RGBA"), dtype=np.int16)
    except _DECODE_ERRORS as e:
        raise ImageDiffFailed(path, str(e)) from e


def get_max_dimensions(paths: list[Path]) -> tuple[int, int]:
    """Return (width, height), each the maximum over the given images."""
    widths, heights = [], []
    for path in paths:
        path = Path(path)
        if not path.exists():
            raise ImageNotFound(path)
        try:
            with Image.open(path) as image:
                widths.append(image.width)
                heights.append(image.height)
        except _DECODE_ERRORS as e:
            raise ImageDiffFailed(path, str(e)) from e
    return max(widths), max(heights)


def _pixel_mask(base: np.ndarray, compare: np.ndarray, tolerance: int) -> np.ndarray:
    return np.any(np.abs(base - compare) > tolerance, axis=2)


def _layout_mask(
    base: np.ndarray, compare: np.ndarray, width: int, height: int, tolerance: int,
) -> np.ndarray:
    # Everything outside the overlapping area belongs to only one image
    mask = np.ones((height, width), dtype=bool)
    overlap_h = min(base.shape[0], compare.shape[0])
    overlap_w = min(base.shape[1], compare.shape[1])
    mask[:overlap_h, :overlap_w] = _pixel_mask(
        base[:overlap_h, :overlap_w], compare[:overlap_h, :overlap_w], tolerance,
    )
    return mask


def _write_mask(mask: np.ndarray, output_dir: Path | None) -> Path:
    rgba = np.zeros((*mask.shape, 4), dtype=np.uint8)
    rgba[mask] = MASK_COLOR
    fd, name = tempfile.mkstemp(suffix=".png", dir=output_dir)
    os.close(fd)
    Image.fromarray(rgba).save(name, format="PNG")
    return Path(name)


def diff_images(
    base_path: str | Path,
    compare_path: str | Path,
    channel_tolerance: int = 0,
    output_dir: Path | None = None,
) -> ImageDiffResult:
    """Compare two images pixel by pixel.

    - identical images score 0 and produce no mask;
    - images of different dimensions score 1 (layout difference), the mask
      covering the max-dimension canvas is still written;
    - otherwise the score is the fraction of pixels where some RGBA channel
      differs by more than ``channel_tolerance``.

    Raises ImageNotFound when a file is missing and ImageDiffFailed when a
    file cannot be decoded.
    """
    base_path, compare_path = Path(base_path), Path(compare_path)
    base = _load_rgba(base_path)
    compare = _load_rgba(compare_path)
    width = max(base.shape[1], compare.shape[1])
    height = max(base.shape[0], compare.shape[0])

    if filecmp.cmp(base_path, compare_path, shallow=False):
        return ImageDiffResult(width=width, height=height, diff_path=None, score=0.0)

    if base.shape != compare.shape:
        logger.debug(
            "Layout difference: %dx%d vs %dx%d",
            base.shape[1], base.shape[0], compare.shape[1], compare.shape[0],
        )
        mask = _layout_mask(base, compare, width, height, channel_tolerance)
        return ImageDiffResult(
            width=width, height=height, diff_path=_write_mask(mask, output_dir), score=1.0,
        )

    mask = _pixel_mask(base, compare, channel_tolerance)
    changed = int(np.count_nonzero(mask))
    if changed == 0:
        return ImageDiffResult(width=width, height=height, diff_path=None, score=0.0)

    score = changed / mask.size
    logger.debug("Pixel diff: %d/%d pixels (%.4f)", changed, mask.size, score)
    return ImageDiffResult(
        width=width, height=height, diff_path=_write_mask(mask, output_dir), score=score,
    )
