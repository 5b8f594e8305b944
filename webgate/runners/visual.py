"""Screenshot baselines and pixel diffs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from PIL import Image, ImageChops

from webgate.fsutil import copy_file, ensure_dir

logger = logging.getLogger(__name__)

PIXEL_THRESHOLD = 0.1
DIFF_COLOR = (255, 0, 64, 255)


def calculate_mismatch_ratio(diff_pixels: int, width: int, height: int) -> float:
    if width == 0 or height == 0:
        return 0.0
    return diff_pixels / (width * height)


def _normalize(image: Image.Image, width: int, height: int) -> Image.Image:
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    canvas.paste(image.convert("RGBA"), (0, 0))
    return canvas


def compare_images(baseline_path: Path, current_path: Path, diff_path: Path) -> float:
    """Write a diff overlay and return the share of pixels that differ beyond PIXEL_THRESHOLD."""
    with Image.open(baseline_path) as baseline_raw, Image.open(current_path) as current_raw:
        width = max(baseline_raw.width, current_raw.width)
        height = max(baseline_raw.height, current_raw.height)
        baseline = _normalize(baseline_raw, width, height)
        current = _normalize(current_raw, width, height)

    difference = ImageChops.difference(baseline, current)
    channel_max = difference.split()[0]
    for band in difference.split()[1:]:
        channel_max = ImageChops.lighter(channel_max, band)
    cutoff = int(PIXEL_THRESHOLD * 255)
    mask = channel_max.point(lambda value: 255 if value > cutoff else 0)
    diff_pixels = mask.histogram()[255]

    faded = Image.blend(baseline, Image.new("RGBA", (width, height), (255, 255, 255, 255)), 0.7)
    overlay = Image.composite(Image.new("RGBA", (width, height), DIFF_COLOR), faded, mask)
    ensure_dir(diff_path.parent)
    overlay.save(diff_path, format="PNG")

    return calculate_mismatch_ratio(diff_pixels, width, height)


def run_visual_diff(
    screenshots: list[dict[str, Any]],
    baseline_dir: Path,
    diff_dir: Path,
    set_baseline: bool,
    threshold: float,
) -> dict[str, Any]:
    ensure_dir(baseline_dir)
    ensure_dir(diff_dir)

    results: list[dict[str, Any]] = []
    failed = False
    max_mismatch_ratio = 0.0

    for shot in screenshots:
        current_path = Path(shot["path"])
        baseline_path = baseline_dir / current_path.name
        diff_path = diff_dir / current_path.name

        baseline_exists = baseline_path.exists()
        if not baseline_exists or set_baseline:
            status = "baseline_updated" if baseline_exists else "baseline_created"
            logger.debug("Writing baseline for %s (%s)", shot["name"], status)
            copy_file(current_path, baseline_path)
            results.append(
                {
                    "name": shot["name"],
                    "currentPath": str(current_path),
                    "baselinePath": str(baseline_path),
                    "diffPath": None,
                    "mismatchRatio": None,
                    "status": status,
                }
            )
            continue

        mismatch_ratio = compare_images(baseline_path, current_path, diff_path)
        max_mismatch_ratio = max(max_mismatch_ratio, mismatch_ratio)
        if mismatch_ratio > threshold:
            failed = True
        results.append(
            {
                "name": shot["name"],
                "currentPath": str(current_path),
                "baselinePath": str(baseline_path),
                "diffPath": str(diff_path),
                "mismatchRatio": mismatch_ratio,
                "status": "diffed",
            }
        )

    return {
        "results": results,
        "threshold": threshold,
        "failed": failed,
        "maxMismatchRatio": max_mismatch_ratio,
    }
