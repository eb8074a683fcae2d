"""Diff engine — per-pixel comparison of a candidate screenshot against its golden image."""

from __future__ import annotations

import io
import logging
from functools import reduce

from PIL import Image, ImageChops, ImageEnhance

from screentest.models.result import CapturedImage, DiffResult

logger = logging.getLogger(__name__)

DIFF_COLOR = (255, 0, 0)
BACKGROUND_BRIGHTNESS = 0.35


def difference_mask(golden: Image.Image, candidate: Image.Image, pixel_threshold: int = 0) -> Image.Image:
    """Return an "L" mask that is 255 where a pixel's largest channel delta exceeds the threshold.

    Both images must already share mode and size.
    """
    delta = ImageChops.difference(golden, candidate)
    distance = reduce(ImageChops.lighter, delta.split())
    return distance.point(lambda v: 255 if v > pixel_threshold else 0)


def render_diff(candidate: Image.Image, mask: Image.Image) -> Image.Image:
    """Paint differing pixels over a dimmed grayscale copy of the candidate."""
    background = candidate.convert("L").convert("RGB")
    background = ImageEnhance.Brightness(background).enhance(BACKGROUND_BRIGHTNESS)
    background.paste(DIFF_COLOR, (0, 0) + background.size, mask)
    return background


def _encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def compare(
    golden: CapturedImage,
    candidate: CapturedImage,
    tolerance: float = 0.0,
    pixel_threshold: int = 0,
) -> DiffResult:
    """Compare two captures and return the verdict.

    The score is the fraction of pixels whose distance exceeds
    ``pixel_threshold``; the comparison passes iff ``score <= tolerance``.
    Images of different sizes fail with the maximum score without any
    pixel comparison.
    """
    ids = {
        "golden_id": str(golden.key),
        "candidate_id": str(candidate.key),
        "golden_size": golden.size,
        "candidate_size": candidate.size,
        "tolerance": tolerance,
    }
    if golden.size != candidate.size:
        logger.debug("Dimension mismatch for %s: %s vs %s", candidate.key, golden.size, candidate.size)
        return DiffResult(passed=False, score=1.0, dimension_mismatch=True, **ids)

    total = golden.width * golden.height
    if total == 0:
        return DiffResult(passed=True, score=0.0, **ids)

    want = golden.to_image().convert("RGBA")
    got = candidate.to_image().convert("RGBA")
    mask = difference_mask(want, got, pixel_threshold)
    differing = mask.histogram()[255]
    score = differing / total
    passed = score <= tolerance

    diff_image = None
    if not passed:
        diff_image = _encode_png(render_diff(got, mask))

    logger.debug("Compared %s: %d/%d pixels differ (score=%.6f, tolerance=%.6f)",
                 candidate.key, differing, total, score, tolerance)
    return DiffResult(
        passed=passed,
        score=score,
        differing_pixels=differing,
        total_pixels=total,
        diff_image=diff_image,
        **ids,
    )
