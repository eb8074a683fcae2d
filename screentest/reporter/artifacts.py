"""Artifact writer — saves got/want/diff images for failing captures."""

from __future__ import annotations

import logging
from pathlib import Path

from screentest.models.result import CapturedImage, DiffResult, GoldenKey

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Writes comparison artifacts into the run's output directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def write(
        self,
        key: GoldenKey,
        golden: CapturedImage,
        candidate: CapturedImage,
        diff: DiffResult,
    ) -> dict[str, str]:
        """Write the artifacts for one failing capture and return kind -> file path."""
        files = {
            "got": candidate.data,
            "want": golden.data,
        }
        if diff.diff_image:
            files["diff"] = diff.diff_image

        written = {}
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            for kind, data in files.items():
                path = self.output_dir / f"{key.stem}.{kind}.png"
                path.write_bytes(data)
                written[kind] = str(path)
        except OSError as e:
            logger.warning("Writing artifacts for %s failed: %s", key, e)
        return written
