"""Golden image store — reads and atomically replaces accepted reference screenshots."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from PIL import UnidentifiedImageError

from screentest.errors import ConfigError, StoreError
from screentest.models.result import CapturedImage, GoldenKey
from screentest.url_utils import local_path_from_location

logger = logging.getLogger(__name__)


class GoldenStore(ABC):
    """Keyed storage of golden images. One image per key; no caching."""

    @abstractmethod
    def get(self, key: GoldenKey) -> tuple[CapturedImage | None, bool]:
        """Return ``(image, True)``, or ``(None, False)`` when no golden exists."""

    @abstractmethod
    def put(self, key: GoldenKey, image: CapturedImage) -> None:
        """Replace the golden image for ``key`` as a whole."""


class FileGoldenStore(GoldenStore):
    """Golden images as PNG files in a local directory, one file per key."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, key: GoldenKey) -> Path:
        return self.root / key.filename

    def get(self, key: GoldenKey) -> tuple[CapturedImage | None, bool]:
        path = self.path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.debug("No golden image for %s at %s", key, path)
            return None, False
        except OSError as e:
            raise StoreError(f"reading golden image {path}: {e}") from e

        try:
            image = CapturedImage.from_png(data, test_id=key.test_id, label=key.label)
        except (UnidentifiedImageError, OSError) as e:
            raise StoreError(f"decoding golden image {path}: {e}") from e
        return image, True

    def put(self, key: GoldenKey, image: CapturedImage) -> None:
        dest = self.path_for(key)
        tmp_name = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            # Write next to the destination so the rename stays on one filesystem.
            with tempfile.NamedTemporaryFile(
                dir=dest.parent, prefix=f".{key.stem}.", suffix=".tmp", delete=False,
            ) as f:
                tmp_name = f.name
                f.write(image.data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, dest)
            tmp_name = None
        except OSError as e:
            raise StoreError(f"writing golden image {dest}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.info("Stored golden for %s (%dx%d)", key, image.width, image.height)
        logger.debug("  %s sha256=%s", dest, hashlib.sha256(image.data).hexdigest())


def open_golden_store(location: str) -> GoldenStore:
    """Resolve a golden location (plain path or ``file://`` URL) to a store."""
    if not location:
        raise ConfigError("no golden image location given (use --want)")
    try:
        path = local_path_from_location(location)
    except ValueError as e:
        raise ConfigError(str(e)) from e
    return FileGoldenStore(path)
