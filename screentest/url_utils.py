"""Shared URL utilities — resolve navigation targets and derive stable file keys."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme) and (bool(parsed.netloc) or parsed.scheme in ("about", "data", "file"))


def resolve_url(base: str, target: str) -> str:
    """Resolve a script navigation target against the base test URL.

    Absolute URLs are returned unchanged. Relative targets are appended to
    ``base`` as a path, keeping any path prefix the base already has.
    """
    if is_absolute_url(target) or not base:
        return target
    return base.rstrip("/") + "/" + target.lstrip("/")


def slugify(value: str) -> str:
    """Turn an identifier into a filesystem-safe name."""
    slug = _UNSAFE_RE.sub("-", value.strip()).strip("-")
    return slug or "_"


def local_path_from_location(location: str) -> str:
    """Return the filesystem path behind a plain path or ``file://`` URL.

    Raises ValueError for any other scheme.
    """
    parsed = urlparse(location)
    if parsed.scheme == "file":
        return (parsed.netloc + parsed.path) if parsed.netloc not in ("", "localhost") else parsed.path
    # Windows drive letters parse as a one-letter scheme.
    if parsed.scheme == "" or len(parsed.scheme) == 1:
        return location
    raise ValueError(f"unsupported location scheme {parsed.scheme!r} in {location!r}")
