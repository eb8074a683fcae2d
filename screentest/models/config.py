"""Configuration models for screentest runs."""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def default_concurrency() -> int:
    return max(1, ((os.cpu_count() or 1) + 1) // 2)


def parse_key_value_pairs(text: str, what: str = "pair") -> dict[str, str]:
    """Parse ``"K1:V1,K2:V2"`` into a dict; whitespace around keys and values is dropped."""
    result: dict[str, str] = {}
    if not text or not text.strip():
        return result
    for pair in text.split(","):
        key, sep, value = pair.partition(":")
        if not sep or not key.strip():
            raise ValueError(f"invalid {what} {pair!r}, want NAME:VALUE")
        result[key.strip()] = value.strip()
    return result


class ViewportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = 1280
    height: int = 720

    @field_validator("width", "height")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("viewport dimensions must be positive")
        return v


class ScreentestConfig(BaseModel):
    # Targets
    test_url: str = ""
    want_url: str = ""  # golden image location: path or file:// URL
    output_url: str = ""  # where diff artifacts and reports go

    # Mode
    update: bool = False
    run_filter: Optional[str] = None  # regexp matched against test ids

    # Script templating
    vars: dict[str, str] = Field(default_factory=dict)

    # Browser
    debugger_url: Optional[str] = None
    headless: bool = True
    headers: dict[str, str] = Field(default_factory=dict)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)

    # Execution limits
    max_concurrency: int = Field(default_factory=default_concurrency)
    action_timeout_seconds: float = 30.0
    test_timeout_seconds: float = 300.0

    # Comparison
    tolerance: float = 0.0  # fraction of pixels allowed to differ
    pixel_threshold: int = 0  # max channel delta tolerated per pixel, 0-255

    # Reporting
    report_formats: list[str] = Field(default_factory=lambda: ["json"])

    @field_validator("max_concurrency")
    @classmethod
    def check_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {v}")
        return v

    @field_validator("tolerance")
    @classmethod
    def check_tolerance(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"tolerance must be within [0, 1], got {v}")
        return v

    @field_validator("pixel_threshold")
    @classmethod
    def check_pixel_threshold(cls, v: int) -> int:
        if not 0 <= v <= 255:
            raise ValueError(f"pixel_threshold must be within [0, 255], got {v}")
        return v

    @field_validator("action_timeout_seconds", "test_timeout_seconds")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("run_filter")
    @classmethod
    def check_run_filter(cls, v: Optional[str]) -> Optional[str]:
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"invalid run filter {v!r}: {e}") from e
        return v or None

    def matches(self, test_id: str) -> bool:
        """Whether a test id passes the name filter."""
        if not self.run_filter:
            return True
        return re.search(self.run_filter, test_id) is not None

    @property
    def output_location(self) -> str:
        return self.output_url or str(Path(tempfile.gettempdir()) / "screentest")

    @classmethod
    def load(cls, path: str | Path) -> "ScreentestConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
