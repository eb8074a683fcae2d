"""Result data structures produced by the runner and consumed by reporters."""

from __future__ import annotations

import hashlib
import io
from enum import Enum
from typing import Optional

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from screentest.url_utils import slugify


class TestStatus(str, Enum):
    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"


class GoldenKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_id: str
    label: str

    @property
    def digest(self) -> str:
        raw = f"{self.test_id}\0{self.label}".encode("utf-8")
        return hashlib.sha256(raw).hexdigest()[:10]

    @property
    def stem(self) -> str:
        """Readable slug plus a digest of the raw key; slugs alone are lossy."""
        return f"{slugify(self.test_id)}.{slugify(self.label)}.{self.digest}"

    @property
    def filename(self) -> str:
        return f"{self.stem}.png"

    def __str__(self) -> str:
        return f"{self.test_id}[{self.label}]"


class CapturedImage(BaseModel):
    """An encoded screenshot plus the identity of the capture that produced it."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    width: int
    height: int
    format: str = "png"
    test_id: str = ""
    label: str = ""

    @classmethod
    def from_png(cls, data: bytes, test_id: str = "", label: str = "") -> "CapturedImage":
        """Build a CapturedImage from encoded bytes, reading dimensions with Pillow."""
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            fmt = (img.format or "png").lower()
        return cls(data=data, width=width, height=height, format=fmt, test_id=test_id, label=label)

    @classmethod
    def from_image(cls, img: Image.Image, test_id: str = "", label: str = "") -> "CapturedImage":
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return cls(data=buf.getvalue(), width=img.width, height=img.height,
                   test_id=test_id, label=label)

    @property
    def key(self) -> GoldenKey:
        return GoldenKey(test_id=self.test_id, label=self.label)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def to_image(self) -> Image.Image:
        img = Image.open(io.BytesIO(self.data))
        img.load()
        return img


class DiffResult(BaseModel):
    passed: bool
    score: float  # fraction of differing pixels; 1.0 on dimension mismatch
    tolerance: float = 0.0
    differing_pixels: int = 0
    total_pixels: int = 0
    dimension_mismatch: bool = False
    golden_size: tuple[int, int] = (0, 0)
    candidate_size: tuple[int, int] = (0, 0)
    diff_image: Optional[bytes] = Field(default=None, repr=False, exclude=True)
    golden_id: str = ""
    candidate_id: str = ""

    @property
    def summary(self) -> str:
        if self.dimension_mismatch:
            return (f"dimension mismatch: golden {self.golden_size[0]}x{self.golden_size[1]}, "
                    f"got {self.candidate_size[0]}x{self.candidate_size[1]}")
        return f"pixel diff {self.score:.4%} (tolerance {self.tolerance:.4%})"


class CaptureResult(BaseModel):
    label: str
    status: str = "passed"  # passed, failed, errored, updated
    diff: Optional[DiffResult] = None
    error: Optional[str] = None
    artifacts: dict[str, str] = Field(default_factory=dict)


class TestResult(BaseModel):
    __test__ = False

    test_id: str
    name: str = ""
    script: str = ""
    status: TestStatus = TestStatus.PENDING
    captures: list[CaptureResult] = Field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def failure_reason(self) -> Optional[str]:
        if self.error:
            return self.error
        reasons = []
        for c in self.captures:
            if c.status == "errored":
                reasons.append(f"{c.label}: {c.error}")
            elif c.status == "failed" and c.diff is not None:
                reasons.append(f"{c.label}: {c.diff.summary}")
        return "; ".join(reasons) if reasons else None


class ScriptError(BaseModel):
    script: str
    line: int = 0
    message: str


class RunOutcome(BaseModel):
    run_id: str
    started_at: str = ""
    completed_at: str = ""
    update: bool = False
    duration_seconds: float = 0.0
    test_results: list[TestResult] = Field(default_factory=list)
    script_errors: list[ScriptError] = Field(default_factory=list)

    def _count(self, status: TestStatus) -> int:
        return sum(1 for r in self.test_results if r.status == status)

    @property
    def total(self) -> int:
        return len(self.test_results)

    @property
    def passed(self) -> int:
        return self._count(TestStatus.PASSED)

    @property
    def failed(self) -> int:
        return self._count(TestStatus.FAILED)

    @property
    def errored(self) -> int:
        return self._count(TestStatus.ERRORED)

    @property
    def ok(self) -> bool:
        return not self.script_errors and all(
            r.status == TestStatus.PASSED for r in self.test_results
        )
