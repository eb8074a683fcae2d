"""Pytest configuration and shared fixtures."""

import asyncio
import io
from pathlib import Path

import pytest
from PIL import Image

from screentest.errors import ActionError, SessionError
from screentest.models.config import ScreentestConfig
from screentest.models.result import CapturedImage


def make_png(size=(100, 100), color=(255, 255, 255)) -> bytes:
    """Encode a solid-color RGB image as PNG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def make_capture(size=(100, 100), color=(255, 255, 255), test_id="home:main", label="viewport") -> CapturedImage:
    return CapturedImage.from_png(make_png(size, color), test_id=test_id, label=label)


# ============================================================================
# Fake browser sessions
# ============================================================================


class FakeSession:
    """In-memory stand-in for BrowserSession.

    Screenshots are solid images sized to the current viewport and colored
    by the URL last navigated to, so rendering is fully deterministic.
    """

    def __init__(self, factory: "FakeSessionFactory", number: int):
        self.factory = factory
        self.number = number
        self.slot = -1
        self.broken = False
        self.alive = True
        self.closed = False
        self.resets = 0
        self.calls: list[tuple] = []
        self.url = "about:blank"
        self.viewport = (1280, 720)

    @property
    def is_alive(self) -> bool:
        return self.alive and not self.broken and not self.closed

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self.calls.append(("navigate", url))
        if self.factory.delay:
            await asyncio.sleep(self.factory.delay)
        if url in self.factory.crash_urls:
            self.alive = False
            self.broken = True
            raise SessionError(f"navigate {url}: Target closed")
        if url in self.factory.hang_urls:
            await asyncio.sleep(3600)
        self.url = url

    async def set_viewport(self, width: int, height: int) -> None:
        self.calls.append(("viewport", width, height))
        self.viewport = (width, height)

    async def wait_network_idle(self, timeout_ms: int) -> None:
        self.calls.append(("wait_idle",))

    async def wait_selector(self, selector: str, timeout_ms: int) -> None:
        self.calls.append(("wait_selector", selector))

    async def sleep(self, delay_ms: int) -> None:
        self.calls.append(("sleep", delay_ms))

    async def click(self, selector: str, timeout_ms: int) -> None:
        self.calls.append(("click", selector))

    async def screenshot(self, mode: str, selector, timeout_ms: int) -> bytes:
        self.calls.append(("screenshot", mode, selector))
        color = self.factory.colors.get(self.url, (255, 255, 255))
        return make_png(self.viewport, color)

    async def reset(self) -> None:
        self.resets += 1
        if self.factory.hang_reset:
            await asyncio.sleep(3600)
        if self.factory.fail_reset:
            raise ActionError("reset session: evaluate failed")
        self.url = "about:blank"

    async def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    def __init__(self):
        self.sessions: list[FakeSession] = []
        self.colors: dict[str, tuple[int, int, int]] = {}
        self.crash_urls: set[str] = set()
        self.hang_urls: set[str] = set()
        self.delay = 0.0
        self.fail_create = False
        self.fail_reset = False
        self.hang_reset = False
        self.closed = False

    async def create(self) -> FakeSession:
        if self.fail_create:
            raise SessionError("starting browser session: launch failed")
        session = FakeSession(self, len(self.sessions))
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


# ============================================================================
# Configuration and scripts
# ============================================================================


@pytest.fixture
def screentest_config(tmp_path: Path) -> ScreentestConfig:
    return ScreentestConfig(
        test_url="https://example.com",
        want_url=str(tmp_path / "golden"),
        output_url=str(tmp_path / "out"),
        max_concurrency=2,
        action_timeout_seconds=5,
        test_timeout_seconds=10,
    )


SAMPLE_SCRIPT = """\
# sample checks
viewport 200x100

test homepage
navigate /
wait idle
capture

test about page
navigate {{BASE}}/about
click #menu
wait selector .menu-open
sleep 250ms
capture menu element .menu
capture full fullpage
"""


@pytest.fixture
def sample_script() -> str:
    return SAMPLE_SCRIPT
