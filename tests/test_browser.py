"""Tests for Playwright-backed browser sessions."""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from screentest.errors import ActionError, ActionTimeout, SessionError
from screentest.executor.browser import (
    BrowserSession,
    BrowserSessionFactory,
    create_context,
    launch_browser,
    translate_error,
)
from screentest.models.config import ScreentestConfig


def _make_session(connected: bool = True):
    page = AsyncMock()
    page.is_closed = Mock(return_value=False)
    page.locator = Mock()
    context = AsyncMock()
    context.browser = Mock()
    context.browser.is_connected = Mock(return_value=connected)
    return BrowserSession(context, page), page, context


class TestTranslateError:
    def test_timeout(self):
        err = translate_error(PlaywrightTimeoutError("Timeout 30000ms exceeded."), "click #x")
        assert isinstance(err, ActionTimeout)
        assert "click #x" in str(err)

    def test_closed_target(self):
        err = translate_error(PlaywrightError("Target page, context or browser has been closed"), "navigate")
        assert isinstance(err, SessionError)

    def test_other_errors(self):
        err = translate_error(PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope"), "navigate")
        assert type(err) is ActionError
        assert "ERR_NAME_NOT_RESOLVED" in str(err)


class TestBrowserSession:
    @pytest.mark.asyncio
    async def test_navigate(self):
        session, page, _ = _make_session()
        page.goto.return_value = Mock(status=200)
        await session.navigate("https://example.com/", 5000)
        page.goto.assert_called_once_with("https://example.com/", wait_until="load", timeout=5000)

    @pytest.mark.asyncio
    async def test_navigate_timeout_becomes_action_timeout(self):
        session, page, _ = _make_session()
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded.")
        with pytest.raises(ActionTimeout):
            await session.navigate("https://example.com/", 5000)
        assert session.broken is False

    @pytest.mark.asyncio
    async def test_closed_target_marks_session_broken(self):
        session, page, _ = _make_session()
        page.click.side_effect = PlaywrightError("Target closed")
        with pytest.raises(SessionError):
            await session.click("#btn", 1000)
        assert session.broken is True
        assert session.is_alive is False

    @pytest.mark.asyncio
    async def test_wait_and_click_calls(self):
        session, page, _ = _make_session()
        await session.set_viewport(320, 240)
        await session.wait_network_idle(1000)
        await session.wait_selector(".ready", 1000)
        await session.sleep(50)
        await session.click("#go", 1000)
        page.set_viewport_size.assert_called_once_with({"width": 320, "height": 240})
        page.wait_for_load_state.assert_called_once_with("networkidle", timeout=1000)
        page.wait_for_selector.assert_called_once_with(".ready", state="visible", timeout=1000)
        page.wait_for_timeout.assert_called_once_with(50)
        page.click.assert_called_once_with("#go", timeout=1000)

    @pytest.mark.asyncio
    async def test_screenshot_modes(self):
        session, page, _ = _make_session()
        page.screenshot.return_value = b"png"
        assert await session.screenshot("viewport", None, 1000) == b"png"
        assert page.screenshot.call_args.kwargs["full_page"] is False
        await session.screenshot("fullpage", None, 1000)
        assert page.screenshot.call_args.kwargs["full_page"] is True

    @pytest.mark.asyncio
    async def test_element_screenshot(self):
        session, page, _ = _make_session()
        element = AsyncMock()
        element.screenshot.return_value = b"element"
        page.locator.return_value = MagicMock(first=element)
        assert await session.screenshot("element", ".menu", 1000) == b"element"
        page.locator.assert_called_once_with(".menu")

    @pytest.mark.asyncio
    async def test_reset_clears_state(self):
        session, page, context = _make_session()
        await session.reset()
        page.evaluate.assert_called_once()
        context.clear_cookies.assert_called_once()
        page.goto.assert_called_once_with("about:blank")

    def test_is_alive_tracks_browser_connection(self):
        session, _, _ = _make_session(connected=False)
        assert session.is_alive is False

    @pytest.mark.asyncio
    async def test_close_tolerates_dead_context(self):
        session, _, context = _make_session()
        context.close.side_effect = PlaywrightError("Browser has been closed")
        await session.close()
        context.close.assert_called_once()


class TestBrowserHelpers:
    @pytest.mark.asyncio
    async def test_launch_local(self):
        pw = Mock()
        pw.chromium.launch = AsyncMock(return_value="browser")
        assert await launch_browser(pw) == "browser"
        assert pw.chromium.launch.call_args.kwargs["headless"] is True

    @pytest.mark.asyncio
    async def test_connect_to_debugger(self):
        pw = Mock()
        pw.chromium.connect_over_cdp = AsyncMock(return_value="remote")
        assert await launch_browser(pw, debugger_url="http://localhost:9222") == "remote"
        pw.chromium.connect_over_cdp.assert_called_once_with("http://localhost:9222")

    @pytest.mark.asyncio
    async def test_create_context_passes_headers(self):
        browser = AsyncMock()
        await create_context(browser, {"width": 10, "height": 20}, {"Authorization": "Bearer x"})
        kwargs = browser.new_context.call_args.kwargs
        assert kwargs["viewport"] == {"width": 10, "height": 20}
        assert kwargs["extra_http_headers"] == {"Authorization": "Bearer x"}
        assert kwargs["device_scale_factor"] == 1


class TestBrowserSessionFactory:
    @pytest.mark.asyncio
    async def test_create_launches_once_and_relaunches_when_disconnected(self):
        config = ScreentestConfig(headers={"X-Test": "1"})
        browser = AsyncMock()
        browser.is_connected = Mock(return_value=True)
        context = AsyncMock()
        browser.new_context.return_value = context

        pw = AsyncMock()
        with patch("screentest.executor.browser.async_playwright") as apw, \
             patch("screentest.executor.browser.launch_browser", new_callable=AsyncMock) as launch:
            apw.return_value.start = AsyncMock(return_value=pw)
            launch.return_value = browser
            factory = BrowserSessionFactory(config)

            first = await factory.create()
            second = await factory.create()
            assert launch.call_count == 1
            assert first.context is context and second.page is context.new_page.return_value
            assert browser.new_context.call_args.kwargs["extra_http_headers"] == {"X-Test": "1"}

            browser.is_connected.return_value = False
            await factory.create()
            assert launch.call_count == 2

            await factory.close()
        browser.close.assert_called()
        pw.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_launch_failure_is_session_error(self):
        with patch("screentest.executor.browser.async_playwright") as apw, \
             patch("screentest.executor.browser.launch_browser", new_callable=AsyncMock) as launch:
            apw.return_value.start = AsyncMock(return_value=AsyncMock())
            launch.side_effect = PlaywrightError("Executable doesn't exist")
            factory = BrowserSessionFactory(ScreentestConfig())
            with pytest.raises(SessionError, match="Executable"):
                await factory.create()
