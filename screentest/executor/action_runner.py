"""Action runner — performs one script action against a browser session."""

from __future__ import annotations

import logging

from screentest.errors import ActionError
from screentest.executor.browser import BrowserSession
from screentest.models.script import Action, Capture, Click, Navigate, SetViewport, Wait
from screentest.url_utils import resolve_url

logger = logging.getLogger(__name__)


def action_budget_seconds(action: Action, timeout_seconds: float) -> float:
    """Wall-clock budget for one action: the action timeout plus any requested delay."""
    if isinstance(action, Wait) and action.condition == "delay":
        return timeout_seconds + action.delay_ms / 1000
    return timeout_seconds


async def run_action(
    session: BrowserSession, action: Action, base_url: str = "", timeout: int = 30000,
) -> bytes | None:
    """Execute a single action on the session.

    Args:
        session: Browser session owned by the calling worker.
        action: The action to execute.
        base_url: URL that relative navigation targets are resolved against.
        timeout: Navigation/selector timeout in milliseconds.

    Returns:
        PNG bytes for capture actions, None for everything else.
    """
    logger.debug("Running action: %s (line %d)", action, action.line)

    match action:
        case Navigate(url=url):
            target = resolve_url(base_url, url)
            logger.debug("Navigating to %s...", target)
            await session.navigate(target, timeout)

        case SetViewport(width=width, height=height):
            await session.set_viewport(width, height)

        case Wait(condition="network_idle"):
            await session.wait_network_idle(timeout)

        case Wait(condition="selector", selector=selector):
            await session.wait_selector(selector, timeout)

        case Wait(condition="delay", delay_ms=delay_ms):
            await session.sleep(delay_ms)

        case Click(selector=selector):
            await session.click(selector, timeout)

        case Capture(mode=mode, selector=selector):
            return await session.screenshot(mode, selector, timeout)

        case _:
            raise ActionError(f"unsupported action: {action!r}")

    return None
