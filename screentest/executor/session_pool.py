"""Browser session pool — a fixed number of slots, each holding at most one live session.

Every slot moves through an explicit state machine::

    IDLE -> IN_USE -> IDLE                      (released and reset)
                   -> DEAD -> RESPAWNING -> IDLE (crashed, failed reset, or broken)

Slots start DEAD and are spawned lazily on first acquire. A slot is only
ever handed to one caller at a time, so at most ``size`` sessions are in
use at once.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from screentest.errors import ConfigError, ScreentestError, SessionError
from screentest.executor.browser import BrowserSession, BrowserSessionFactory

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    IDLE = "idle"
    IN_USE = "in_use"
    DEAD = "dead"
    RESPAWNING = "respawning"


@dataclass
class _Slot:
    index: int
    state: SlotState = SlotState.DEAD
    session: BrowserSession | None = None


class SessionPool:
    """Hands out browser sessions to workers, one session per caller."""

    def __init__(self, factory: BrowserSessionFactory, size: int, reset_timeout: float = 30.0):
        if size < 1:
            raise ConfigError(f"session pool size must be at least 1, got {size}")
        self.factory = factory
        self.size = size
        self.reset_timeout = reset_timeout
        self._slots = [_Slot(i) for i in range(size)]
        self._free: asyncio.Queue[_Slot] = asyncio.Queue()
        for slot in self._slots:
            self._free.put_nowait(slot)
        self._orphans: list[BrowserSession] = []
        self._in_use = 0
        self.peak_in_use = 0
        self._closed = False

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def states(self) -> list[SlotState]:
        return [slot.state for slot in self._slots]

    async def acquire(self) -> BrowserSession:
        """Wait for a free slot and return its session, spawning one if needed."""
        if self._closed:
            raise SessionError("session pool is closed")
        slot = await self._free.get()

        if slot.session is not None and not slot.session.is_alive:
            logger.warning("Session in slot %d died while idle, replacing it", slot.index)
            await self._discard(slot)

        if slot.session is None:
            slot.state = SlotState.RESPAWNING
            try:
                slot.session = await self.factory.create()
            except BaseException:
                slot.state = SlotState.DEAD
                self._free.put_nowait(slot)
                raise
            logger.debug("Started session in slot %d", slot.index)

        slot.state = SlotState.IN_USE
        slot.session.slot = slot.index
        self._in_use += 1
        self.peak_in_use = max(self.peak_in_use, self._in_use)
        return slot.session

    async def release(self, session: BrowserSession, broken: bool = False) -> None:
        """Return a session to the pool, resetting it or discarding it if unusable."""
        slot = self._slots[session.slot] if 0 <= session.slot < self.size else None
        if slot is None or slot.session is not session or slot.state != SlotState.IN_USE:
            raise ValueError("session was not acquired from this pool")

        self._in_use -= 1
        try:
            if broken or not session.is_alive:
                logger.warning("Discarding unusable session in slot %d", slot.index)
                await self._discard(slot)
            else:
                try:
                    await asyncio.wait_for(session.reset(), self.reset_timeout)
                    slot.state = SlotState.IDLE
                except asyncio.TimeoutError:
                    logger.warning("Resetting session in slot %d timed out after %gs",
                                   slot.index, self.reset_timeout)
                    await self._discard(slot)
                except ScreentestError as e:
                    logger.warning("Resetting session in slot %d failed: %s", slot.index, e)
                    await self._discard(slot)
        finally:
            if slot.state == SlotState.IN_USE:
                # Interrupted mid-reset; the session's state is unknown.
                self._orphans.append(session)
                slot.session = None
                slot.state = SlotState.DEAD
            self._free.put_nowait(slot)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        """Acquire a session for the duration of the block; always released."""
        s = await self.acquire()
        broken = False
        try:
            yield s
        except (SessionError, asyncio.CancelledError):
            # A cancelled block may have left the page mid-action.
            broken = True
            raise
        finally:
            await self.release(s, broken=broken)

    async def _discard(self, slot: _Slot) -> None:
        session, slot.session = slot.session, None
        slot.state = SlotState.DEAD
        if session is not None:
            await self._close_session(session)

    async def _close_session(self, session: BrowserSession) -> None:
        try:
            await asyncio.wait_for(session.close(), self.reset_timeout)
        except asyncio.TimeoutError:
            logger.warning("Closing session timed out after %gs", self.reset_timeout)

    async def close(self) -> None:
        """Close every session and the browser behind them."""
        self._closed = True
        for slot in self._slots:
            if slot.session is not None:
                await self._discard(slot)
        for session in self._orphans:
            await self._close_session(session)
        self._orphans.clear()
        await self.factory.close()
        logger.debug("Session pool closed (peak %d of %d in use)", self.peak_in_use, self.size)
