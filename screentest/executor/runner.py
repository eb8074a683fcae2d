"""Test runner — schedules test cases over the session pool and resolves captures."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Iterable

from screentest.diff.diff_engine import compare
from screentest.errors import ActionError, ActionTimeout, ScreentestError, SessionError, StoreError
from screentest.executor.browser import BrowserSession
from screentest.executor.session_pool import SessionPool
from screentest.models.config import ScreentestConfig
from screentest.models.result import (
    CapturedImage,
    CaptureResult,
    GoldenKey,
    RunOutcome,
    ScriptError,
    TestResult,
    TestStatus,
)
from screentest.models.script import Capture, TestCase
from screentest.reporter.artifacts import ArtifactWriter
from screentest.store.golden_store import GoldenStore

from .action_runner import action_budget_seconds, run_action

logger = logging.getLogger(__name__)

MISSING_GOLDEN = "no golden image; run with update mode first"


class Runner:
    """Runs test cases concurrently, one browser session per in-flight case."""

    def __init__(
        self,
        config: ScreentestConfig,
        pool: SessionPool,
        store: GoldenStore,
        artifacts: ArtifactWriter | None = None,
    ):
        self.config = config
        self.pool = pool
        self.store = store
        self.artifacts = artifacts
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"

    async def run(
        self, cases: Iterable[TestCase], script_errors: Iterable[ScriptError] = (),
    ) -> RunOutcome:
        """Run every case that passes the name filter and collect the outcome.

        Cases are consumed from a shared queue by ``max_concurrency`` workers.
        Each worker converts failures of its case into a result before moving
        on, so one case's error never reaches another case.
        """
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        start_time = time.time()

        selected = [tc for tc in cases if self.config.matches(tc.id)]
        mode = "update" if self.config.update else "compare"
        logger.info("Starting %s run %s (%d tests, concurrency %d)",
                    mode, self.run_id, len(selected), self.config.max_concurrency)

        queue: asyncio.Queue[TestCase] = asyncio.Queue()
        for tc in selected:
            queue.put_nowait(tc)

        results: list[TestResult] = []
        worker_count = min(self.config.max_concurrency, len(selected))
        workers = [
            asyncio.create_task(self._worker(n, queue, results, len(selected)))
            for n in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        duration = time.time() - start_time
        outcome = RunOutcome(
            run_id=self.run_id,
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            update=self.config.update,
            duration_seconds=round(duration, 2),
            test_results=sorted(results, key=lambda r: r.test_id),
            script_errors=list(script_errors),
        )
        logger.info(
            "Run complete: %d passed, %d failed, %d errored (%.1fs)",
            outcome.passed, outcome.failed, outcome.errored, duration,
        )
        return outcome

    async def _worker(
        self, n: int, queue: asyncio.Queue[TestCase], results: list[TestResult], total: int,
    ) -> None:
        while True:
            try:
                tc = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.info("Running test [%d/%d]: %s", total - queue.qsize(), total, tc.id)
            result = await self.run_test(tc)
            logger.info("[%s] %s (%.1fs)", result.status.value.upper(), tc.id, result.duration_seconds)
            results.append(result)

    async def run_test(self, tc: TestCase) -> TestResult:
        """Run one test case to a final status. Never raises for test-level failures."""
        result = TestResult(test_id=tc.id, name=tc.name, script=tc.script, status=TestStatus.RUNNING)
        test_start = time.time()
        try:
            await asyncio.wait_for(self._run_in_session(tc, result), self.config.test_timeout_seconds)
        except asyncio.TimeoutError:
            self._record_error(result, ActionTimeout(
                f"test exceeded {self.config.test_timeout_seconds:g}s"))
        except ScreentestError as e:
            self._record_error(result, e)
        except Exception as e:
            logger.exception("Test %s crashed", tc.id)
            self._record_error(result, e)
        else:
            statuses = {c.status for c in result.captures}
            if "errored" in statuses:
                result.status = TestStatus.ERRORED
            elif "failed" in statuses:
                result.status = TestStatus.FAILED
            else:
                result.status = TestStatus.PASSED
        result.duration_seconds = round(time.time() - test_start, 2)
        return result

    @staticmethod
    def _record_error(result: TestResult, error: BaseException) -> None:
        logger.warning("Test %s errored: %s", result.test_id, error)
        result.status = TestStatus.ERRORED
        result.error = str(error) or type(error).__name__
        result.error_type = type(error).__name__

    async def _run_in_session(self, tc: TestCase, result: TestResult) -> None:
        async with self.pool.session() as session:
            await self._execute(session, tc, result)

    async def _execute(self, session: BrowserSession, tc: TestCase, result: TestResult) -> None:
        """Run the actions strictly in script order, resolving each capture as it happens."""
        timeout_ms = int(self.config.action_timeout_seconds * 1000)
        await session.set_viewport(tc.viewport.width, tc.viewport.height)

        for action in tc.actions:
            budget = action_budget_seconds(action, self.config.action_timeout_seconds)
            try:
                shot = await asyncio.wait_for(
                    run_action(session, action, self.config.test_url, timeout_ms), budget,
                )
            except asyncio.TimeoutError:
                raise ActionTimeout(f"line {action.line}: {action}: exceeded {budget:g}s") from None
            except (ActionError, SessionError) as e:
                raise type(e)(f"line {action.line}: {e}") from e

            if isinstance(action, Capture):
                result.captures.append(await self._resolve_capture(tc, action, shot))

    async def _resolve_capture(self, tc: TestCase, action: Capture, data: bytes) -> CaptureResult:
        """Store (update mode) or compare (compare mode) one captured screenshot."""
        key = GoldenKey(test_id=tc.id, label=action.label)
        candidate = CapturedImage.from_png(data, test_id=tc.id, label=action.label)

        try:
            if self.config.update:
                # Overwrites regardless of the previous golden's dimensions.
                await asyncio.to_thread(self.store.put, key, candidate)
                return CaptureResult(label=action.label, status="updated")
            golden, found = await asyncio.to_thread(self.store.get, key)
        except StoreError as e:
            logger.error("Golden store failure for %s: %s", key, e)
            return CaptureResult(label=action.label, status="errored", error=str(e))

        if not found:
            logger.warning("No golden image for %s", key)
            return CaptureResult(label=action.label, status="errored", error=MISSING_GOLDEN)

        tolerance = tc.tolerance if tc.tolerance is not None else self.config.tolerance
        diff = await asyncio.to_thread(
            compare, golden, candidate, tolerance, self.config.pixel_threshold,
        )
        capture = CaptureResult(
            label=action.label, status="passed" if diff.passed else "failed", diff=diff,
        )
        if not diff.passed:
            logger.info("  %s differs from golden: %s", key, diff.summary)
            if self.artifacts is not None:
                capture.artifacts = await asyncio.to_thread(
                    self.artifacts.write, key, golden, candidate, diff,
                )
        return capture
