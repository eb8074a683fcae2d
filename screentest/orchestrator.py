"""Run orchestrator — loads scripts, runs them against the browser pool and reports."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from rich.console import Console

from screentest.errors import ConfigError
from screentest.executor.browser import BrowserSessionFactory
from screentest.executor.runner import Runner
from screentest.executor.session_pool import SessionPool
from screentest.models.config import ScreentestConfig
from screentest.models.result import RunOutcome, ScriptError
from screentest.models.script import TestCase
from screentest.parser.script_parser import load_scripts
from screentest.reporter.artifacts import ArtifactWriter
from screentest.reporter.reporter import Reporter
from screentest.store.golden_store import GoldenStore, open_golden_store
from screentest.url_utils import local_path_from_location

logger = logging.getLogger(__name__)


class Orchestrator:
    """Coordinates one screentest invocation: load, run, report."""

    def __init__(self, config: ScreentestConfig, console: Console | None = None):
        self.config = config
        self.reporter = Reporter(config, console)
        try:
            self.output_dir = Path(local_path_from_location(config.output_location))
        except ValueError as e:
            raise ConfigError(f"output location: {e}") from e

    def check(self, pattern: str) -> RunOutcome:
        """Run every script matching ``pattern`` and return the outcome."""
        return asyncio.run(self.run_check(pattern))

    async def run_check(self, pattern: str) -> RunOutcome:
        start = time.time()
        logger.info("=== screentest %s ===", pattern)

        # Configuration problems abort here, before any browser starts.
        cases, script_errors = load_scripts(pattern, self.config.vars)
        store = open_golden_store(self.config.want_url)

        outcome = await self._run(cases, script_errors, store)

        self.reporter.render(outcome)
        try:
            reports = self.reporter.generate_reports(outcome, self.output_dir)
        except OSError as e:
            # The outcome still decides the exit status.
            logger.error("Writing reports to %s failed: %s", self.output_dir, e)
            reports = {}
        for fmt, path in reports.items():
            logger.info("%s report: %s", fmt.upper(), path)
        logger.info("=== Done in %.1fs ===", time.time() - start)
        return outcome

    async def _run(
        self, cases: list[TestCase], script_errors: list[ScriptError], store: GoldenStore,
    ) -> RunOutcome:
        pool = SessionPool(
            BrowserSessionFactory(self.config),
            self.config.max_concurrency,
            reset_timeout=self.config.action_timeout_seconds,
        )
        runner = Runner(self.config, pool, store, ArtifactWriter(self.output_dir))
        try:
            return await runner.run(cases, script_errors)
        finally:
            await pool.close()
