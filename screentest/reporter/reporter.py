"""Report aggregation — console summary, report files and the process exit status."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from screentest.models.config import ScreentestConfig
from screentest.models.result import RunOutcome, TestStatus

from .json_report import generate_json_report

logger = logging.getLogger(__name__)

_STATUS_STYLE = {
    TestStatus.PASSED: "green",
    TestStatus.FAILED: "red",
    TestStatus.ERRORED: "red",
}


def exit_code(outcome: RunOutcome) -> int:
    """Zero only when every script parsed and every test passed."""
    return 0 if outcome.ok else 1


def summary_text(outcome: RunOutcome) -> str:
    """One-paragraph plain text summary of a run."""
    mode = "update" if outcome.update else "compare"
    parts = [
        f"{outcome.total} tests ({mode} mode) in {outcome.duration_seconds:.1f}s:",
        f"{outcome.passed} passed, {outcome.failed} failed, {outcome.errored} errored.",
    ]
    if outcome.script_errors:
        parts.append(f"{len(outcome.script_errors)} scripts failed to parse.")
    bad = [r.test_id for r in outcome.test_results if r.status != TestStatus.PASSED]
    if bad:
        parts.append(f"Not passing: {', '.join(bad[:5])}" + (" ..." if len(bad) > 5 else ""))
    return " ".join(parts)


class Reporter:
    """Renders run outcomes for humans and writes report files."""

    def __init__(self, config: ScreentestConfig, console: Console | None = None):
        self.config = config
        self.console = console or Console()

    def render(self, outcome: RunOutcome) -> None:
        """Print every non-passing test with its cause, then the counts."""
        for err in outcome.script_errors:
            self.console.print(f"[red]PARSE ERROR[/red] {err.message}")

        failures = [r for r in outcome.test_results if r.status != TestStatus.PASSED]
        if failures:
            table = Table(title="Failures")
            table.add_column("Test", style="bold")
            table.add_column("Status")
            table.add_column("Cause")
            table.add_column("Artifacts")
            for r in failures:
                artifacts = "\n".join(
                    path for c in r.captures for path in c.artifacts.values()
                )
                style = _STATUS_STYLE.get(r.status, "yellow")
                table.add_row(
                    r.test_id,
                    f"[{style}]{r.status.value}[/{style}]",
                    r.failure_reason or "",
                    artifacts,
                )
            self.console.print(table)

        summary = Table(title="Results Summary")
        summary.add_column("Metric", style="bold")
        summary.add_column("Value")
        summary.add_row("Run ID", outcome.run_id)
        summary.add_row("Mode", "update" if outcome.update else "compare")
        summary.add_row("Duration", f"{outcome.duration_seconds}s")
        summary.add_row("Total Tests", str(outcome.total))
        summary.add_row("Passed", f"[green]{outcome.passed}[/green]")
        summary.add_row("Failed", f"[red]{outcome.failed}[/red]")
        summary.add_row("Errored", f"[red]{outcome.errored}[/red]")
        if outcome.script_errors:
            summary.add_row("Script Errors", f"[red]{len(outcome.script_errors)}[/red]")
        self.console.print(summary)

    def generate_reports(self, outcome: RunOutcome, output_dir: Path) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        generated = {}
        logger.debug("Report output directory: %s", output_dir)

        if "json" in self.config.report_formats:
            path = output_dir / f"report_{outcome.run_id}.json"
            generate_json_report(outcome, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        for fmt in self.config.report_formats:
            if fmt != "json":
                logger.warning("Unsupported report format %r ignored", fmt)
        return generated
