"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from screentest.models.result import RunOutcome


def generate_json_report(outcome: RunOutcome, output_path: Path) -> None:
    """Write a machine-readable JSON report."""
    report = outcome.model_dump(mode="json")
    report["summary"] = {
        "total": outcome.total,
        "passed": outcome.passed,
        "failed": outcome.failed,
        "errored": outcome.errored,
        "script_errors": len(outcome.script_errors),
        "ok": outcome.ok,
    }
    for entry, result in zip(report["test_results"], outcome.test_results):
        entry["failure_reason"] = result.failure_reason

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
