"""CLI entry point for screentest."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from screentest.errors import ConfigError
from screentest.models.config import ScreentestConfig, default_concurrency, parse_key_value_pairs
from screentest.orchestrator import Orchestrator
from screentest.reporter.reporter import exit_code, summary_text

console = Console()

DEFAULT_GLOB = "testdata/*.txt"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def build_config(
    config_file: str | None,
    **flags,
) -> ScreentestConfig:
    """Merge a JSON config file (if any) with the flags that were actually given."""
    data: dict = {}
    if config_file:
        data = ScreentestConfig.load(config_file).model_dump()

    raw_vars = flags.pop("vars", None)
    if flags.pop("update", False):
        data["update"] = True
    raw_headers = flags.pop("headers", None)
    try:
        if raw_vars is not None:
            data["vars"] = {**data.get("vars", {}), **parse_key_value_pairs(raw_vars, "variable")}
        if raw_headers is not None:
            data["headers"] = {**data.get("headers", {}), **parse_key_value_pairs(raw_headers, "header")}
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    data.update({k: v for k, v in flags.items() if v is not None})
    return ScreentestConfig(**data)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression tests for web pages."""
    setup_logging(verbose)


@cli.command()
@click.argument("glob", default=DEFAULT_GLOB)
@click.option("--test", "test_url", default=None, help="URL or file path to test")
@click.option("--want", "want_url", default=None, help="Golden image location: path or file:// URL")
@click.option("--headers", default=None, help="HTTP headers: comma-separated list of name:value")
@click.option("-o", "--output", "output_url", default=None, help="Output location for diffs and reports")
@click.option("-u", "--update", is_flag=True, help="Update golden screenshots")
@click.option("-v", "--vars", default=None,
              help="Variables provided to script templates as comma separated KEY:VALUE pairs")
@click.option("-c", "--concurrency", "max_concurrency", type=int, default=None,
              help=f"Number of test cases to run concurrently [default: {default_concurrency()}]")
@click.option("-d", "--debugger", "debugger_url", default=None, help="Chrome debugger URL")
@click.option("--run", "run_filter", default=None, help="Regexp to match test ids")
@click.option("--tolerance", type=float, default=None, help="Fraction of pixels allowed to differ")
@click.option("--timeout", "test_timeout_seconds", type=float, default=None,
              help="Per-test timeout in seconds")
@click.option("--config", "config_file", default=None, help="JSON config file; flags override it")
def check(glob: str, config_file: str | None, **flags) -> None:
    """Run the screenshot checks in the scripts matching GLOB."""
    try:
        cfg = build_config(config_file, **flags)
    except FileNotFoundError as e:
        raise click.UsageError(str(e)) from e
    except ValidationError as e:
        raise click.UsageError(_first_error(e)) from e
    except json.JSONDecodeError as e:
        raise click.UsageError(f"Config file {config_file} is not valid JSON: {e}") from e

    try:
        outcome = Orchestrator(cfg, console=console).check(glob)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    console.print(summary_text(outcome))
    sys.exit(exit_code(outcome))


@cli.command()
@click.option("--test", "test_url", prompt="URL to test", help="Website URL to test")
@click.option("--want", "want_url", default="testdata/golden", help="Golden image location")
@click.option("--path", "config_path", default="screentest.json", help="Config file to write")
def init(test_url: str, want_url: str, config_path: str) -> None:
    """Create a default configuration file."""
    path = Path(config_path)
    if path.exists():
        if not click.confirm(f"{path} already exists. Overwrite?"):
            return

    cfg = ScreentestConfig(test_url=test_url, want_url=want_url)
    cfg.save(path)
    console.print(f"[green]Created {path}[/green]")
    console.print("\nRecord golden screenshots, then compare against them:")
    console.print(f"  [blue]screentest check --config {path} --update[/blue]")
    console.print(f"  [blue]screentest check --config {path}[/blue]")


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err['msg']}" if field else err["msg"]


if __name__ == "__main__":
    cli()
