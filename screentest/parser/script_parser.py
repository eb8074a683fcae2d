"""Script parser — turns screentest script text into TestCase values.

A script is a sequence of named test blocks::

    # comments and blank lines are ignored
    # a viewport before the first test is the default for all tests
    viewport 1280x720
    test homepage
    # BASE comes from the -v KEY:VALUE pairs
    navigate {{BASE}}/
    wait idle
    capture

Template placeholders are substituted over the whole source first; only
then is the result parsed line by line. Parsing never touches the network
or the filesystem, so the same input always yields the same test cases.
"""

from __future__ import annotations

import glob
import logging
import re
from pathlib import Path
from typing import Mapping

from pydantic import ValidationError

from screentest.errors import ConfigError, ParseError
from screentest.models.config import ViewportConfig
from screentest.models.result import ScriptError
from screentest.models.script import (
    Capture,
    Click,
    Navigate,
    SetViewport,
    TestCase,
    Wait,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_LEFTOVER_RE = re.compile(r"\{\{.*?\}\}")
_VIEWPORT_RE = re.compile(r"^(-?\d+)x(-?\d+)$", re.IGNORECASE)
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s)$")

CAPTURE_MODES = {"viewport": "viewport", "fullpage": "fullpage", "fullscreen": "fullpage"}
VERBS = {"test", "viewport", "windowsize", "navigate", "path", "wait", "sleep",
         "click", "capture", "tolerance"}


def substitute_variables(
    source: str, variables: Mapping[str, str], script: str = "",
) -> tuple[list[str], dict[str, str]]:
    """Replace ``{{KEY}}`` placeholders and return the lines plus the variables used.

    A placeholder whose key is missing from ``variables`` is a ParseError;
    leaving it in place would compare against the literal placeholder text.
    """
    used: dict[str, str] = {}
    lines = []
    for lineno, raw in enumerate(source.splitlines(), 1):
        def _replacer(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                raise ParseError("unresolved template variable", lineno, match.group(0), script)
            used[key] = variables[key]
            return variables[key]

        line = _PLACEHOLDER_RE.sub(_replacer, raw)
        for leftover in _LEFTOVER_RE.finditer(raw):
            if not _PLACEHOLDER_RE.fullmatch(leftover.group(0)):
                raise ParseError("malformed template placeholder", lineno, leftover.group(0), script)
        lines.append(line)
    return lines, used


def parse_viewport(text: str, lineno: int, script: str = "") -> tuple[int, int]:
    m = _VIEWPORT_RE.match(text.strip())
    if not m:
        raise ParseError("malformed viewport, want WIDTHxHEIGHT", lineno, text, script)
    width, height = int(m.group(1)), int(m.group(2))
    if width <= 0 or height <= 0:
        raise ParseError("viewport dimensions must be positive integers", lineno, text, script)
    return width, height


def parse_duration_ms(text: str, lineno: int, script: str = "") -> int:
    m = _DURATION_RE.match(text.strip())
    if not m:
        raise ParseError("malformed duration, want e.g. 500ms or 2s", lineno, text, script)
    value = float(m.group(1))
    return int(value if m.group(2) == "ms" else value * 1000)


class _CaseBuilder:
    """Accumulates one test block while the parser walks the script."""

    def __init__(self, name: str, lineno: int, viewport: ViewportConfig):
        self.name = name
        self.lineno = lineno
        self.viewport = viewport
        self.actions: list = []
        self.labels: set[str] = set()
        self.tolerance: float | None = None


class ScriptParser:
    """Parses one script source. Instances are single use."""

    def __init__(self, script: str = ""):
        self.script = script
        self.stem = Path(script).stem if script else "script"

    def _error(self, message: str, lineno: int, token: str = "") -> ParseError:
        return ParseError(message, lineno, token, self.script)

    def parse(self, source: str, variables: Mapping[str, str]) -> list[TestCase]:
        lines, used = substitute_variables(source, variables, self.script)

        default_viewport = ViewportConfig()
        builders: list[_CaseBuilder] = []
        current: _CaseBuilder | None = None

        for lineno, raw in enumerate(lines, 1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            verb, _, rest = line.partition(" ")
            verb = verb.lower()
            rest = rest.strip()

            if verb not in VERBS:
                raise self._error("unknown action", lineno, verb)

            if verb == "test":
                if not rest:
                    raise self._error("test requires a name", lineno)
                if any(b.name == rest for b in builders):
                    raise self._error("duplicate test name", lineno, rest)
                current = _CaseBuilder(rest, lineno, default_viewport)
                builders.append(current)
                continue

            if verb in ("viewport", "windowsize") and current is None:
                w, h = parse_viewport(rest, lineno, self.script)
                default_viewport = ViewportConfig(width=w, height=h)
                continue

            if current is None:
                raise self._error("action outside of a test block", lineno, verb)

            self._parse_action(current, verb, rest, lineno)

        cases = []
        for b in builders:
            if not b.actions:
                raise self._error("test has no actions", b.lineno, b.name)
            cases.append(TestCase(
                id=f"{self.stem}:{b.name}",
                name=b.name,
                script=self.script,
                actions=tuple(b.actions),
                viewport=b.viewport,
                variables=dict(used),
                tolerance=b.tolerance,
            ))
        logger.debug("Parsed %d test cases from %s", len(cases), self.script or "<source>")
        return cases

    def _parse_action(self, case: _CaseBuilder, verb: str, rest: str, lineno: int) -> None:
        match verb:
            case "viewport" | "windowsize":
                w, h = parse_viewport(rest, lineno, self.script)
                if not case.actions:
                    case.viewport = ViewportConfig(width=w, height=h)
                case.actions.append(SetViewport(width=w, height=h, line=lineno))

            case "navigate" | "path":
                if not rest:
                    raise self._error("navigate requires a URL", lineno)
                case.actions.append(Navigate(url=rest, line=lineno))

            case "wait":
                case.actions.append(self._parse_wait(rest, lineno))

            case "sleep":
                delay = parse_duration_ms(rest, lineno, self.script)
                case.actions.append(Wait(condition="delay", delay_ms=delay, line=lineno))

            case "click":
                if not rest:
                    raise self._error("click requires a selector", lineno)
                case.actions.append(Click(selector=rest, line=lineno))

            case "capture":
                action = self._parse_capture(rest, lineno)
                if action.label in case.labels:
                    raise self._error("duplicate capture label", lineno, action.label)
                case.labels.add(action.label)
                case.actions.append(action)

            case "tolerance":
                try:
                    value = float(rest)
                except ValueError:
                    raise self._error("malformed tolerance", lineno, rest) from None
                if not 0.0 <= value <= 1.0:
                    raise self._error("tolerance must be within [0, 1]", lineno, rest)
                case.tolerance = value

    def _parse_wait(self, rest: str, lineno: int) -> Wait:
        if not rest:
            raise self._error("wait requires a condition", lineno)
        head, _, tail = rest.partition(" ")
        if head.lower() in ("idle", "networkidle"):
            if tail.strip():
                raise self._error("unexpected token after wait idle", lineno, tail.strip())
            return Wait(condition="network_idle", line=lineno)
        if head.lower() == "selector":
            if not tail.strip():
                raise self._error("wait selector requires a selector", lineno)
            return Wait(condition="selector", selector=tail.strip(), line=lineno)
        if _DURATION_RE.match(rest):
            return Wait(condition="delay", delay_ms=parse_duration_ms(rest, lineno, self.script), line=lineno)
        raise self._error("malformed wait condition", lineno, rest)

    def _parse_capture(self, rest: str, lineno: int) -> Capture:
        head, _, tail = rest.partition(" ")
        label: str | None = None
        if head and head.lower() not in CAPTURE_MODES and head.lower() != "element":
            label = head
            head, _, tail = tail.strip().partition(" ")
        tail = tail.strip()

        if not head:
            return Capture(label=label or "viewport", line=lineno)

        mode = head.lower()
        if mode in CAPTURE_MODES:
            if tail:
                raise self._error("unexpected token after capture mode", lineno, tail)
            mode = CAPTURE_MODES[mode]
            return Capture(label=label or mode, mode=mode, line=lineno)
        if mode == "element":
            if not tail:
                raise self._error("element capture requires a selector", lineno)
            return Capture(label=label or "element", mode="element", selector=tail, line=lineno)
        raise self._error("unknown capture mode", lineno, head)


def parse_script(
    source: str, variables: Mapping[str, str] | None = None, script: str = "",
) -> list[TestCase]:
    """Parse script text into an ordered list of test cases, or raise ParseError."""
    try:
        return ScriptParser(script).parse(source, variables or {})
    except ValidationError as e:
        # Model constraints duplicate the parser's checks; surface them uniformly.
        raise ParseError(f"invalid action: {e.errors()[0]['msg']}", 0, "", script) from e


def load_scripts(
    pattern: str, variables: Mapping[str, str] | None = None,
) -> tuple[list[TestCase], list[ScriptError]]:
    """Read and parse every script matching ``pattern``.

    An unreadable file or an empty match is a ConfigError. A ParseError is
    recorded against its file and the remaining files are still parsed.
    """
    paths = sorted(p for p in glob.glob(pattern, recursive=True) if Path(p).is_file())
    if not paths:
        raise ConfigError(f"no script files match {pattern!r}")

    cases: list[TestCase] = []
    errors: list[ScriptError] = []
    seen_ids: dict[str, str] = {}
    for path in paths:
        try:
            source = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"cannot read script {path}: {e}") from e

        try:
            parsed = parse_script(source, variables, script=path)
        except ParseError as e:
            logger.error("Parse error: %s", e)
            errors.append(ScriptError(script=path, line=e.line, message=str(e)))
            continue

        clash = next((tc.id for tc in parsed if tc.id in seen_ids), None)
        if clash:
            msg = f"{path}: test id {clash!r} already defined in {seen_ids[clash]}"
            logger.error("Parse error: %s", msg)
            errors.append(ScriptError(script=path, message=msg))
            continue
        for tc in parsed:
            seen_ids[tc.id] = path
        cases.extend(parsed)

    logger.info("Loaded %d test cases from %d scripts", len(cases), len(paths))
    return cases, errors
