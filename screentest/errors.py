"""Error taxonomy for screentest runs."""

from __future__ import annotations


class ScreentestError(Exception):
    """Base class for all screentest errors."""


class ConfigError(ScreentestError):
    """Invalid configuration or unreadable input; fatal to the whole run."""


class ParseError(ScreentestError):
    """Malformed script or template; fatal to one script file."""

    def __init__(self, message: str, line: int = 0, token: str = "", script: str = ""):
        self.message = message
        self.line = line
        self.token = token
        self.script = script
        super().__init__(str(self))

    def __str__(self) -> str:
        where = f"{self.script}:{self.line}" if self.script else f"line {self.line}"
        if self.token:
            return f"{where}: {self.message}: {self.token!r}"
        return f"{where}: {self.message}"


class SessionError(ScreentestError):
    """A browser session died or its control channel failed."""


class ActionError(ScreentestError):
    """A script action could not be performed."""


class ActionTimeout(ActionError):
    """Navigation or wait exceeded its time budget."""


class StoreError(ScreentestError):
    """Reading or writing a golden image failed."""
