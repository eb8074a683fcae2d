"""Parsed script data structures: actions and test cases."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from screentest.models.config import ViewportConfig


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int = 0  # source line, for error reporting


class Navigate(_ActionBase):
    kind: Literal["navigate"] = "navigate"
    url: str

    def __str__(self) -> str:
        return f"navigate {self.url}"


class SetViewport(_ActionBase):
    kind: Literal["viewport"] = "viewport"
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    def __str__(self) -> str:
        return f"viewport {self.width}x{self.height}"


class Wait(_ActionBase):
    kind: Literal["wait"] = "wait"
    condition: Literal["network_idle", "selector", "delay"]
    selector: Optional[str] = None
    delay_ms: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_condition(self) -> "Wait":
        if self.condition == "selector" and not self.selector:
            raise ValueError("selector wait requires a selector")
        return self

    def __str__(self) -> str:
        match self.condition:
            case "selector":
                return f"wait selector {self.selector}"
            case "delay":
                return f"wait {self.delay_ms}ms"
            case _:
                return "wait idle"


class Click(_ActionBase):
    kind: Literal["click"] = "click"
    selector: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"click {self.selector}"


class Capture(_ActionBase):
    kind: Literal["capture"] = "capture"
    label: str = Field(min_length=1)
    mode: Literal["viewport", "fullpage", "element"] = "viewport"
    selector: Optional[str] = None

    @model_validator(mode="after")
    def check_selector(self) -> "Capture":
        if (self.mode == "element") != bool(self.selector):
            raise ValueError("element captures, and only they, take a selector")
        return self

    def __str__(self) -> str:
        suffix = f" {self.selector}" if self.selector else ""
        return f"capture {self.label} {self.mode}{suffix}"


Action = Annotated[
    Union[Navigate, SetViewport, Wait, Click, Capture],
    Field(discriminator="kind"),
]


class TestCase(BaseModel):
    __test__ = False  # not a pytest class

    model_config = ConfigDict(frozen=True)

    id: str  # "<script stem>:<case name>"
    name: str
    script: str = ""
    actions: tuple[Action, ...] = ()
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    variables: dict[str, str] = Field(default_factory=dict)
    tolerance: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @property
    def capture_labels(self) -> list[str]:
        return [a.label for a in self.actions if isinstance(a, Capture)]
