"""Typed wrappers for GDB/MI responses and the session model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


def _to_int(value, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class FrameInfo:
    """A stack frame from GDB. Level 0 is the innermost frame."""

    func: str = "??"
    file: str | None = None
    line: int | None = None
    address: str | None = None
    level: int = 0

    def to_dict(self) -> dict:
        result: dict = {"level": self.level, "func": self.func}
        if self.address is not None:
            result["address"] = self.address
        if self.file is not None:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        return result

    @classmethod
    def from_mi(cls, data: dict) -> FrameInfo:
        """Parse a GDB/MI frame dict (all string values)."""
        return cls(
            func=data.get("func", "??"),
            file=data.get("fullname") or data.get("file"),
            line=_to_int(data.get("line")),
            address=data.get("addr"),
            level=_to_int(data.get("level"), 0),
        )


@dataclass(frozen=True)
class StopEvent:
    """Target stopped event from GDB."""

    reason: str
    frame: FrameInfo | None = None
    breakpoint_number: str | None = None

    @property
    def file(self) -> str | None:
        return self.frame.file if self.frame else None

    @property
    def line(self) -> int | None:
        return self.frame.line if self.frame else None

    @property
    def function(self) -> str | None:
        return self.frame.func if self.frame else None

    @property
    def is_breakpoint(self) -> bool:
        return "breakpoint" in self.reason

    def to_dict(self) -> dict:
        result: dict = {
            "reason": self.reason,
            "file": self.file,
            "line": self.line,
            "function": self.function,
        }
        if self.breakpoint_number is not None:
            result["breakpoint"] = self.breakpoint_number
        if self.frame is not None:
            result["frame"] = self.frame.to_dict()
        return result

    @classmethod
    def from_mi(cls, payload: dict) -> StopEvent:
        """Parse a *stopped MI notification payload.

        GDB nests the location in frame={...}; a flat record carrying
        file/line/func at top level is accepted too.
        """
        reason = payload.get("reason", "unknown")
        frame = None
        if isinstance(payload.get("frame"), dict):
            frame = FrameInfo.from_mi(payload["frame"])
        elif any(k in payload for k in ("file", "fullname", "line", "func")):
            frame = FrameInfo.from_mi(payload)
        return cls(reason=reason, frame=frame, breakpoint_number=payload.get("bkptno"))


@dataclass
class MiResult:
    """Parsed result of a GDB/MI command."""

    message: str  # "done", "running", "error", etc.
    payload: dict | list | str | None = None
    console_output: list[str] = field(default_factory=list)
    token: int | None = None
    timed_out: bool = False

    def get(self, key: str, default=None):
        """Field lookup on a dict payload; default for anything else."""
        if isinstance(self.payload, dict):
            return self.payload.get(key, default)
        return default

    @classmethod
    def from_record(cls, record: dict, console: list[str] | None = None) -> MiResult:
        """Build a result from a parsed ^-record."""
        return cls(
            message=record.get("message") or "done",
            payload=record.get("payload"),
            console_output=list(console or []),
            token=record.get("token"),
        )

    @classmethod
    def timeout(cls, console: list[str] | None = None) -> MiResult:
        """Empty success used when a command never got a result record."""
        return cls(message="done", console_output=list(console or []), timed_out=True)


@dataclass
class Breakpoint:
    """A breakpoint as GDB numbered it."""

    number: str
    file: str
    line: int
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "file": self.file,
            "line": self.line,
            "enabled": self.enabled,
        }

    @classmethod
    def from_mi(cls, bkpt: dict) -> Breakpoint | None:
        """Parse a bkpt tuple. Returns None when number, file or line is missing."""
        number = bkpt.get("number")
        file = bkpt.get("file") or bkpt.get("fullname")
        line = _to_int(bkpt.get("line"))
        if not number or not file or line is None:
            return None
        return cls(
            number=str(number),
            file=file,
            line=line,
            enabled=bkpt.get("enabled", "y") == "y",
        )


class VariableScope(Enum):
    LOCAL = "local"
    GLOBAL = "global"
    WATCH = "watch"
    ELEMENT = "element"


@dataclass
class Variable:
    """A variable value and, for containers and arrays, its children.

    Children come from parsing the value string at the last refresh. They are
    not kept in sync with the debuggee and must be refreshed.
    """

    name: str
    value: str
    type: str = ""
    scope: VariableScope = VariableScope.LOCAL
    expanded: bool = False
    children: list[Variable] | None = None
    is_container: bool = False
    is_array: bool = False
    element_count: int | None = None
    placeholder: bool = False
    id: int = 0
    varobj: str | None = None

    @property
    def is_complex(self) -> bool:
        return (
            self.is_container
            or self.is_array
            or self.value.lstrip().startswith("{")
        )

    def to_dict(self) -> dict:
        result: dict = {
            "name": self.name,
            "value": self.value,
            "type": self.type,
            "scope": self.scope.value,
            "expanded": self.expanded,
            "is_container": self.is_container,
            "is_array": self.is_array,
            "element_count": self.element_count,
            "children": (
                [c.to_dict() for c in self.children]
                if self.children is not None
                else None
            ),
        }
        if self.placeholder:
            result["placeholder"] = True
        return result
