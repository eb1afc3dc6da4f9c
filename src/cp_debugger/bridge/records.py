"""GDB/MI line framing and record classification.

GDB writes newline-terminated records. Output arrives in arbitrary chunks, so
LineBuffer holds partial lines until their newline shows up. Each complete line
is parsed with pygdbmi's MI grammar parser and classified by its leading sigil
into a RecordKind that the adapter routes on.
"""

from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pygdbmi import gdbmiparser

from cp_debugger.constants import EXIT_REASONS

logger = logging.getLogger(__name__)

_EXITED_WITH_CODE_RE = re.compile(r"exited with code (\d+)")
_TOKEN_RE = re.compile(r"^\d+")

PROMPT = "(gdb)"


class RecordKind(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    BREAKPOINT_CREATED = "breakpoint-created"
    BREAKPOINT_MODIFIED = "breakpoint-modified"
    BREAKPOINT_DELETED = "breakpoint-deleted"
    DONE = "done"
    ERROR = "error"
    CONSOLE = "console"
    LOG = "log"
    TARGET = "target"
    EXIT = "exit"
    PROMPT = "prompt"
    NOTIFY = "notify"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MiRecord:
    """One classified line of MI output."""

    kind: RecordKind
    line: str
    message: str | None = None
    payload: Any = None
    token: int | None = None
    is_result: bool = False

    @property
    def fields(self) -> dict:
        return self.payload if isinstance(self.payload, dict) else {}

    @property
    def text(self) -> str:
        """Stream text for console/log/target records, else the raw line."""
        if isinstance(self.payload, str):
            return self.payload
        return self.line


def quote_mi_string(value: str) -> str:
    """Quote a value as an MI c-string argument."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def exit_code_of(record: MiRecord) -> int:
    """Extract the debuggee exit code from a termination record.

    GDB prints exit codes in octal ("exit-code=\"012\"" is 10). Missing codes
    default to 0.
    """
    raw = record.fields.get("exit-code")
    if raw is None:
        match = _EXITED_WITH_CODE_RE.search(record.text)
        raw = match.group(1) if match else None
    if raw is None:
        return 0
    try:
        return int(raw, 8)
    except ValueError:
        return int(raw) if str(raw).isdigit() else 0


def _parse(line: str) -> dict:
    parsed = gdbmiparser.parse_response(line)
    if parsed.get("type") == "output" and line[:1] in "*=":
        # pygdbmi wants a comma after async class names; bare ones show up
        # as plain output, so rebuild them here.
        return {
            "type": "notify",
            "message": line[1:].split(",", 1)[0],
            "payload": None,
            "token": None,
        }
    return parsed


def classify(line: str) -> MiRecord:
    """Parse and classify one complete MI line."""
    stripped = line.strip()
    if stripped == PROMPT:
        return MiRecord(kind=RecordKind.PROMPT, line=stripped)

    body = _TOKEN_RE.sub("", stripped, count=1)
    sigil = body[:1]

    if sigil not in ("^", "*", "=", "~", "&", "@"):
        if "exited with code" in stripped:
            return MiRecord(kind=RecordKind.EXIT, line=stripped, message="exited")
        return MiRecord(kind=RecordKind.UNKNOWN, line=stripped, payload=stripped)

    parsed = _parse(stripped)
    message = parsed.get("message")
    payload = parsed.get("payload")
    token = parsed.get("token")

    def record(kind: RecordKind, is_result: bool = False) -> MiRecord:
        return MiRecord(
            kind=kind,
            line=stripped,
            message=message,
            payload=payload,
            token=token,
            is_result=is_result,
        )

    if sigil == "^":
        if message == "error":
            return record(RecordKind.ERROR, is_result=True)
        if message == "running":
            return record(RecordKind.RUNNING, is_result=True)
        return record(RecordKind.DONE, is_result=True)
    if sigil == "~":
        return record(RecordKind.CONSOLE)
    if sigil == "&":
        return record(RecordKind.LOG)
    if sigil == "@":
        return record(RecordKind.TARGET)

    if message == "stopped":
        reason = payload.get("reason") if isinstance(payload, dict) else None
        if reason in EXIT_REASONS:
            return record(RecordKind.EXIT)
        return record(RecordKind.STOPPED)
    if message == "running":
        return record(RecordKind.RUNNING)
    if message == "breakpoint-created":
        return record(RecordKind.BREAKPOINT_CREATED)
    if message == "breakpoint-modified":
        return record(RecordKind.BREAKPOINT_MODIFIED)
    if message == "breakpoint-deleted":
        return record(RecordKind.BREAKPOINT_DELETED)
    if message in ("thread-exited", "thread-group-exited"):
        return record(RecordKind.EXIT)
    return record(RecordKind.NOTIFY)


class LineBuffer:
    """Accumulates output chunks and yields complete lines."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        data = self._partial + chunk
        *lines, self._partial = data.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left without a trailing newline."""
        tail = self._partial + self._decoder.decode(b"", final=True)
        self._partial = ""
        return [tail.rstrip("\r")] if tail.strip() else []


RecordHandler = Callable[[MiRecord], None]


class MiDemultiplexer:
    """Splits raw GDB stdout into records and hands each to a handler.

    Lines are processed strictly in arrival order. A line that fails to parse,
    or whose handler raises, is logged and skipped.
    """

    def __init__(self, on_record: RecordHandler) -> None:
        self._on_record = on_record
        self._buffer = LineBuffer()

    def feed(self, chunk: bytes | str) -> None:
        for line in self._buffer.feed(chunk):
            self._dispatch(line)

    def close(self) -> None:
        for line in self._buffer.flush():
            self._dispatch(line)

    def _dispatch(self, line: str) -> None:
        if not line.strip():
            return
        logger.debug(f"<- {line}")
        try:
            record = classify(line)
        except Exception:
            logger.exception(f"Failed to parse MI line: {line!r}")
            return
        try:
            self._on_record(record)
        except Exception:
            logger.exception(f"Failed to handle MI record: {line!r}")
