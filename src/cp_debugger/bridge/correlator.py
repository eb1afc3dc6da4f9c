"""Command correlator: one MI command in flight, the rest queued FIFO.

GDB handles one command at a time, so the correlator does the same on the
caller side. Each send() returns a Future that is resolved by the matching
result record, rejected by ^error, or resolved empty when the per-command
timeout fires so the queue keeps moving.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable

from cp_debugger.bridge.records import MiRecord, RecordKind
from cp_debugger.bridge.types import MiResult
from cp_debugger.constants import COMMAND_TIMEOUT
from cp_debugger.exceptions import (
    CommandCancelledError,
    CommandError,
    SessionNotActiveError,
)

logger = logging.getLogger(__name__)

Writer = Callable[[str], None]


@dataclass
class PendingCommand:
    """A command waiting for, or waiting on, its result record."""

    command: str
    token: int
    future: Future = field(default_factory=Future)
    timer: threading.Timer | None = None
    console: list[str] = field(default_factory=list)

    @property
    def wire_text(self) -> str:
        return f"{self.token}{self.command}"


class CommandCorrelator:
    """Serializes MI commands against a single writer."""

    def __init__(
        self,
        writer: Writer | None = None,
        timeout: float = COMMAND_TIMEOUT,
    ) -> None:
        self._writer = writer
        self._timeout = timeout
        self._queue: deque[PendingCommand] = deque()
        self._in_flight: PendingCommand | None = None
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)

    @property
    def is_active(self) -> bool:
        return self._writer is not None

    @property
    def busy(self) -> bool:
        """True while a command is waiting on its result record."""
        return self._in_flight is not None

    @property
    def queued(self) -> int:
        with self._lock:
            return len(self._queue)

    def attach(self, writer: Writer) -> None:
        """Start accepting commands; they are written with writer."""
        with self._lock:
            self._writer = writer

    def detach(self) -> None:
        """Stop accepting commands and cancel everything outstanding."""
        with self._lock:
            self._writer = None
        self.flush(include_in_flight=True)

    def send(self, command: str) -> Future:
        """Queue a command. The future resolves to an MiResult.

        Raises SessionNotActiveError immediately, without queueing, when no
        writer is attached.
        """
        with self._lock:
            if self._writer is None:
                raise SessionNotActiveError()
            pending = PendingCommand(command=command, token=next(self._tokens))
            self._queue.append(pending)
        self._dispatch_next()
        return pending.future

    def flush(self, include_in_flight: bool = False) -> int:
        """Discard queued commands. Their futures fail with CommandCancelledError.

        Returns the number of commands discarded.
        """
        with self._lock:
            dropped = list(self._queue)
            self._queue.clear()
            if include_in_flight and self._in_flight is not None:
                dropped.insert(0, self._in_flight)
                self._cancel_timer(self._in_flight)
                self._in_flight = None
        for pending in dropped:
            if not pending.future.done():
                pending.future.set_exception(CommandCancelledError(pending.command))
        if dropped:
            logger.info(f"Discarded {len(dropped)} pending command(s)")
        return len(dropped)

    def on_record(self, record: MiRecord) -> bool:
        """Offer a record to the in-flight command.

        Result records complete it; console stream text is collected into its
        result. Returns True when the record completed the command.
        """
        with self._lock:
            pending = self._in_flight
            if pending is None:
                if record.is_result:
                    logger.warning(f"Result record with no command in flight: {record.line}")
                return False
            if record.kind == RecordKind.CONSOLE:
                pending.console.append(record.text)
                return False
            if not record.is_result:
                return False
            if record.token is not None and record.token != pending.token:
                logger.warning(
                    f"Ignoring result for token {record.token}, "
                    f"waiting on {pending.token}: {record.line}"
                )
                return False
            self._cancel_timer(pending)
            self._in_flight = None

        if record.kind == RecordKind.ERROR:
            msg = record.fields.get("msg", record.line)
            logger.debug(f"Command failed: {pending.command}: {msg}")
            pending.future.set_exception(CommandError(pending.command, msg))
        else:
            pending.future.set_result(
                MiResult.from_record(
                    {
                        "message": record.message,
                        "payload": record.payload,
                        "token": record.token,
                    },
                    console=pending.console,
                )
            )
        self._dispatch_next()
        return True

    def _dispatch_next(self) -> None:
        with self._lock:
            if self._in_flight is not None or not self._queue or self._writer is None:
                return
            pending = self._queue.popleft()
            self._in_flight = pending
            writer = self._writer
            pending.timer = threading.Timer(self._timeout, self._on_timeout, args=(pending,))
            pending.timer.daemon = True
            pending.timer.start()

        logger.debug(f"-> {pending.wire_text}")
        try:
            writer(pending.wire_text + "\n")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write command {pending.command!r}: {e}")
            with self._lock:
                if self._in_flight is pending:
                    self._cancel_timer(pending)
                    self._in_flight = None
            if not pending.future.done():
                pending.future.set_exception(SessionNotActiveError())
            self._dispatch_next()

    def _on_timeout(self, pending: PendingCommand) -> None:
        with self._lock:
            if self._in_flight is not pending:
                return
            self._in_flight = None
        logger.warning(
            f"Command timed out after {self._timeout}s, treating as empty success: "
            f"{pending.command}"
        )
        # next command goes out before the waiter wakes
        self._dispatch_next()
        if not pending.future.done():
            pending.future.set_result(MiResult.timeout(console=pending.console))

    @staticmethod
    def _cancel_timer(pending: PendingCommand) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None
