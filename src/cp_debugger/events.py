"""Adapter events: a closed set of kinds, a typed bus, and a buffering recorder."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Everything the adapter tells its frontend."""

    STARTED = "started"
    EXITED = "exited"
    ERROR = "error"
    STOPPED = "stopped"
    RUNNING = "running"
    BREAKPOINT_HIT = "breakpoint-hit"
    BREAKPOINT_SET = "breakpoint-set"
    BREAKPOINT_REMOVED = "breakpoint-removed"
    VARIABLES_UPDATED = "variables-updated"
    CALLSTACK_UPDATED = "callstack-updated"
    CONSOLE_OUTPUT = "console-output"
    LOG_OUTPUT = "log-output"
    PROGRAM_EXITED = "program-exited"


@dataclass(frozen=True)
class DebugEvent:
    """One emitted event.

    The payload type depends on the kind: StopEvent for STOPPED and
    BREAKPOINT_HIT, Breakpoint for BREAKPOINT_SET, a list of Variable for
    VARIABLES_UPDATED, a list of FrameInfo for CALLSTACK_UPDATED, str for the
    output streams and ERROR, and a plain dict for the lifecycle kinds.
    """

    kind: EventKind
    payload: Any = None
    seq: int = 0
    ts: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "seq": self.seq,
            "payload": _payload_to_dict(self.payload),
        }


def _payload_to_dict(payload: Any) -> Any:
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    if isinstance(payload, (list, tuple)):
        return [_payload_to_dict(p) for p in payload]
    return payload


EventHandler = Callable[[DebugEvent], None]


class EventBus:
    """Typed publish/subscribe channel.

    Handlers run synchronously on the emitting thread, in subscription order.
    A handler that raises is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind | None, list[EventHandler]] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def subscribe(
        self, kind: EventKind | None, handler: EventHandler
    ) -> Callable[[], None]:
        """Register a handler for one kind, or for every kind when kind is None.

        Returns a callable that removes the subscription.
        """
        with self._lock:
            self._handlers.setdefault(kind, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(kind, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def emit(self, kind: EventKind, payload: Any = None) -> DebugEvent:
        event = DebugEvent(kind=kind, payload=payload, seq=next(self._seq))
        with self._lock:
            handlers = list(self._handlers.get(kind, [])) + list(
                self._handlers.get(None, [])
            )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {kind.value}")
        return event


class EventRecorder:
    """Keeps the most recent events so pull-style callers can read them.

    Used by the MCP tools, which cannot receive pushed events.
    """

    def __init__(self, bus: EventBus, maxlen: int = 500) -> None:
        self._events: deque[DebugEvent] = deque(maxlen=maxlen)
        self._cond = threading.Condition()
        self._unsubscribe = bus.subscribe(None, self._record)

    def _record(self, event: DebugEvent) -> None:
        with self._cond:
            self._events.append(event)
            self._cond.notify_all()

    def close(self) -> None:
        self._unsubscribe()

    @property
    def last_seq(self) -> int:
        with self._cond:
            return self._events[-1].seq if self._events else 0

    def since(self, seq: int = 0) -> list[DebugEvent]:
        """Events with a sequence number greater than seq, oldest first."""
        with self._cond:
            return [e for e in self._events if e.seq > seq]

    def wait_for(
        self,
        kinds: Iterable[EventKind],
        after_seq: int = 0,
        timeout: float = 30.0,
    ) -> DebugEvent | None:
        """Block until an event of one of the kinds arrives after after_seq.

        Returns the first match, or None on timeout.
        """
        wanted = set(kinds)
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                for e in self._events:
                    if e.seq > after_seq and e.kind in wanted:
                        return e
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
