"""Debuggee execution state and its allowed transitions."""

from __future__ import annotations

import logging
import threading
from enum import Enum

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """States of a debug session."""

    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"
    EXITED = "exited"
    TERMINATED = "terminated"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.STARTING}),
    SessionState.STARTING: frozenset({SessionState.READY}),
    SessionState.READY: frozenset({SessionState.RUNNING, SessionState.STOPPED}),
    SessionState.RUNNING: frozenset({SessionState.STOPPED, SessionState.EXITED}),
    SessionState.STOPPED: frozenset({SessionState.RUNNING, SessionState.EXITED}),
    # a finished program can be run again in the same gdb
    SessionState.EXITED: frozenset({SessionState.RUNNING}),
    SessionState.TERMINATED: frozenset({SessionState.STARTING}),
}

# gdb holds a live process in these states
ACTIVE_STATES = frozenset(
    {
        SessionState.STARTING,
        SessionState.READY,
        SessionState.RUNNING,
        SessionState.STOPPED,
        SessionState.EXITED,
    }
)


def can_transition(current: SessionState, new: SessionState) -> bool:
    if new == SessionState.TERMINATED:
        return True
    return new in _TRANSITIONS[current]


class SessionStateMachine:
    """Thread-safe holder of the current SessionState.

    TERMINATED is reachable from every state. Other moves follow the table
    above; anything else is logged and refused. Moving to the current state is
    a silent no-op (gdb repeats *running for each thread).
    """

    def __init__(self) -> None:
        self._state = SessionState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    def transition(self, new: SessionState) -> bool:
        """Move to new. Returns True if the state changed."""
        with self._lock:
            current = self._state
            if new == current:
                return False
            if not can_transition(current, new):
                logger.warning(f"Ignoring state transition {current.value} -> {new.value}")
                return False
            self._state = new
        logger.debug(f"State {current.value} -> {new.value}")
        return True
