"""Breakpoint registry: bookkeeping driven by GDB's breakpoint notifications."""

from __future__ import annotations

import logging
import threading

from cp_debugger.bridge.types import Breakpoint

logger = logging.getLogger(__name__)


def bkpt_tuple(payload: dict) -> dict:
    """The breakpoint fields of a notification or -break-insert result.

    GDB wraps them in bkpt={...}; flat records are accepted as-is.
    """
    bkpt = payload.get("bkpt", payload)
    if isinstance(bkpt, list):
        # multi-location breakpoints: the first entry is the parent
        bkpt = bkpt[0] if bkpt else {}
    return bkpt if isinstance(bkpt, dict) else {}


class BreakpointRegistry:
    """Maps GDB breakpoint numbers to their location.

    Membership changes only through on_created/on_deleted, which the adapter
    calls for =breakpoint-created / =breakpoint-deleted notifications. File and
    line pairs are not deduplicated.
    """

    def __init__(self) -> None:
        self._breakpoints: dict[str, Breakpoint] = {}
        self._lock = threading.Lock()

    def on_created(self, payload: dict) -> Breakpoint | None:
        """Record a created breakpoint. Returns it, or None if incomplete."""
        bp = Breakpoint.from_mi(bkpt_tuple(payload))
        if bp is None:
            logger.debug(f"Ignoring breakpoint notification without location: {payload}")
            return None
        with self._lock:
            self._breakpoints[bp.number] = bp
        return bp

    def on_modified(self, payload: dict) -> Breakpoint | None:
        """Update location/enabled of a known breakpoint (e.g. a pending one resolved)."""
        fields = bkpt_tuple(payload)
        number = fields.get("number")
        with self._lock:
            if number is None or str(number) not in self._breakpoints:
                return None
        return self.on_created(payload)

    def on_deleted(self, payload: dict) -> str | None:
        """Forget a deleted breakpoint. Returns its number if it was known."""
        number = payload.get("id") or payload.get("number")
        if number is None:
            return None
        with self._lock:
            removed = self._breakpoints.pop(str(number), None)
        return str(number) if removed is not None else None

    def get(self, number: str | int) -> Breakpoint | None:
        with self._lock:
            return self._breakpoints.get(str(number))

    def list(self) -> list[Breakpoint]:
        with self._lock:
            return sorted(
                self._breakpoints.values(),
                key=lambda bp: (int(bp.number) if bp.number.isdigit() else 0, bp.number),
            )

    def clear(self) -> None:
        with self._lock:
            self._breakpoints.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakpoints)
