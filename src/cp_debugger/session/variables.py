"""Variable and call-stack model.

Variables live in an id-keyed store with a (group, name) index on the side, so
a watched "i" and a local "i" never overwrite each other. Locals are replaced
wholesale on each refresh; the call stack likewise.
"""

from __future__ import annotations

import itertools
import logging
import threading

from cp_debugger.bridge.types import FrameInfo, Variable, VariableScope
from cp_debugger.bridge.values import make_variable
from cp_debugger.constants import MAX_CHILDREN

logger = logging.getLogger(__name__)

_FRAME = "frame"
_WATCH = "watch"


def _group(scope: VariableScope) -> str:
    return _WATCH if scope == VariableScope.WATCH else _FRAME


def parse_variable_list(
    records: list,
    types: dict[str, str] | None = None,
    max_children: int = MAX_CHILDREN,
) -> list[Variable]:
    """Turn the variables=[...] list of a -stack-list-variables result into Variables.

    types supplies type names for records that lack one (--all-values omits
    them). Records without a name are skipped.
    """
    types = types or {}
    variables = []
    for rec in records:
        if not isinstance(rec, dict) or not rec.get("name"):
            logger.debug(f"Skipping malformed variable record: {rec!r}")
            continue
        name = rec["name"]
        type_name = rec.get("type") or types.get(name, "")
        variables.append(
            make_variable(name, rec.get("value", ""), type_name, max_children=max_children)
        )
    return variables


def parse_stack(records: list) -> list[FrameInfo]:
    """Turn the stack=[frame={...},...] list of -stack-list-frames into frames."""
    frames = []
    for entry in records:
        if not isinstance(entry, dict):
            continue
        frame = entry.get("frame", entry)
        if isinstance(frame, dict):
            frames.append(FrameInfo.from_mi(frame))
    return frames


class VariableModel:
    """Current variables, the call stack, and the set of watched names."""

    def __init__(self, max_children: int = MAX_CHILDREN) -> None:
        self.max_children = max_children
        self._by_id: dict[int, Variable] = {}
        self._index: dict[tuple[str, str], int] = {}
        self._ids = itertools.count(1)
        self._call_stack: list[FrameInfo] = []
        # ordered set
        self._watch_names: dict[str, None] = {}
        self._lock = threading.Lock()

    def _store(self, var: Variable) -> Variable:
        key = (_group(var.scope), var.name)
        old_id = self._index.get(key)
        if old_id is not None:
            self._by_id.pop(old_id, None)
        var.id = next(self._ids)
        self._by_id[var.id] = var
        self._index[key] = var.id
        return var

    def _remove(self, group: str, name: str) -> Variable | None:
        var_id = self._index.pop((group, name), None)
        if var_id is None:
            return None
        return self._by_id.pop(var_id, None)

    def replace_frame_variables(self, variables: list[Variable]) -> list[Variable]:
        """Swap in a fresh set of locals/globals, keeping watch entries."""
        with self._lock:
            for group, name in list(self._index):
                if group == _FRAME:
                    self._remove(group, name)
            return [self._store(v) for v in variables]

    def set_watch_value(self, name: str, value: str, type_name: str = "") -> Variable:
        """Store the evaluated value of a watched expression."""
        if not type_name:
            local = self.get(name, VariableScope.LOCAL)
            type_name = local.type if local is not None else ""
        var = make_variable(
            name, value, type_name, scope=VariableScope.WATCH, max_children=self.max_children
        )
        with self._lock:
            return self._store(var)

    def drop_watch_value(self, name: str) -> Variable | None:
        with self._lock:
            return self._remove(_WATCH, name)

    def add_watch_name(self, name: str) -> bool:
        """Add to the watch set. Returns False if already watched."""
        with self._lock:
            if name in self._watch_names:
                return False
            self._watch_names[name] = None
            return True

    def remove_watch_name(self, name: str) -> bool:
        with self._lock:
            if name not in self._watch_names:
                return False
            del self._watch_names[name]
            return True

    def is_watched(self, name: str) -> bool:
        with self._lock:
            return name in self._watch_names

    @property
    def watch_names(self) -> list[str]:
        with self._lock:
            return list(self._watch_names)

    def get(self, name: str, scope: VariableScope | None = None) -> Variable | None:
        """Look a variable up by name.

        Without a scope, frame variables win over watch entries of the same name.
        """
        with self._lock:
            if scope is not None:
                var_id = self._index.get((_group(scope), name))
                return self._by_id.get(var_id) if var_id is not None else None
            for group in (_FRAME, _WATCH):
                var_id = self._index.get((group, name))
                if var_id is not None:
                    return self._by_id.get(var_id)
            return None

    def variables(self) -> list[Variable]:
        with self._lock:
            return list(self._by_id.values())

    def set_call_stack(self, frames: list[FrameInfo]) -> None:
        with self._lock:
            self._call_stack = list(frames)

    @property
    def call_stack(self) -> list[FrameInfo]:
        with self._lock:
            return list(self._call_stack)

    def clear(self) -> None:
        """Forget everything, including the watch set."""
        with self._lock:
            self._by_id.clear()
            self._index.clear()
            self._call_stack = []
            self._watch_names.clear()
