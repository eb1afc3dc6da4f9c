"""Inspection tools: variables, call stack, watches, expressions."""

from __future__ import annotations

import os

from cp_debugger.bridge.types import VariableScope
from cp_debugger.exceptions import DebuggerError
from cp_debugger.session.adapter import GdbAdapter


def read_source_context(
    file: str | None,
    line: int | None,
    context: int = 2,
) -> list[dict] | None:
    """Read source lines around a location.

    Returns a list of dicts with 'line', 'text', and optionally 'current': True
    for the active line. Returns None if file is unavailable or line is unknown.
    """
    if not file or not line:
        return None
    if not os.path.isfile(file):
        return None

    try:
        with open(file, "r", errors="replace") as f:
            all_lines = f.readlines()
    except OSError:
        return None

    total = len(all_lines)
    start = max(1, line - context)
    end = min(total, line + context)

    result = []
    for i in range(start, end + 1):
        entry: dict = {"line": i, "text": all_lines[i - 1].rstrip("\n\r")}
        if i == line:
            entry["current"] = True
        result.append(entry)
    return result


def _parse_scope(scope: str | None) -> VariableScope | None:
    if not scope:
        return None
    return VariableScope(scope)


def register_tools(mcp, adapter: GdbAdapter) -> None:
    """Register inspection tools with the MCP server."""

    @mcp.tool()
    def variables(refresh: bool = False) -> dict:
        """List locals, globals and watched expressions in the current frame.

        Values are refreshed automatically shortly after every stop.

        Args:
            refresh: Re-read them from GDB now instead of using the last refresh.
        """
        try:
            if refresh:
                adapter.refresh_variables()
            current = adapter.get_variables()
            return {
                "state": adapter.state.value,
                "variables": [v.to_dict() for v in current],
                "count": len(current),
            }
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def call_stack(refresh: bool = False) -> dict:
        """Get the call stack, innermost frame first.

        Args:
            refresh: Re-read it from GDB now instead of using the last refresh.
        """
        try:
            frames = adapter.refresh_call_stack() if refresh else adapter.get_call_stack()
            return {
                "frames": [f.to_dict() for f in frames],
                "depth": len(frames),
            }
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def watch_add(expression: str) -> dict:
        """Watch a variable or expression. It is re-evaluated on every stop.

        Expressions that do not evaluate in the current frame are not kept.

        Args:
            expression: Variable name or C/C++ expression (e.g., "n", "a[i]").
        """
        try:
            var = adapter.add_watch_variable(expression)
            if var is None:
                return {
                    "expression": expression,
                    "watched": False,
                    "warning": "Expression could not be evaluated in the current frame",
                }
            return {"expression": expression, "watched": True, **var.to_dict()}
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def watch_remove(expression: str) -> dict:
        """Stop watching an expression.

        Args:
            expression: The watched expression, as given to watch_add.
        """
        adapter.remove_watch_variable(expression)
        return {"expression": expression, "watched": False}

    @mcp.tool()
    def variable_expand(name: str, scope: str | None = None) -> dict:
        """Expand a container, array or struct to show its elements.

        Args:
            name: Variable name.
            scope: Optional "local", "global" or "watch" when the same name
                   exists in more than one place.
        """
        try:
            var = adapter.expand_variable(name, _parse_scope(scope))
            return var.to_dict()
        except (DebuggerError, ValueError) as e:
            return {"error": str(e)}

    @mcp.tool()
    def variable_collapse(name: str, scope: str | None = None) -> dict:
        """Collapse an expanded variable.

        Args:
            name: Variable name.
            scope: Optional "local", "global" or "watch".
        """
        try:
            var = adapter.collapse_variable(name, _parse_scope(scope))
            return var.to_dict()
        except (DebuggerError, ValueError) as e:
            return {"error": str(e)}

    @mcp.tool()
    def evaluate(expression: str) -> dict:
        """Evaluate a C/C++ expression in the current frame.

        Args:
            expression: Expression to evaluate (e.g., "v.size()", "dp[n][k]").
        """
        try:
            value = adapter.evaluate_expression(expression)
            return {"expression": expression, "value": value}
        except DebuggerError as e:
            return {"error": str(e)}
