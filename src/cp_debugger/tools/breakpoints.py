"""Breakpoint tools: set, delete, list."""

from __future__ import annotations

from cp_debugger.exceptions import DebuggerError
from cp_debugger.session.adapter import GdbAdapter


def register_tools(mcp, adapter: GdbAdapter) -> None:
    """Register breakpoint tools with the MCP server."""

    @mcp.tool()
    def breakpoint_set(file: str, line: int) -> dict:
        """Set a breakpoint at a source line.

        Pending breakpoints are allowed, so this works before run.

        Args:
            file: Source file path (e.g., "/home/me/cf/1234A.cpp").
            line: 1-based line number.
        """
        try:
            bp = adapter.set_breakpoint(file, line)
            if bp is None:
                return {
                    "file": file,
                    "line": line,
                    "warning": "GDB accepted the breakpoint but did not report its location",
                }
            return bp.to_dict()
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def breakpoint_delete(number: int) -> dict:
        """Delete a breakpoint by its number.

        Args:
            number: Breakpoint number (from breakpoint_set or breakpoint_list).
        """
        try:
            adapter.remove_breakpoint(number)
            return {"deleted": number}
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def breakpoint_list() -> dict:
        """List all breakpoints GDB has confirmed."""
        breakpoints = adapter.get_breakpoints()
        return {
            "breakpoints": [bp.to_dict() for bp in breakpoints],
            "count": len(breakpoints),
        }
