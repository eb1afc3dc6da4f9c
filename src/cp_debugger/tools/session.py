"""Session tools: debug_start, debug_stop, debug_status, debug_events."""

from __future__ import annotations

from cp_debugger.events import EventKind, EventRecorder
from cp_debugger.exceptions import DebuggerError
from cp_debugger.session.adapter import GdbAdapter
from cp_debugger.tools.inspection import read_source_context


def register_tools(mcp, adapter: GdbAdapter, recorder: EventRecorder) -> None:
    """Register session management tools with the MCP server."""

    @mcp.tool()
    def debug_start(executable: str, source_file: str) -> dict:
        """Start debugging a compiled program. Launches GDB on it.

        The program is not run yet: set breakpoints, then call run.
        Compile with -g (and ideally -O0) for usable line info and locals.

        Args:
            executable: Path to the compiled binary.
            source_file: Path to its main source file.
        """
        try:
            adapter.start(executable, source_file)
            return {"status": "started", **adapter.status()}
        except DebuggerError as e:
            return {"error": str(e)}

    @mcp.tool()
    def debug_stop() -> dict:
        """Stop debugging. Exits GDB and the program, and clears breakpoints and watches."""
        adapter.stop()
        return {"status": "stopped"}

    @mcp.tool()
    def debug_status() -> dict:
        """Get the session state and, if stopped, where."""
        result = adapter.status()
        if result["state"] != "stopped":
            return result

        for event in reversed(recorder.since(0)):
            if event.kind == EventKind.STOPPED:
                stop = event.payload
                result.update(stop.to_dict())
                source = read_source_context(stop.file, stop.line)
                if source:
                    result["source"] = source
                break
        return result

    @mcp.tool()
    def debug_events(since: int = 0, limit: int = 100) -> dict:
        """Get adapter events (stops, output, program exit, ...) in order.

        Pass the returned last_seq as since on the next call to only see new ones.

        Args:
            since: Only return events after this sequence number. Default 0.
            limit: Max events to return, newest kept. Default 100.
        """
        events = recorder.since(since)[-limit:]
        return {
            "events": [e.to_dict() for e in events],
            "last_seq": events[-1].seq if events else since,
        }
