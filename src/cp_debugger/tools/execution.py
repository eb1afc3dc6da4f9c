"""Execution control tools: run, continue, step, interrupt, program input."""

from __future__ import annotations

from typing import Callable

from cp_debugger.bridge.types import MiResult, StopEvent
from cp_debugger.events import DebugEvent, EventKind, EventRecorder
from cp_debugger.exceptions import DebuggerError
from cp_debugger.session.adapter import GdbAdapter
from cp_debugger.session.state import SessionState
from cp_debugger.tools.inspection import read_source_context

_SETTLED = (EventKind.STOPPED, EventKind.PROGRAM_EXITED, EventKind.EXITED)


def _add_source(result: dict, stop: StopEvent | None) -> None:
    """Add source context to a result dict if frame has file/line info."""
    if stop and stop.frame:
        source = read_source_context(stop.frame.file, stop.frame.line)
        if source:
            result["source"] = source


def event_response(event: DebugEvent | None, adapter: GdbAdapter) -> dict:
    """Describe where execution ended up after waiting for event."""
    if event is None:
        return {"state": adapter.state.value, "timeout": True}
    if event.kind == EventKind.PROGRAM_EXITED:
        return {"state": "exited", **event.payload}
    if event.kind == EventKind.EXITED:
        return {"state": "terminated", **event.payload}

    stop: StopEvent = event.payload
    response = {"state": "stopped", **stop.to_dict()}
    _add_source(response, stop)
    return response


def _run_and_wait(
    adapter: GdbAdapter,
    recorder: EventRecorder,
    action: Callable[[], MiResult],
    wait: bool,
    timeout: float,
) -> dict:
    """Send an execution command, then optionally block until it settles.

    Only events emitted after the command was sent are considered, so a stale
    stop from an earlier step is never reported.
    """
    try:
        mark = recorder.last_seq
        result = action()
        if result.timed_out:
            return {
                "state": adapter.state.value,
                "warning": "GDB did not acknowledge the command in time",
            }
        if not wait:
            return {"state": adapter.state.value}
        event = recorder.wait_for(_SETTLED, after_seq=mark, timeout=timeout)
        return event_response(event, adapter)
    except DebuggerError as e:
        return {"error": str(e)}


def register_tools(mcp, adapter: GdbAdapter, recorder: EventRecorder) -> None:
    """Register execution control tools with the MCP server."""

    @mcp.tool()
    def run(wait: bool = True, timeout: float = 30.0) -> dict:
        """Run the program from the start.

        Stops at the first breakpoint, or runs to completion.

        Args:
            wait: Block until the program stops or exits. Default true.
            timeout: Max seconds to wait. Default 30.
        """
        return _run_and_wait(adapter, recorder, adapter.run, wait, timeout)

    @mcp.tool()
    def continue_execution(wait: bool = True, timeout: float = 30.0) -> dict:
        """Resume execution until the next breakpoint or program exit.

        Args:
            wait: Block until the program stops or exits. Default true.
            timeout: Max seconds to wait. Default 30.
        """
        return _run_and_wait(adapter, recorder, adapter.continue_execution, wait, timeout)

    @mcp.tool()
    def step_over(timeout: float = 10.0) -> dict:
        """Step one source line, over function calls.

        Args:
            timeout: Max seconds to wait for the step to finish. Default 10.
        """
        return _run_and_wait(adapter, recorder, adapter.step_over, True, timeout)

    @mcp.tool()
    def step_into(timeout: float = 10.0) -> dict:
        """Step one source line, into function calls.

        Args:
            timeout: Max seconds to wait for the step to finish. Default 10.
        """
        return _run_and_wait(adapter, recorder, adapter.step_into, True, timeout)

    @mcp.tool()
    def step_out(timeout: float = 10.0) -> dict:
        """Run until the current function returns.

        Args:
            timeout: Max seconds to wait. Default 10.
        """
        return _run_and_wait(adapter, recorder, adapter.step_out, True, timeout)

    @mcp.tool()
    def interrupt(timeout: float = 5.0) -> dict:
        """Pause a running program (e.g., one stuck in an infinite loop).

        Args:
            timeout: Max seconds to wait for the program to stop. Default 5.
        """
        return _run_and_wait(adapter, recorder, adapter.interrupt, True, timeout)

    @mcp.tool()
    def wait_for_stop(timeout: float = 30.0) -> dict:
        """Block until the program stops (e.g., hits a breakpoint) or exits.

        Use after run or continue_execution with wait=false.

        Args:
            timeout: Max seconds to wait. Default 30.
        """
        if adapter.state == SessionState.STOPPED:
            return {"state": "stopped"}
        event = recorder.wait_for(_SETTLED, after_seq=recorder.last_seq, timeout=timeout)
        return event_response(event, adapter)

    @mcp.tool()
    def send_input(text: str) -> dict:
        """Send a line of input to the program's stdin.

        Args:
            text: The line to send, without the trailing newline.
        """
        try:
            adapter.send_input(text)
            return {"sent": text}
        except DebuggerError as e:
            return {"error": str(e)}
