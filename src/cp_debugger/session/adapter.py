"""GDB/MI adapter: the operation and event surface the IDE talks to.

One adapter drives at most one gdb process at a time. Output from gdb is
demultiplexed on its reader thread: result records complete the in-flight
command, async records move the session state and update the breakpoint and
variable models, and everything the frontend cares about goes out as events.

Event handlers run on the reader thread and must not block on adapter
commands; hand such work to another thread.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable

from cp_debugger.bridge.correlator import CommandCorrelator
from cp_debugger.bridge.records import (
    MiDemultiplexer,
    MiRecord,
    RecordKind,
    exit_code_of,
    quote_mi_string,
)
from cp_debugger.bridge.types import (
    Breakpoint,
    FrameInfo,
    MiResult,
    StopEvent,
    Variable,
    VariableScope,
)
from cp_debugger.bridge.values import make_variable
from cp_debugger.config import AdapterConfig
from cp_debugger.constants import AUTO_WATCH_MAX_NAME, AUTO_WATCH_NAMES, INIT_COMMANDS
from cp_debugger.events import EventBus, EventKind
from cp_debugger.exceptions import (
    AlreadyRunningError,
    BreakpointInsertFailedError,
    CommandError,
    DebuggerError,
    ExecutableNotFoundError,
    InitTimeoutError,
    SessionNotActiveError,
    SpawnFailedError,
    VariableNotFoundError,
)
from cp_debugger.process.gdb import GdbProcess, probe_gdb
from cp_debugger.session.breakpoints import BreakpointRegistry, bkpt_tuple
from cp_debugger.session.state import SessionState, SessionStateMachine
from cp_debugger.session.variables import VariableModel, parse_stack, parse_variable_list

logger = logging.getLogger(__name__)

_OUTPUT_LOG_LINES = 2000


def _auto_watch_candidate(name: str) -> bool:
    return (
        not name.startswith("__")
        and "std::" not in name
        and len(name) < AUTO_WATCH_MAX_NAME
    )


class GdbAdapter:
    """Supervises a gdb --interpreter=mi2 process for one debuggee."""

    def __init__(
        self,
        config: AdapterConfig | None = None,
        process_factory: Callable[..., GdbProcess] = GdbProcess,
        prober: Callable[[str, float], str] = probe_gdb,
    ) -> None:
        self.config = config or AdapterConfig()
        self.events = EventBus()
        self.breakpoints = BreakpointRegistry()
        self.model = VariableModel(max_children=self.config.max_children)
        self.executable: str | None = None
        self.source_file: str | None = None
        self.gdb_version: str | None = None

        self._process_factory = process_factory
        self._prober = prober
        self._process: GdbProcess | None = None
        self._demux: MiDemultiplexer | None = None
        self._state = SessionStateMachine()
        self._correlator = CommandCorrelator(timeout=self.config.command_timeout)
        self._ready = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._stopping = False
        self._settle_timer: threading.Timer | None = None
        self._output: deque[str] = deque(maxlen=_OUTPUT_LOG_LINES)

        self._handlers: dict[RecordKind, Callable[[MiRecord], None]] = {
            RecordKind.PROMPT: self._handle_prompt,
            RecordKind.CONSOLE: self._handle_console,
            RecordKind.TARGET: self._handle_console,
            RecordKind.LOG: self._handle_log,
            RecordKind.STOPPED: self._handle_stopped,
            RecordKind.RUNNING: self._handle_running,
            RecordKind.BREAKPOINT_CREATED: self._handle_breakpoint_created,
            RecordKind.BREAKPOINT_MODIFIED: self._handle_breakpoint_modified,
            RecordKind.BREAKPOINT_DELETED: self._handle_breakpoint_deleted,
            RecordKind.DONE: self._handle_done,
            RecordKind.ERROR: self._handle_error,
            RecordKind.EXIT: self._handle_exit,
            RecordKind.NOTIFY: self._handle_notify,
            RecordKind.UNKNOWN: self._handle_unknown,
        }

    # -- State --

    @property
    def state(self) -> SessionState:
        return self._state.state

    @property
    def is_debugging(self) -> bool:
        return self._state.is_active

    @property
    def output_log(self) -> list[str]:
        """Raw MI lines received this session (most recent last)."""
        return list(self._output)

    def get_breakpoints(self) -> list[Breakpoint]:
        return self.breakpoints.list()

    def get_variables(self) -> list[Variable]:
        return self.model.variables()

    def get_call_stack(self) -> list[FrameInfo]:
        return self.model.call_stack

    def status(self) -> dict:
        result: dict = {
            "state": self.state.value,
            "breakpoints": len(self.breakpoints),
            "watch": self.model.watch_names,
            "queued_commands": self._correlator.queued,
        }
        if self.executable:
            result["executable"] = self.executable
        if self.source_file:
            result["source_file"] = self.source_file
        if self.gdb_version:
            result["gdb"] = self.gdb_version
        if self._process is not None and self._process.pid is not None:
            result["pid"] = self._process.pid
        return result

    # -- Lifecycle --

    def probe(self) -> str:
        """Check that gdb is installed. Returns its version line."""
        return self._prober(self.config.gdb_path, self.config.probe_timeout)

    def start(self, executable: str, source_file: str) -> None:
        """Launch gdb on executable and bring the session to READY.

        Raises:
            AlreadyRunningError: A session is already active.
            ExecutableNotFoundError: executable does not exist.
            ToolUnavailableError: gdb is missing or broken.
            SpawnFailedError: The process could not be created or died early.
            InitTimeoutError: gdb never printed its first prompt.
        """
        with self._lifecycle_lock:
            if self._state.is_active:
                raise AlreadyRunningError()
            if not os.path.isfile(executable):
                raise ExecutableNotFoundError(executable)

            self.gdb_version = self.probe()

            self._state.transition(SessionState.STARTING)
            self.executable = executable
            self.source_file = source_file
            self._stopping = False
            self._ready.clear()
            self._output.clear()
            self._demux = MiDemultiplexer(self._on_record)

            try:
                self._process = self._process_factory(
                    on_output=self._on_output,
                    on_stderr=self._on_stderr,
                    on_exit=self._on_process_exit,
                    gdb_command=self.config.gdb_path,
                    extra_args=self.config.gdb_args,
                )
                self._process.start(executable)
                self._correlator.attach(self._process.write)
                self._await_ready()
            except DebuggerError:
                logger.error(f"GDB startup failed, output so far: {list(self._output)}")
                self._stopping = True
                self._teardown(force=True)
                raise

            self._state.transition(SessionState.READY)
            logger.info(f"GDB ready for {executable}")

        self._initialize()
        self.events.emit(
            EventKind.STARTED,
            {"executable": executable, "source_file": source_file},
        )

    def _await_ready(self) -> None:
        deadline = time.monotonic() + self.config.init_timeout
        while not self._ready.wait(timeout=0.05):
            if not self._process.is_alive:
                raise SpawnFailedError(
                    f"GDB exited with code {self._process.returncode} during startup"
                )
            if time.monotonic() >= deadline:
                raise InitTimeoutError(self.config.init_timeout)

    def _initialize(self) -> None:
        """Send the setup commands. Failures are logged and skipped."""
        commands = list(INIT_COMMANDS)
        if self.source_file:
            source_dir = os.path.dirname(os.path.abspath(self.source_file))
            commands.append(f"-environment-directory {quote_mi_string(source_dir)}")

        for cmd in commands:
            try:
                self.command(cmd)
            except DebuggerError as e:
                logger.warning(f"Init command failed, continuing: {cmd}: {e}")

    def stop(self) -> None:
        """Exit gdb, gracefully if possible, and clear all session state.

        Calling stop() with no active session does nothing.
        """
        with self._lifecycle_lock:
            process = self._process
            if process is None and not self._state.is_active:
                return
            self._stopping = True
            self._cancel_settle_timer()
            self._correlator.flush(include_in_flight=True)

            code = None
            graceful = False
            if process is not None and process.is_alive:
                try:
                    self._correlator.send("-gdb-exit").result(
                        timeout=self.config.exit_timeout
                    )
                except (DebuggerError, FutureTimeoutError) as e:
                    logger.debug(f"-gdb-exit did not complete: {e}")
                graceful = process.wait(self.config.exit_timeout)
                if not graceful:
                    logger.warning("GDB did not exit in time, killing it")
                    process.kill()
            if process is not None:
                code = process.returncode

            self._teardown()
            logger.info(f"Debug session stopped ({'graceful' if graceful else 'forced'})")

        self.events.emit(EventKind.EXITED, {"code": code, "graceful": graceful})

    def _teardown(self, force: bool = False) -> None:
        """Drop the process and every piece of session state."""
        self._cancel_settle_timer()
        self._correlator.detach()
        process, self._process = self._process, None
        if process is not None:
            if force:
                process.kill()
            process.close()
        if self._demux is not None:
            self._demux.close()
            self._demux = None
        self.breakpoints.clear()
        self.model.clear()
        self._output.clear()
        self._state.transition(SessionState.TERMINATED)

    def _on_process_exit(self, code: int | None) -> None:
        if self._stopping or self._state.state == SessionState.STARTING:
            return
        with self._lifecycle_lock:
            if self._stopping or self._process is None:
                return
            self._stopping = True
            logger.error(f"GDB exited unexpectedly with code {code}")
            self._teardown()
        self.events.emit(EventKind.ERROR, f"GDB exited unexpectedly (code {code})")
        self.events.emit(EventKind.EXITED, {"code": code, "graceful": False})

    # -- Command channel --

    def send(self, command: str) -> Future:
        """Queue a raw MI command; the future resolves to an MiResult."""
        return self._correlator.send(command)

    def command(self, command: str) -> MiResult:
        """Send an MI command and wait for its result.

        Raises CommandError on ^error. A timeout returns an empty result with
        timed_out set.
        """
        return self.send(command).result()

    def _require_active(self) -> None:
        if self._process is None or not self._correlator.is_active:
            raise SessionNotActiveError()

    # -- Execution control --

    def run(self) -> MiResult:
        """Start the debuggee (-exec-run)."""
        return self.command("-exec-run")

    def continue_execution(self) -> MiResult:
        return self.command("-exec-continue")

    def step_over(self) -> MiResult:
        return self.command("-exec-next")

    def step_into(self) -> MiResult:
        return self.command("-exec-step")

    def step_out(self) -> MiResult:
        return self.command("-exec-finish")

    def interrupt(self) -> MiResult:
        return self.command("-exec-interrupt")

    def send_input(self, text: str) -> None:
        """Write a line to the debuggee's stdin (through gdb's stdin)."""
        self._require_active()
        try:
            self._process.write(text + "\n")
        except OSError as e:
            raise SessionNotActiveError() from e

    # -- Breakpoints --

    def set_breakpoint(self, file: str, line: int) -> Breakpoint | None:
        """Insert a breakpoint at file:line.

        Tries the base name first, then the full path. Returns the registry
        entry once gdb has reported it, else None.

        Raises BreakpointInsertFailedError if both attempts fail.
        """
        self._require_active()
        base = os.path.basename(file)
        try:
            result = self.command(f"-break-insert {quote_mi_string(f'{base}:{line}')}")
        except CommandError as first:
            logger.info(f"Breakpoint at {base}:{line} failed ({first.msg}), retrying with full path")
            try:
                result = self.command(f"-break-insert {quote_mi_string(f'{file}:{line}')}")
            except CommandError as e:
                raise BreakpointInsertFailedError(file, line, e.msg) from e

        number = bkpt_tuple(result.payload).get("number") if isinstance(result.payload, dict) else None
        return self.breakpoints.get(number) if number else None

    def remove_breakpoint(self, number: str | int) -> None:
        """Delete a breakpoint by its gdb number."""
        self.command(f"-break-delete {number}")
        # gdb reports deletions it was asked for over MI only through the
        # result record, never as =breakpoint-deleted. A late notification
        # for the same number finds nothing in the registry and is dropped.
        self._handle_breakpoint_deleted(
            MiRecord(
                kind=RecordKind.BREAKPOINT_DELETED,
                line=f"-break-delete {number}",
                message="breakpoint-deleted",
                payload={"id": str(number)},
            )
        )

    # -- Variables and stack --

    def refresh_variables(self) -> list[Variable]:
        """Re-read locals, auto-watch candidates and watch values."""
        if self.state in (SessionState.EXITED, SessionState.TERMINATED, SessionState.IDLE):
            logger.debug("Program not running, skipping variable refresh")
            return []

        types: dict[str, str] = {}
        try:
            simple = self.command("-stack-list-variables --simple-values")
            for rec in simple.get("variables") or []:
                if isinstance(rec, dict) and rec.get("name"):
                    types[rec["name"]] = rec.get("type", "")
        except CommandError as e:
            logger.debug(f"Could not list variable types: {e.msg}")

        result = self.command("-stack-list-variables --all-values")
        variables = parse_variable_list(
            result.get("variables") or [], types, self.config.max_children
        )
        stored = self.model.replace_frame_variables(variables)

        fresh: set[str] = set()
        if self.config.auto_watch:
            fresh = self._auto_watch(list(types))
        for name in self.model.watch_names:
            if name not in fresh:
                self._evaluate_watch(name)

        self.events.emit(EventKind.VARIABLES_UPDATED, self.model.variables())
        return stored

    def _auto_watch(self, local_names: list[str]) -> set[str]:
        """Watch the conventional names and discovered locals that resolve."""
        added: set[str] = set()
        candidates = list(AUTO_WATCH_NAMES) + [
            n for n in local_names if _auto_watch_candidate(n)
        ]
        for name in dict.fromkeys(candidates):
            if self.model.is_watched(name):
                continue
            if self._evaluate_watch(name) is not None:
                self.model.add_watch_name(name)
                added.add(name)
        return added

    def _evaluate_watch(self, name: str) -> Variable | None:
        """Evaluate a watched name. Unresolvable names lose their cached value."""
        try:
            result = self.command(f"-data-evaluate-expression {quote_mi_string(name)}")
        except CommandError:
            self.model.drop_watch_value(name)
            return None
        value = result.get("value")
        if value is None:
            self.model.drop_watch_value(name)
            return None
        return self.model.set_watch_value(name, value)

    def refresh_call_stack(self) -> list[FrameInfo]:
        if self.state in (SessionState.EXITED, SessionState.TERMINATED, SessionState.IDLE):
            logger.debug("Program not running, skipping call stack refresh")
            return []
        result = self.command("-stack-list-frames")
        frames = parse_stack(result.get("stack") or [])
        self.model.set_call_stack(frames)
        self.events.emit(EventKind.CALLSTACK_UPDATED, frames)
        return frames

    def add_watch_variable(self, name: str) -> Variable | None:
        """Watch an expression. Returns its value, or None if it did not resolve.

        A name that fails to evaluate is not kept in the watch set.
        """
        self._require_active()
        added = self.model.add_watch_name(name)
        try:
            var = self._evaluate_watch(name)
        except DebuggerError:
            if added:
                self.model.remove_watch_name(name)
            raise
        if var is None:
            if added:
                self.model.remove_watch_name(name)
            logger.debug(f"Watch {name!r} did not resolve")
            return None
        self.events.emit(EventKind.VARIABLES_UPDATED, self.model.variables())
        return var

    def remove_watch_variable(self, name: str) -> None:
        self.model.remove_watch_name(name)
        self.model.drop_watch_value(name)
        self.events.emit(EventKind.VARIABLES_UPDATED, self.model.variables())

    def expand_variable(self, name: str, scope: VariableScope | None = None) -> Variable:
        """Mark a variable expanded, fetching gdb's own children the first time.

        Raises VariableNotFoundError for unknown names.
        """
        var = self.model.get(name, scope)
        if var is None:
            raise VariableNotFoundError(name)

        if var.is_complex and var.varobj is None:
            varobj = f"var{var.id}"
            self.command(f"-var-create {varobj} * {quote_mi_string(var.name)}")
            var.varobj = varobj
            result = self.command(f"-var-list-children --all-values {varobj}")
            children = []
            for entry in result.get("children") or []:
                child = entry.get("child", entry) if isinstance(entry, dict) else None
                if not isinstance(child, dict):
                    continue
                children.append(
                    make_variable(
                        child.get("exp", child.get("name", "?")),
                        child.get("value", ""),
                        child.get("type", ""),
                        scope=VariableScope.ELEMENT,
                        max_children=self.config.max_children,
                    )
                )
            if children:
                var.children = children

        var.expanded = True
        self.events.emit(EventKind.VARIABLES_UPDATED, self.model.variables())
        return var

    def collapse_variable(self, name: str, scope: VariableScope | None = None) -> Variable:
        var = self.model.get(name, scope)
        if var is None:
            raise VariableNotFoundError(name)
        var.expanded = False
        self.events.emit(EventKind.VARIABLES_UPDATED, self.model.variables())
        return var

    def evaluate_expression(self, expression: str) -> str:
        """Evaluate an expression in the current frame. Raises CommandError."""
        result = self.command(f"-data-evaluate-expression {quote_mi_string(expression)}")
        return result.get("value", "")

    # -- Settle-delay refresh --

    def _schedule_refresh(self) -> None:
        self._cancel_settle_timer()
        timer = threading.Timer(self.config.settle_delay, self._refresh_after_stop)
        timer.daemon = True
        self._settle_timer = timer
        timer.start()

    def _cancel_settle_timer(self) -> None:
        timer, self._settle_timer = self._settle_timer, None
        if timer is not None:
            timer.cancel()

    def _refresh_after_stop(self) -> None:
        if self.state != SessionState.STOPPED:
            logger.debug(f"Skipping refresh, state is {self.state.value}")
            return
        try:
            self.refresh_variables()
        except DebuggerError as e:
            logger.error(f"Variable refresh failed: {e}")
        try:
            self.refresh_call_stack()
        except DebuggerError as e:
            logger.error(f"Call stack refresh failed: {e}")

    # -- Output routing (reader thread) --

    def _on_output(self, chunk: bytes) -> None:
        demux = self._demux
        if demux is not None:
            demux.feed(chunk)

    def _on_stderr(self, text: str) -> None:
        self.events.emit(EventKind.ERROR, text)

    def _on_record(self, record: MiRecord) -> None:
        self._output.append(record.line)
        # models first, so a caller woken by the result sees their effect
        try:
            self._handlers[record.kind](record)
        finally:
            self._correlator.on_record(record)

    def _handle_prompt(self, record: MiRecord) -> None:
        self._ready.set()
        if not self._correlator.busy:
            logger.debug("GDB idle")

    def _handle_console(self, record: MiRecord) -> None:
        if record.text.startswith("GNU gdb"):
            self._ready.set()
        self.events.emit(EventKind.CONSOLE_OUTPUT, record.text)
        if "exited with code" in record.text:
            self._handle_exit(record)

    def _handle_log(self, record: MiRecord) -> None:
        self.events.emit(EventKind.LOG_OUTPUT, record.text)

    def _handle_stopped(self, record: MiRecord) -> None:
        self._ready.set()
        if self.state == SessionState.STARTING:
            return
        self._state.transition(SessionState.STOPPED)
        if self.state != SessionState.STOPPED:
            return

        stop = StopEvent.from_mi(record.fields)
        logger.info(f"Stopped: {stop.reason} at {stop.file}:{stop.line} in {stop.function}")
        self.events.emit(EventKind.STOPPED, stop)
        if stop.is_breakpoint:
            self.events.emit(EventKind.BREAKPOINT_HIT, stop)
        self._schedule_refresh()

    def _handle_running(self, record: MiRecord) -> None:
        if self._state.transition(SessionState.RUNNING):
            self._cancel_settle_timer()
            self.events.emit(EventKind.RUNNING, record.fields)

    def _handle_breakpoint_created(self, record: MiRecord) -> None:
        bp = self.breakpoints.on_created(record.fields)
        if bp is not None:
            self.events.emit(EventKind.BREAKPOINT_SET, bp)

    def _handle_breakpoint_modified(self, record: MiRecord) -> None:
        bp = self.breakpoints.on_modified(record.fields)
        if bp is not None:
            self.events.emit(EventKind.BREAKPOINT_SET, bp)

    def _handle_breakpoint_deleted(self, record: MiRecord) -> None:
        number = self.breakpoints.on_deleted(record.fields)
        if number is not None:
            self.events.emit(EventKind.BREAKPOINT_REMOVED, {"number": number})

    def _handle_done(self, record: MiRecord) -> None:
        # -break-insert reports its breakpoint in the result record instead
        # of a separate =breakpoint-created
        if "bkpt" in record.fields:
            self._handle_breakpoint_created(record)

    def _handle_error(self, record: MiRecord) -> None:
        logger.debug(f"GDB error: {record.fields.get('msg', record.line)}")

    def _handle_exit(self, record: MiRecord) -> None:
        if record.message == "thread-exited":
            # the thread group exit that follows carries the exit code
            logger.debug(f"Thread exited: {record.line}")
            return
        if self.state not in (SessionState.RUNNING, SessionState.STOPPED):
            logger.debug(f"Ignoring exit record in state {self.state.value}: {record.line}")
            return

        exit_code = exit_code_of(record)
        reason = record.fields.get("reason") or (
            record.message if record.kind == RecordKind.EXIT else None
        ) or "exited"
        self._state.transition(SessionState.EXITED)
        self._cancel_settle_timer()
        self._correlator.flush()
        logger.info(f"Program exited with code {exit_code}")
        self.events.emit(
            EventKind.PROGRAM_EXITED,
            {"exit_code": exit_code, "reason": reason},
        )

    def _handle_notify(self, record: MiRecord) -> None:
        logger.debug(f"Notification: {record.line}")

    def _handle_unknown(self, record: MiRecord) -> None:
        logger.warning(f"Unrecognized output: {record.line}")
