"""Custom exceptions for the GDB/MI adapter."""

from __future__ import annotations


class DebuggerError(Exception):
    """Base exception for all debugger errors."""

    def __init__(self, message: str, is_retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.is_retryable = is_retryable


class ToolUnavailableError(DebuggerError):
    """Raised when the gdb binary is missing or does not answer --version."""

    def __init__(self, gdb_path: str, reason: str) -> None:
        super().__init__(f"GDB is not available ({gdb_path}): {reason}")
        self.gdb_path = gdb_path
        self.reason = reason


class AlreadyRunningError(DebuggerError):
    """Raised when start() is called while a session is active."""

    def __init__(self) -> None:
        super().__init__("Debugger is already running")


class ExecutableNotFoundError(DebuggerError):
    """Raised when the debuggee binary does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Executable not found: {path}")
        self.path = path


class SpawnFailedError(DebuggerError):
    """Raised when the OS cannot create the gdb process, or it dies during startup."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to start GDB: {reason}")
        self.reason = reason


class InitTimeoutError(DebuggerError):
    """Raised when gdb does not print its first prompt in time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"GDB did not become ready within {timeout}s")
        self.timeout = timeout


class SessionNotActiveError(DebuggerError):
    """Raised when an operation needs a running gdb and there is none."""

    def __init__(self) -> None:
        super().__init__("Debugger is not running")


class CommandError(DebuggerError):
    """Raised when gdb answers a command with ^error."""

    def __init__(self, command: str, msg: str) -> None:
        super().__init__(msg)
        self.command = command
        self.msg = msg


class CommandCancelledError(DebuggerError):
    """Raised for queued commands discarded before they were sent."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Command discarded: {command}", is_retryable=True)
        self.command = command


class BreakpointInsertFailedError(DebuggerError):
    """Raised when both the base-name and full-path inserts fail."""

    def __init__(self, file: str, line: int, msg: str) -> None:
        super().__init__(f"Failed to set breakpoint at {file}:{line}: {msg}")
        self.file = file
        self.line = line
        self.msg = msg


class VariableNotFoundError(DebuggerError):
    """Raised when expanding or collapsing an unknown variable."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Variable not found: {name}")
        self.name = name
