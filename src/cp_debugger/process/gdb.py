"""GDB subprocess lifecycle management."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
from typing import Callable

from cp_debugger.constants import (
    DEFAULT_GDB,
    EXIT_TIMEOUT,
    GDB_LOCALE_ENV,
    GDB_MI_FLAGS,
    PROBE_TIMEOUT,
)
from cp_debugger.exceptions import SpawnFailedError, ToolUnavailableError

logger = logging.getLogger(__name__)

_READ_SIZE = 4096


def probe_gdb(gdb_command: str = DEFAULT_GDB, timeout: float = PROBE_TIMEOUT) -> str:
    """Check that gdb is installed and answers --version.

    Returns the first line of the version banner. Raises ToolUnavailableError
    if gdb is missing, times out, exits non-zero, or isn't GNU gdb.
    """
    gdb_path = shutil.which(gdb_command)
    if gdb_path is None:
        raise ToolUnavailableError(gdb_command, "not found on PATH")

    try:
        result = subprocess.run(
            [gdb_path, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise ToolUnavailableError(gdb_command, f"no answer to --version within {timeout}s")
    except OSError as e:
        raise ToolUnavailableError(gdb_command, str(e))

    if result.returncode != 0 or "GNU gdb" not in result.stdout:
        raise ToolUnavailableError(
            gdb_command, f"unexpected --version output (exit code {result.returncode})"
        )

    version = result.stdout.splitlines()[0]
    logger.info(f"Found {version}")
    return version


class GdbProcess:
    """Manages a GDB subprocess running the MI2 interpreter.

    Raw stdout chunks, stderr lines and the final exit code are handed to
    callbacks from background reader threads.
    """

    def __init__(
        self,
        on_output: Callable[[bytes], None],
        on_stderr: Callable[[str], None] | None = None,
        on_exit: Callable[[int | None], None] | None = None,
        gdb_command: str = DEFAULT_GDB,
        extra_args: list[str] | None = None,
    ) -> None:
        self._on_output = on_output
        self._on_stderr = on_stderr
        self._on_exit = on_exit
        self._gdb_command = gdb_command
        self._extra_args = list(extra_args or [])
        self._proc: subprocess.Popen | None = None
        self._stdout_thread: threading.Thread | None = None
        self._stderr_thread: threading.Thread | None = None
        self._write_lock = threading.Lock()

    @property
    def is_alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    def start(self, executable: str) -> None:
        """Spawn gdb on executable, with cwd set to the executable's directory.

        Raises SpawnFailedError if the OS cannot create the process.
        """
        if self.is_alive:
            raise SpawnFailedError("GDB is already running")

        gdb_path = shutil.which(self._gdb_command) or self._gdb_command
        cmd = [gdb_path, *GDB_MI_FLAGS, *self._extra_args, executable]
        env = {**os.environ, **GDB_LOCALE_ENV}
        cwd = os.path.dirname(os.path.abspath(executable))

        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
            )
        except OSError as e:
            self._proc = None
            raise SpawnFailedError(str(e)) from e

        logger.info(f"GDB started, pid {self._proc.pid}: {' '.join(cmd)}")

        self._stdout_thread = threading.Thread(
            target=self._read_stdout,
            daemon=True,
            name="gdb-stdout",
        )
        self._stderr_thread = threading.Thread(
            target=self._read_stderr,
            daemon=True,
            name="gdb-stderr",
        )
        self._stdout_thread.start()
        self._stderr_thread.start()

    def write(self, text: str) -> None:
        """Write raw text to gdb's stdin."""
        proc = self._proc
        if proc is None or proc.stdin is None:
            raise OSError("GDB is not running")
        with self._write_lock:
            proc.stdin.write(text.encode("utf-8"))
            proc.stdin.flush()

    def wait(self, timeout: float = EXIT_TIMEOUT) -> bool:
        """Wait for gdb to exit. Returns True if it did."""
        if self._proc is None:
            return True
        try:
            self._proc.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            return False

    def kill(self) -> None:
        """Force-kill: SIGTERM, then SIGKILL if it lingers."""
        if self._proc is None or self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait(timeout=2)

    def close(self) -> None:
        """Drop the process handle and close its pipes."""
        proc, self._proc = self._proc, None
        if proc is None:
            return
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass

    def _read_stdout(self) -> None:
        """Forward stdout chunks until EOF, then report the exit."""
        proc = self._proc
        assert proc is not None
        assert proc.stdout is not None

        try:
            while True:
                chunk = proc.stdout.read1(_READ_SIZE)
                if not chunk:
                    break
                self._on_output(chunk)
        except (OSError, ValueError) as e:
            logger.debug(f"GDB stdout closed: {e}")

        try:
            code = proc.wait(timeout=EXIT_TIMEOUT)
        except subprocess.TimeoutExpired:
            code = None
        logger.info(f"GDB exited with code {code}")
        if self._on_exit is not None:
            self._on_exit(code)

    def _read_stderr(self) -> None:
        proc = self._proc
        assert proc is not None
        assert proc.stderr is not None

        try:
            for raw_line in proc.stderr:
                line = raw_line.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                logger.warning(f"GDB stderr: {line}")
                if self._on_stderr is not None:
                    self._on_stderr(line)
        except (OSError, ValueError) as e:
            logger.debug(f"GDB stderr closed: {e}")
