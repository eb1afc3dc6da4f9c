"""Shared fixtures: an in-memory gdb that answers MI commands from a script."""

import re

import pytest

from cp_debugger.config import AdapterConfig
from cp_debugger.events import EventRecorder
from cp_debugger.session.adapter import GdbAdapter

_TOKEN_CMD_RE = re.compile(r"^(\d+)(-.*)$")

RUNNING = ["^running", '*running,thread-id="all"', "(gdb)"]

DEFAULT_RESPONSES = {
    "-gdb-set": ["^done", "(gdb)"],
    "-environment-directory": ['^done,source-path="/tmp:$cdir:$cwd"', "(gdb)"],
    "-break-delete": ["^done", "(gdb)"],
    "-exec-run": RUNNING,
    "-exec-continue": RUNNING,
    "-exec-next": RUNNING,
    "-exec-step": RUNNING,
    "-exec-finish": RUNNING,
    "-exec-interrupt": ["^done", "(gdb)"],
    "-stack-list-variables": ["^done,variables=[]", "(gdb)"],
    "-stack-list-frames": ["^done,stack=[]", "(gdb)"],
    "-data-evaluate-expression": [
        '^error,msg="No symbol in current context."',
        "(gdb)",
    ],
}


def bkpt_reply(number, file, line, fullname=None):
    fullname = fullname or f"/work/{file}"
    return (
        f'^done,bkpt={{number="{number}",type="breakpoint",disp="keep",'
        f'enabled="y",addr="0x0000555555555189",func="main",file="{file}",'
        f'fullname="{fullname}",line="{line}",thread-groups=["i1"],times="0"}}'
    )


class FakeGdbProcess:
    """Stands in for GdbProcess. Replies to each command as soon as it is written."""

    def __init__(self, gdb, on_output, on_stderr=None, on_exit=None, gdb_command="gdb", extra_args=None):
        self.gdb = gdb
        self.on_output = on_output
        self.on_stderr = on_stderr
        self.on_exit = on_exit
        self.gdb_command = gdb_command
        self.extra_args = extra_args
        self.alive = False
        self.returncode = None
        self.pid = 4242
        self.killed = False
        self.closed = False
        self.executable = None

    @property
    def is_alive(self):
        return self.alive

    def start(self, executable):
        self.executable = executable
        self.alive = True
        if self.gdb.start_exit_code is not None:
            self.exit(self.gdb.start_exit_code)
            return
        if self.gdb.banner:
            self.emit(*self.gdb.banner)

    def emit(self, *lines):
        self.on_output(("\n".join(lines) + "\n").encode())

    def write(self, text):
        if not self.alive:
            raise OSError("GDB is not running")
        self.gdb.written.append(text)
        match = _TOKEN_CMD_RE.match(text.rstrip("\n"))
        if match is None:
            return
        token, command = match.groups()
        self.gdb.commands.append(command)

        if command == "-gdb-exit":
            if self.gdb.exit_on_quit:
                self.emit(f"{token}^exit")
                self.exit(0)
            return

        reply = self.gdb.reply_for(command)
        if reply is None:
            return
        lines = [f"{token}{line}" if line.startswith("^") else line for line in reply]
        self.emit(*lines)

    def exit(self, code):
        self.alive = False
        self.returncode = code
        if self.on_exit is not None:
            self.on_exit(code)

    def wait(self, timeout=5.0):
        return not self.alive

    def kill(self):
        self.killed = True
        if self.alive:
            self.exit(-15)

    def close(self):
        self.closed = True


class FakeGdb:
    """Process factory that keeps the scripted replies and what was sent."""

    def __init__(self):
        self.responses = dict(DEFAULT_RESPONSES)
        self.banner = ['=thread-group-added,id="i1"', "(gdb)"]
        self.exit_on_quit = True
        self.start_exit_code = None
        self.process = None
        self.written = []
        self.commands = []
        self._bkpt_numbers = iter(range(1, 1000))

    def __call__(self, **kwargs):
        self.process = FakeGdbProcess(self, **kwargs)
        return self.process

    def reply_for(self, command):
        """Longest matching prefix wins; callables get the command text."""
        keys = [k for k in self.responses if command.startswith(k)]
        if keys:
            reply = self.responses[max(keys, key=len)]
            return reply(command) if callable(reply) else reply
        if command.startswith("-break-insert"):
            return self._break_insert(command)
        return ["^done", "(gdb)"]

    def _break_insert(self, command):
        location = command.split(" ", 1)[1].strip('"')
        file, line = location.rsplit(":", 1)
        file = file.rsplit("/", 1)[-1]
        return [bkpt_reply(next(self._bkpt_numbers), file, line), "(gdb)"]

    def sent(self, prefix):
        return [c for c in self.commands if c.startswith(prefix)]


@pytest.fixture
def fake_gdb():
    return FakeGdb()


@pytest.fixture
def config():
    return AdapterConfig(
        init_timeout=1.0,
        command_timeout=1.0,
        exit_timeout=0.5,
        settle_delay=0.0,
        auto_watch=False,
    )


@pytest.fixture
def program(tmp_path):
    """A compiled program and its source, as files on disk."""
    source = tmp_path / "a.cpp"
    source.write_text(
        "#include <bits/stdc++.h>\n"
        "int main() {\n"
        "    int n = 5;\n"
        "    std::vector<int> v = {1, 2, 3};\n"
        "    return 0;\n"
        "}\n"
    )
    executable = tmp_path / "a.out"
    executable.write_bytes(b"\x7fELF")
    return str(executable), str(source)


@pytest.fixture
def adapter(config, fake_gdb):
    adapter = GdbAdapter(
        config,
        process_factory=fake_gdb,
        prober=lambda gdb_path, timeout: "GNU gdb (GDB) 14.2",
    )
    yield adapter
    adapter.stop()


@pytest.fixture
def recorder(adapter):
    recorder = EventRecorder(adapter.events)
    yield recorder
    recorder.close()


@pytest.fixture
def started(adapter, recorder, program):
    """An adapter with gdb up and READY on the sample program."""
    adapter.start(*program)
    return adapter
