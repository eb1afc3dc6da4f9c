"""Constants for the GDB/MI adapter."""

from __future__ import annotations

# Timeouts (in seconds)
PROBE_TIMEOUT: float = 5.0
INIT_TIMEOUT: float = 10.0
COMMAND_TIMEOUT: float = 10.0
EXIT_TIMEOUT: float = 5.0
SETTLE_DELAY: float = 0.3

DEFAULT_GDB = "gdb"

# Flags for every spawn: MI2 interpreter, no banner
GDB_MI_FLAGS: tuple[str, ...] = ("--interpreter=mi2", "--quiet")

# Fixed output locale so console text is English and parseable
GDB_LOCALE_ENV: dict[str, str] = {"LANG": "C", "LC_ALL": "C"}

# Sent after the ready handshake; failures are logged and skipped
INIT_COMMANDS: tuple[str, ...] = (
    "-gdb-set confirm off",
    "-gdb-set pagination off",
    "-gdb-set breakpoint pending on",
)

# Conventional names tried on every stop when auto-watch is on
AUTO_WATCH_NAMES: tuple[str, ...] = (
    "i", "j", "k", "n", "size", "count", "index", "result", "temp", "data",
)

# Locals longer than this are not auto-watched
AUTO_WATCH_MAX_NAME: int = 50

CONTAINER_TYPES: tuple[str, ...] = (
    "std::vector",
    "std::list",
    "std::deque",
    "std::set",
    "std::map",
    "std::unordered_set",
    "std::unordered_map",
    "std::array",
    "std::queue",
    "std::stack",
)

# Eager expansion cap for container/array children
MAX_CHILDREN: int = 100

# MI stop reasons that mean the debuggee is gone
EXIT_REASONS: frozenset[str] = frozenset(
    {"exited", "exited-normally", "exited-signalled"}
)
