"""Adapter configuration: defaults, optional JSON file, environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

from cp_debugger.constants import (
    COMMAND_TIMEOUT,
    DEFAULT_GDB,
    EXIT_TIMEOUT,
    INIT_TIMEOUT,
    MAX_CHILDREN,
    PROBE_TIMEOUT,
    SETTLE_DELAY,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "cpdebugconfig.json"


@dataclass
class AdapterConfig:
    """Configuration for one GdbAdapter."""

    gdb_path: str = DEFAULT_GDB
    gdb_args: list[str] = field(default_factory=list)
    probe_timeout: float = PROBE_TIMEOUT
    init_timeout: float = INIT_TIMEOUT
    command_timeout: float = COMMAND_TIMEOUT
    exit_timeout: float = EXIT_TIMEOUT
    settle_delay: float = SETTLE_DELAY
    auto_watch: bool = True
    max_children: int = MAX_CHILDREN


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: str | os.PathLike | None = None) -> AdapterConfig:
    """Load configuration from cpdebugconfig.json if it exists.

    Unknown keys are dropped. A file that cannot be read or parsed is logged
    and ignored. Environment variables win over the file:
    CP_DEBUGGER_GDB sets gdb_path, CP_DEBUGGER_AUTO_WATCH sets auto_watch.
    """
    config = AdapterConfig()
    config_path = Path(path) if path is not None else Path(CONFIG_FILENAME)

    if config_path.exists():
        try:
            with open(config_path) as f:
                data = json.load(f)
            known = {f.name for f in fields(AdapterConfig)}
            unknown = set(data) - known
            if unknown:
                logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
            config = AdapterConfig(**{k: v for k, v in data.items() if k in known})
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load config {config_path}: {e}")

    gdb = os.environ.get("CP_DEBUGGER_GDB")
    if gdb:
        config.gdb_path = gdb
    auto_watch = os.environ.get("CP_DEBUGGER_AUTO_WATCH")
    if auto_watch is not None:
        config.auto_watch = _parse_bool(auto_watch)

    return config
