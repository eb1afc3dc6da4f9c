"""cp-debugger MCP server: source-level debugging of compiled programs via GDB/MI."""

from __future__ import annotations

import atexit
import logging
import os

from mcp.server.fastmcp import FastMCP

from cp_debugger.config import load_config
from cp_debugger.events import EventRecorder
from cp_debugger.session.adapter import GdbAdapter
from cp_debugger.tools import breakpoints as breakpoint_tools
from cp_debugger.tools import execution as execution_tools
from cp_debugger.tools import inspection as inspection_tools
from cp_debugger.tools import session as session_tools

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "WARNING"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

mcp = FastMCP("cp-debugger")

# Shared adapter, module-level singleton
_adapter = GdbAdapter(load_config())
_recorder = EventRecorder(_adapter.events)
atexit.register(_adapter.stop)

# Register tool modules
session_tools.register_tools(mcp, _adapter, _recorder)
execution_tools.register_tools(mcp, _adapter, _recorder)
breakpoint_tools.register_tools(mcp, _adapter)
inspection_tools.register_tools(mcp, _adapter)


def main() -> None:
    """Main entry point for the MCP server."""
    logger.info("Starting cp-debugger MCP server")
    mcp.run()


if __name__ == "__main__":
    main()
