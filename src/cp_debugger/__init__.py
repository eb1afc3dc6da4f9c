"""cp-debugger: GDB/MI adapter for a competitive programming IDE."""

__version__ = "0.1.0"
