"""GDB subprocess supervision."""
