"""GDB/MI record handling: line framing, parsing, command correlation."""
