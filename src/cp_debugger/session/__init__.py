"""Debug session model: state, breakpoints, variables, adapter."""
