"""HTTP API for the FocusGuard agent."""
