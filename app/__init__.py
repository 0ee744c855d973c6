"""Application-facing events and diagnostics."""
