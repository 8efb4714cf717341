"""HTTP API for the campus placement portal."""
