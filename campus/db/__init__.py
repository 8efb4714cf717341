"""Database layer for the campus placement portal."""
