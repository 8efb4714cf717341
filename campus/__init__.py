"""Campus placement portal backend."""

__version__ = "0.3.0"
