"""Daily health scoring and workout suggestion service."""

__version__ = "0.1.0"
