"""Utility modules for the Shoulders CLI."""

from .logging import setup_logging

__all__ = [
    "setup_logging",
]
