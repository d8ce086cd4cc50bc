"""Shoulders developer CLI: tunnels to in-cluster services."""

from ._version import __version__

__all__ = ["__version__"]
