"""Command modules for mcctree."""

from . import hierarchy, profile

__all__ = [
    "hierarchy",
    "profile",
]
