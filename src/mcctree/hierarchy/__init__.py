"""Manager account hierarchy traversal and assembly."""

from .assembler import assemble_forest, sort_siblings
from .child_listers import (
    ChildLister,
    DescriptiveChildLister,
    ImmediateChildLister,
    TraversalStrategy,
)
from .engine import HierarchyTraversalEngine, TraversalConfig, VisitedSet

__all__ = [
    "ChildLister",
    "DescriptiveChildLister",
    "HierarchyTraversalEngine",
    "ImmediateChildLister",
    "TraversalConfig",
    "TraversalStrategy",
    "VisitedSet",
    "assemble_forest",
    "sort_siblings",
]
