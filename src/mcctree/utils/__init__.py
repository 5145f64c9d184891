"""Core utility modules for mcctree."""

# Configuration utilities
from .config import CONFIG_DIR, CONFIG_FILE_YAML, DEFAULT_TRAVERSAL_CONFIG, Config

# Customer id helpers
from .formatters import customer_id_from_resource_name, format_customer_id, normalize_customer_id

# Data models
from .models import (
    AccessLevel,
    Account,
    AccountDetails,
    ChildAccount,
    HierarchyNode,
    TraversalResult,
    format_traversal_summary,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE_YAML",
    "DEFAULT_TRAVERSAL_CONFIG",
    "Config",
    "customer_id_from_resource_name",
    "format_customer_id",
    "normalize_customer_id",
    "AccessLevel",
    "Account",
    "AccountDetails",
    "ChildAccount",
    "HierarchyNode",
    "TraversalResult",
    "format_traversal_summary",
]
