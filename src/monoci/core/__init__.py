# src/monoci/core/__init__.py
"""Core infrastructure: Configuration, Dependency graph, Fragment loading, Logging."""

from monoci.core.config import (
    DelegationSettings,
    MonociSettings,
    RepositorySettings,
    StepRules,
    load_settings,
)
from monoci.core.fragments import FragmentLoader, parse_fragment
from monoci.core.graph import DependencyGraph
from monoci.core.logging import (
    configure_logging,
    get_logger,
)

__all__ = [
    "DelegationSettings",
    "DependencyGraph",
    "FragmentLoader",
    "MonociSettings",
    "RepositorySettings",
    "StepRules",
    "configure_logging",
    "get_logger",
    "load_settings",
    "parse_fragment",
]
