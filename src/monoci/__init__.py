"""
monoci: CI pipeline assembly for multi-package repositories.

Merges per-package pipeline fragments into one pipeline whose step
ordering follows the repository's package dependency graph.
"""

__version__ = "0.4.0"
