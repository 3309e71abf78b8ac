"""Semantic type aliases for compile-time type safety.

NewType creates distinct types that mypy treats as incompatible,
preventing accidental misuse of semantically different string values.
"""

from typing import NewType

PackageName = NewType("PackageName", str)
"""Package identifier, also the key into the dependency graph (e.g., 'core')"""

StepID = NewType("StepID", str)
"""Pipeline step identifier, unique within one assembled pipeline (e.g., 'build-core')"""
