"""Assembly error hierarchy.

Every failure aborts assembly. There is no best-effort mode: the caller
either receives a complete, internally consistent pipeline or one of
these exceptions carrying enough context to diagnose without re-running.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

GLOBAL_FRAGMENT_OWNER = "<global>"
"""Package name reported for errors raised while handling the global fragment."""


class AssemblyError(Exception):
    """Base class for all pipeline assembly failures."""

    pass


class UnknownPackageError(AssemblyError):
    """Raised when a requested target is not declared in the dependency graph."""

    def __init__(self, package: str) -> None:
        self.package = package
        super().__init__(f"Package '{package}' was not declared in the dependency graph")


class MissingStepIdError(AssemblyError):
    """Raised when a step that survives filtering has no identifier.

    Without an id the step cannot be namespaced, waited for, or checked for
    uniqueness, so the pipeline cannot be made consistent.
    """

    def __init__(self, package: str, index: int) -> None:
        """Initialize with the step location.

        Args:
            package: Owning package (or '<global>')
            index: Zero-based position of the step in its fragment
        """
        self.package = package
        self.index = index
        super().__init__(f"Step #{index} from {package} is missing an id")


class FragmentLoadError(AssemblyError):
    """Raised when a package's pipeline fragment cannot be produced."""

    def __init__(self, package: str, path: Path, reason: str) -> None:
        self.package = package
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load pipeline fragment for {package} from {path}: {reason}")


class DependencyGraphError(AssemblyError):
    """Raised when the package dependency graph is unreadable or inconsistent."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid dependency graph: {reason}")


class PipelineIntegrityError(AssemblyError):
    """Raised when the linearized pipeline violates id uniqueness or wait-list closure."""

    def __init__(self, message: str, step_ids: Iterable[str]) -> None:
        self.step_ids = tuple(step_ids)
        super().__init__(f"{message}: {', '.join(self.step_ids)}")
