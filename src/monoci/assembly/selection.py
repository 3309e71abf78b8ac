# src/monoci/assembly/selection.py
"""Build/test package selection.

build = targets | deps(targets) | rdeps(targets) | deps(rdeps(targets))
test  = targets | rdeps(targets)

Reverse dependencies are rebuilt and retested so that a change to a
target cannot silently break anything that consumes it; their own
dependencies are built so they can compile at all.
"""

from __future__ import annotations

from collections.abc import Iterable

from monoci.contracts.errors import UnknownPackageError
from monoci.contracts.pipeline import Selection
from monoci.contracts.types import PackageName
from monoci.core.config import DelegationSettings
from monoci.core.graph import DependencyGraph
from monoci.core.logging import get_logger

logger = get_logger(__name__)


def check_targets(
    targets: Iterable[str],
    graph: DependencyGraph,
    unlisted_packages: frozenset[str] = frozenset(),
) -> frozenset[PackageName]:
    """Validate requested targets against the graph.

    Raises:
        UnknownPackageError: For the first target (in sorted order) that is neither
            declared in the graph nor listed in ``unlisted_packages``
    """
    requested = frozenset(PackageName(name) for name in targets)
    for name in sorted(requested):
        if name not in graph and name not in unlisted_packages:
            raise UnknownPackageError(name)
    return requested


def stale_exemptions(graph: DependencyGraph, unlisted_packages: frozenset[str]) -> list[str]:
    """Unlisted-package exemptions that the graph now declares (safe to remove)."""
    return sorted(name for name in unlisted_packages if name in graph)


def compute_selection(
    targets: Iterable[str],
    graph: DependencyGraph,
    *,
    delegation: DelegationSettings | None = None,
    unlisted_packages: frozenset[str] = frozenset(),
) -> Selection:
    """Compute the build and test package sets for ``targets``.

    Args:
        targets: Requested package names
        graph: Package dependency graph
        delegation: Packages built by an external system (recorded, not merged)
        unlisted_packages: Targets tolerated although the graph does not declare them

    Returns:
        Selection with targets <= test <= build

    Raises:
        UnknownPackageError: If a target is unknown and not exempted
    """
    requested = check_targets(targets, graph, unlisted_packages)

    for name in stale_exemptions(graph, unlisted_packages):
        logger.warning("stale_graph_exemption", package=name, hint="package is now declared in the dependency graph")

    deps = graph.transitive_deps(requested)
    reverse_deps = graph.transitive_reverse_deps(requested)
    deps_of_reverse_deps = graph.transitive_deps(reverse_deps)

    build = requested | deps | reverse_deps | deps_of_reverse_deps
    test = requested | reverse_deps
    selected = build | test
    delegated = frozenset(name for name in selected if delegation is not None and delegation.is_delegated(name))

    logger.info(
        "selection_computed",
        targets=sorted(requested),
        build=len(build),
        test=len(test),
        delegated=len(delegated),
    )
    return Selection(targets=requested, build=build, test=test, delegated=delegated)
