# src/monoci/assembly/ordering.py
"""Cross-package step ordering.

Every step of package P waits for:
- each global step flagged waitedForByPackages, and
- each surviving non-test step of P's *direct* dependencies.

Direct dependencies are enough: a dependency's own steps already wait
for its dependencies, so the constraint is transitive through the chain
and wait-lists stay small. Test steps of a dependency are never waited
for, so testing one package does not block building another.

A dependency that contributes no build steps is looked through: its
dependencies are waited for instead, keeping the chain unbroken.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from monoci.assembly.merge import MergedPackage
from monoci.contracts.types import PackageName, StepID
from monoci.core.graph import DependencyGraph


def package_wait_set(
    package: PackageName,
    merged: Mapping[PackageName, MergedPackage],
    graph: DependencyGraph,
    universal_step_ids: Sequence[StepID],
) -> tuple[StepID, ...]:
    """Step ids every step of ``package`` must wait for, in deterministic order.

    Universal ids come first in global-fragment order, then dependency step
    ids grouped by dependency in topological order. A dependency without
    merged build steps (delegated, or only test steps survived) would break
    the chain, so its own dependencies are waited for in its place.
    """
    wait_ids: list[StepID] = list(universal_step_ids)
    pending = list(graph.dependencies(package))
    visited: set[PackageName] = set()
    while pending:
        dependency = pending.pop(0)
        if dependency in visited:
            continue
        visited.add(dependency)
        dependency_steps = merged.get(dependency)
        if dependency_steps is not None and dependency_steps.build_step_ids:
            wait_ids.extend(dependency_steps.build_step_ids)
        else:
            pending.extend(graph.dependencies(dependency))
    return tuple(dict.fromkeys(wait_ids))


def apply_package_ordering(
    merged: Mapping[PackageName, MergedPackage],
    graph: DependencyGraph,
    universal_step_ids: Sequence[StepID],
) -> dict[PackageName, MergedPackage]:
    """Union each package's wait set into the wait-list of every one of its steps.

    Requires every selected package to have been merged first: a package's
    wait set reads its dependencies' merged step ids.
    """
    ordered: dict[PackageName, MergedPackage] = {}
    for package, package_steps in merged.items():
        wait_ids = package_wait_set(package, merged, graph, universal_step_ids)
        steps = tuple(step.waiting_for(wait_ids) for step in package_steps.steps)
        ordered[package] = replace(package_steps, steps=steps)
    return ordered
