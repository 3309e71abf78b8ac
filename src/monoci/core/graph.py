# src/monoci/core/graph.py
"""Package dependency graph: transitive closures and topological order.

Uses NetworkX for graph operations including:
- Acyclicity validation
- Ancestor/descendant closures (forward and reverse dependencies)
- Deterministic topological sorting

Edges run dependency -> dependent, so ancestors of a package are its
transitive dependencies and descendants are its transitive reverse
dependencies. The graph is frozen after construction and may be shared
by concurrent assembly runs without synchronization.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import networkx as nx
from networkx import DiGraph

from monoci.contracts.errors import DependencyGraphError
from monoci.contracts.types import PackageName


class DependencyGraph:
    """Static package dependency graph.

    Wraps a frozen NetworkX DiGraph with the closure queries the assembler
    needs. Names the graph does not declare contribute nothing to closures.
    """

    def __init__(self, graph: DiGraph[str]) -> None:
        if not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            cycle_str = " -> ".join([*(edge[0] for edge in cycle), cycle[0][0]])
            raise DependencyGraphError(f"dependency cycle: {cycle_str}")
        self._graph: DiGraph[str] = nx.freeze(graph)
        self._order: tuple[PackageName, ...] = tuple(PackageName(name) for name in nx.lexicographical_topological_sort(graph))
        self._position = {name: index for index, name in enumerate(self._order)}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> DependencyGraph:
        """Build from ``{package: [direct dependency, ...]}``.

        Raises:
            DependencyGraphError: If a dependency is not itself declared, or the graph has a cycle
        """
        graph: DiGraph[str] = nx.DiGraph()
        graph.add_nodes_from(mapping)
        for package, dependencies in mapping.items():
            for dependency in dependencies:
                if dependency not in mapping:
                    raise DependencyGraphError(f"package '{package}' depends on undeclared package '{dependency}'")
                if dependency == package:
                    raise DependencyGraphError(f"package '{package}' depends on itself")
                graph.add_edge(dependency, package)
        return cls(graph)

    @classmethod
    def load(cls, path: Path) -> DependencyGraph:
        """Load the JSON dependency mapping from ``path``.

        Raises:
            DependencyGraphError: If the file is missing, unreadable, not JSON, or not a name -> list mapping
        """
        try:
            raw: Any = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise DependencyGraphError(f"file not found: {path}") from None
        except (OSError, UnicodeDecodeError) as e:
            raise DependencyGraphError(f"cannot read {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise DependencyGraphError(f"{path} is not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise DependencyGraphError(f"{path} must contain an object mapping package names to dependency lists")
        for package, dependencies in raw.items():
            if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
                raise DependencyGraphError(f"dependencies of '{package}' must be a list of package names")
        return cls.from_mapping(raw)

    @property
    def packages(self) -> frozenset[PackageName]:
        return frozenset(PackageName(name) for name in self._graph.nodes)

    def __contains__(self, package: object) -> bool:
        return isinstance(package, str) and self._graph.has_node(package)

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def dependencies(self, package: str) -> tuple[PackageName, ...]:
        """Direct dependencies of ``package`` in topological order (empty if undeclared)."""
        if package not in self:
            return ()
        return self._in_order(self._graph.predecessors(package))

    def dependents(self, package: str) -> tuple[PackageName, ...]:
        """Direct reverse dependencies of ``package`` in topological order (empty if undeclared)."""
        if package not in self:
            return ()
        return self._in_order(self._graph.successors(package))

    def transitive_deps(self, packages: Iterable[str]) -> frozenset[PackageName]:
        """Every package reachable by following dependency edges from ``packages``."""
        found: set[str] = set()
        for package in packages:
            if package in self:
                found |= nx.ancestors(self._graph, package)
        return frozenset(PackageName(name) for name in found)

    def transitive_reverse_deps(self, packages: Iterable[str]) -> frozenset[PackageName]:
        """Every package that transitively depends on any of ``packages``."""
        found: set[str] = set()
        for package in packages:
            if package in self:
                found |= nx.descendants(self._graph, package)
        return frozenset(PackageName(name) for name in found)

    def topological_order(self) -> tuple[PackageName, ...]:
        """All packages, dependencies before dependents, ties broken by name."""
        return self._order

    def _in_order(self, names: Iterable[str]) -> tuple[PackageName, ...]:
        return tuple(sorted((PackageName(name) for name in names), key=self._position.__getitem__))
