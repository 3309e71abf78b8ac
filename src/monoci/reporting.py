"""Selection report: which packages a run builds and tests.

Operator-facing only; nothing here affects the assembled pipeline.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.table import Table

from monoci.contracts.pipeline import Selection
from monoci.contracts.types import PackageName
from monoci.core.config import DelegationSettings
from monoci.core.graph import DependencyGraph

_CHECK = "✔"
_DELEGATED = "delegated"


@dataclass(frozen=True, slots=True)
class SelectionRow:
    """One report line."""

    package: PackageName
    will_build: bool
    will_test: bool
    delegated: bool = False

    def cells(self) -> tuple[str, str, str]:
        if self.delegated:
            return (self.package, _DELEGATED, _DELEGATED)
        return (
            self.package,
            _CHECK if self.will_build else "",
            _CHECK if self.will_test else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "will_build": self.will_build,
            "will_test": self.will_test,
            "delegated": self.delegated,
        }


def build_selection_rows(
    graph: DependencyGraph,
    selection: Selection,
    delegation: DelegationSettings | None = None,
) -> list[SelectionRow]:
    """One row per declared package in topological order, then any selected unlisted packages."""
    packages = [*graph.topological_order(), *sorted(name for name in selection.selected if name not in graph)]
    return [
        SelectionRow(
            package=name,
            will_build=selection.will_build(name),
            will_test=selection.will_test(name),
            delegated=delegation is not None and delegation.is_delegated(name),
        )
        for name in packages
    ]


def selection_table(rows: Sequence[SelectionRow], *, title: str | None = None) -> Table:
    """Build a rich Table of the selection rows."""
    table = Table(title=title, show_lines=False)
    table.add_column("Package", style="bold")
    table.add_column("Will Build", justify="center")
    table.add_column("Will Test", justify="center")
    for row in rows:
        table.add_row(*row.cells(), style="dim" if row.delegated else None)
    return table


def format_selection_table(rows: Sequence[SelectionRow], *, width: int = 100) -> str:
    """Render the selection table to plain text (no colour codes)."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, force_terminal=False)
    console.print(selection_table(rows))
    return buffer.getvalue()
