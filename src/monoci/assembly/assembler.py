# src/monoci/assembly/assembler.py
"""Pipeline assembly: selection, merge, ordering, linearization, secrets.

Construct a single pipeline that:
1. Builds all the dependencies of the targets
2. Builds and tests the targets
3. Builds and tests every reverse dependency of the targets

The output is a linear step list: global steps first (original order),
then each merged package's steps in dependency order. The list order is
a valid execution order, but the executor derives concurrency from the
wait-lists, not from list position.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Protocol

from monoci.assembly.merge import MergedPackage, merge_fragment
from monoci.assembly.ordering import apply_package_ordering
from monoci.assembly.secrets import prune_secrets
from monoci.assembly.selection import compute_selection
from monoci.contracts.errors import GLOBAL_FRAGMENT_OWNER, MissingStepIdError, PipelineIntegrityError
from monoci.contracts.pipeline import START_IMMEDIATELY, Fragment, PipelineDocument, Selection, Step
from monoci.contracts.types import PackageName, StepID
from monoci.core.config import MonociSettings
from monoci.core.graph import DependencyGraph
from monoci.core.logging import get_logger

logger = get_logger(__name__)


class FragmentSource(Protocol):
    """Anything that can supply package fragments and the global fragment."""

    def load_fragment(self, package: str) -> Fragment: ...

    def load_global_fragment(self) -> Fragment: ...


@dataclass(frozen=True, slots=True)
class AssemblyResult:
    """An assembled pipeline together with the selection that produced it."""

    pipeline: PipelineDocument
    selection: Selection


def prepare_global_steps(fragment: Fragment, *, nightly: bool) -> tuple[tuple[Step, ...], tuple[StepID, ...]]:
    """Filter the global steps for this run and collect the universal step ids.

    Wait entries naming a global step dropped from this run are removed from
    the steps that remain.

    Returns:
        (global steps with custom flags stripped, ids of the retained steps
        flagged waitedForByPackages in declaration order)

    Raises:
        MissingStepIdError: If a retained waitedForByPackages step has no id
    """
    retained = [(index, step) for index, step in enumerate(fragment.steps) if nightly or not step.nightly_only]
    dropped = {step.id for step in fragment.steps if step.id is not None} - {step.id for _, step in retained}

    steps: list[Step] = []
    universal: list[StepID] = []
    for index, step in retained:
        if dropped.intersection(step.wait_for):
            step = replace(step, wait_for=tuple(w for w in step.wait_for if w not in dropped))
        if step.waited_for_by_packages:
            if not step.has_id():
                raise MissingStepIdError(GLOBAL_FRAGMENT_OWNER, index)
            assert step.id is not None
            universal.append(step.id)
        steps.append(step.without_flags())
    return tuple(steps), tuple(universal)


def verify_pipeline(steps: Sequence[Step]) -> None:
    """Check step id uniqueness and wait-list closure.

    Raises:
        PipelineIntegrityError: On duplicate ids or wait-list entries naming absent steps
    """
    counts = Counter(step.id for step in steps if step.id)
    duplicates = sorted(step_id for step_id, count in counts.items() if count > 1)
    if duplicates:
        raise PipelineIntegrityError("Duplicate step ids", duplicates)

    dangling = sorted({step_id for step in steps for step_id in step.wait_for if step_id != START_IMMEDIATELY and step_id not in counts})
    if dangling:
        raise PipelineIntegrityError("Steps wait for ids absent from the pipeline", dangling)


class PipelineAssembler:
    """Assembles one pipeline from the global fragment and per-package fragments.

    The graph, loader and settings are read-only; one assembler can serve
    any number of sequential or concurrent assemble() calls.

    Example:
        graph = DependencyGraph.load(settings.repository.dependency_graph_path)
        assembler = PipelineAssembler(graph, FragmentLoader(settings.repository), settings)
        result = assembler.assemble(["core"], nightly=False)
        print(render_yaml(result.pipeline))
    """

    def __init__(self, graph: DependencyGraph, loader: FragmentSource, settings: MonociSettings) -> None:
        self._graph = graph
        self._loader = loader
        self._settings = settings

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    @property
    def settings(self) -> MonociSettings:
        return self._settings

    def select(self, targets: Iterable[str]) -> Selection:
        """Compute the build/test sets without loading any fragment."""
        return compute_selection(
            targets,
            self._graph,
            delegation=self._settings.delegation,
            unlisted_packages=self._settings.unlisted_packages,
        )

    def merge_order(self, selection: Selection) -> tuple[PackageName, ...]:
        """Packages whose fragments are merged, in linearization order.

        Topological order first; selected packages the graph does not declare
        (unlisted exemptions) follow, sorted by name.
        """
        merged = selection.merged
        in_graph = [name for name in self._graph.topological_order() if name in merged]
        unlisted = sorted(name for name in merged if name not in self._graph)
        return (*in_graph, *unlisted)

    def assemble(self, targets: Iterable[str], *, nightly: bool = False) -> AssemblyResult:
        """Assemble the pipeline for ``targets``.

        Args:
            targets: Requested package names
            nightly: Keep nightly-only steps (never changes package selection)

        Returns:
            AssemblyResult with the pipeline document and selection

        Raises:
            UnknownPackageError: A target is not declared in the graph
            FragmentLoadError: A selected, non-delegated package's fragment cannot be loaded
            MissingStepIdError: A retained step has no id
            PipelineIntegrityError: The assembled steps are inconsistent
        """
        selection = self.select(targets)
        rules = self._settings.rules

        global_fragment = self._loader.load_global_fragment()
        global_steps, universal_ids = prepare_global_steps(global_fragment, nightly=nightly)

        if selection.delegated:
            logger.info(
                "delegated_packages_selected",
                packages=sorted(selection.delegated),
                step_id=self._settings.delegation.step_id,
            )
            delegated_step = self._settings.delegation.step_id
            if delegated_step is not None and delegated_step not in {step.id for step in global_steps}:
                logger.warning("delegated_step_missing", step_id=delegated_step, nightly=nightly)

        # All fragments must be merged before ordering: wait sets read dependencies' step ids
        order = self.merge_order(selection)
        merged: dict[PackageName, MergedPackage] = {}
        for package in order:
            fragment = self._loader.load_fragment(package)
            merged[package] = merge_fragment(
                package,
                fragment,
                rules,
                tested=selection.will_test(package),
                nightly=nightly,
            )

        ordered = apply_package_ordering(merged, self._graph, universal_ids)

        steps: list[Step] = list(global_steps)
        for package in order:
            steps.extend(ordered[package].steps)

        verify_pipeline(steps)
        secrets = prune_secrets(global_fragment.secrets, steps)

        pipeline = PipelineDocument(steps=tuple(steps), secrets=secrets, extra=global_fragment.extra)
        logger.info(
            "pipeline_assembled",
            steps=len(steps),
            packages=len(order),
            secrets=sum(len(block.secret_env) for block in secrets),
            nightly=nightly,
        )
        return AssemblyResult(pipeline=pipeline, selection=selection)
