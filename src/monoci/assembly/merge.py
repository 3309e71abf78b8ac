# src/monoci/assembly/merge.py
"""Per-package fragment merge: filtering and id namespacing.

Each surviving step id becomes ``<id>-<package>`` so that identically
named steps from different packages ("build", "lint", ...) cannot
collide. Wait-list entries are namespaced the same way, since a
fragment's wait-list may only refer to steps of the same fragment.

Steps are dropped when:
- their id is in the exclusion list (superseded by the global fragment)
- they are test steps and the package is not being tested
- they are nightly-only and the run is not nightly

Wait-list entries naming a dropped step (or empty entries) are removed,
so no reference to a step that never reaches the pipeline survives. The
executor's start-immediately sentinel ('-') is kept as is.
"""

from __future__ import annotations

from dataclasses import dataclass

from monoci.contracts.errors import MissingStepIdError
from monoci.contracts.pipeline import START_IMMEDIATELY, Fragment, Step
from monoci.contracts.types import PackageName, StepID
from monoci.core.config import StepRules
from monoci.core.logging import get_logger

logger = get_logger(__name__)


def make_step_id(step_id: str, package: str) -> StepID:
    """Namespace a fragment-local step id with its package name."""
    return StepID(f"{step_id}-{package}")


@dataclass(frozen=True, slots=True)
class MergedPackage:
    """A package's steps after filtering and renaming.

    Attributes:
        package: Owning package
        steps: Surviving steps in declaration order, ids namespaced, flags stripped
        build_step_ids: Namespaced ids of the surviving non-test steps, classified
            by their original ids (a package named 'test-utils' does not turn
            its build steps into test steps)
        dropped: Original ids of the steps that were filtered out
    """

    package: PackageName
    steps: tuple[Step, ...]
    build_step_ids: tuple[StepID, ...]
    dropped: frozenset[str] = frozenset()


def _is_dropped(step: Step, rules: StepRules, *, tested: bool, nightly: bool) -> bool:
    if step.id and rules.is_excluded(step.id):
        return True
    if not tested and rules.is_test_step(step.id):
        return True
    return step.nightly_only and not nightly


def merge_fragment(
    package: PackageName,
    fragment: Fragment,
    rules: StepRules,
    *,
    tested: bool,
    nightly: bool = False,
) -> MergedPackage:
    """Filter and namespace one package's fragment.

    The input fragment is not modified; new Step objects are returned.

    Args:
        package: Package owning the fragment
        fragment: Loaded fragment
        rules: Exclusion and test-classification rules
        tested: Whether the package is in the test set
        nightly: Whether nightly-only steps are kept

    Returns:
        MergedPackage with namespaced steps

    Raises:
        MissingStepIdError: If a step that survives filtering has no (or an empty) id
    """
    survivors: list[Step] = []
    dropped: set[str] = set()
    for index, step in enumerate(fragment.steps):
        if _is_dropped(step, rules, tested=tested, nightly=nightly):
            if step.id:
                dropped.add(step.id)
            continue
        if not step.has_id():
            raise MissingStepIdError(package, index)
        survivors.append(step)

    # An id both kept and dropped (duplicated in the fragment) still resolves
    dropped -= {step.id for step in survivors if step.id}

    merged: list[Step] = []
    build_step_ids: list[StepID] = []
    for step in survivors:
        assert step.id is not None  # checked above
        wait_for = [
            step_id if step_id == START_IMMEDIATELY else make_step_id(step_id, package)
            for step_id in step.wait_for
            if step_id and not rules.is_excluded(step_id) and step_id not in dropped
        ]
        renamed = step.renamed(make_step_id(step.id, package), wait_for).without_flags()
        merged.append(renamed)
        if not rules.is_test_step(step.id):
            build_step_ids.append(make_step_id(step.id, package))

    logger.info("fragment_merged", package=package, kept=len(merged), dropped=sorted(dropped))
    return MergedPackage(
        package=package,
        steps=tuple(merged),
        build_step_ids=tuple(build_step_ids),
        dropped=frozenset(dropped),
    )
