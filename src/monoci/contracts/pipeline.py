# src/monoci/contracts/pipeline.py
"""Immutable pipeline data model shared by the loader, assembler and emitter.

Steps are never mutated once constructed. Every transformation during
assembly (renaming, wait-list rewriting, flag stripping) produces a new
Step via dataclasses.replace(), so a fragment object can be shared
without aliasing hazards.

Executor key names (camelCase: waitFor, secretEnv, kmsKeyName) only
appear at the serialization boundary in to_dict().
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from monoci.contracts.types import PackageName, StepID

# Package-scoped step flags. They steer assembly and are never emitted.
NIGHTLY_ONLY_KEY = "nightlyOnly"
WAITED_FOR_BY_PACKAGES_KEY = "waitedForByPackages"
CUSTOM_STEP_KEYS = frozenset({NIGHTLY_ONLY_KEY, WAITED_FOR_BY_PACKAGES_KEY})

# Executor wait-list sentinel: start immediately instead of after all previous steps.
START_IMMEDIATELY = StepID("-")


def _freeze(mapping: Mapping[str, Any]) -> MappingProxyType[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class Step:
    """One unit of pipeline work.

    Attributes:
        id: Identifier, unique within the final pipeline (None if the fragment omitted it)
        name: Executor action identifier (builder image, etc.)
        wait_for: Ids of steps that must complete first, in declaration order
        secret_env: Names of secret environment variables the step consumes
        nightly_only: Drop the step unless assembling in nightly mode
        waited_for_by_packages: Every per-package step waits for this step
        extra: Pass-through executor keys (args, entrypoint, env, ...)
    """

    id: StepID | None
    name: str | None = None
    wait_for: tuple[StepID, ...] = ()
    secret_env: tuple[str, ...] = ()
    nightly_only: bool = False
    waited_for_by_packages: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", _freeze(self.extra))

    def has_id(self) -> bool:
        """Whether the step carries a usable (non-empty) identifier."""
        return bool(self.id)

    def renamed(self, step_id: StepID, wait_for: Iterable[StepID]) -> Step:
        """Return a copy with a new id and wait-list."""
        return replace(self, id=step_id, wait_for=tuple(wait_for))

    def waiting_for(self, step_ids: Iterable[StepID]) -> Step:
        """Return a copy whose wait-list also contains ``step_ids``.

        Existing entries keep their position; duplicates are dropped keeping
        the first occurrence. The start-immediately sentinel is dropped once
        the step has real predecessors.
        """
        merged = tuple(dict.fromkeys([*self.wait_for, *step_ids]))
        if len(merged) > 1:
            merged = tuple(step_id for step_id in merged if step_id != START_IMMEDIATELY)
        return replace(self, wait_for=merged)

    def without_flags(self) -> Step:
        """Return a copy with the package-scoped custom flags cleared."""
        return replace(self, nightly_only=False, waited_for_by_packages=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the executor's step shape. Custom flags are never emitted."""
        doc: dict[str, Any] = {}
        if self.name is not None:
            doc["name"] = self.name
        if self.id is not None:
            doc["id"] = self.id
        doc.update(copy.deepcopy(dict(self.extra)))
        if self.wait_for:
            doc["waitFor"] = list(self.wait_for)
        if self.secret_env:
            doc["secretEnv"] = list(self.secret_env)
        return doc


@dataclass(frozen=True, slots=True)
class SecretBlock:
    """Encrypted secret declarations decrypted with one KMS key."""

    kms_key_name: str
    secret_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "secret_env", _freeze(self.secret_env))

    def restricted_to(self, names: Iterable[str]) -> SecretBlock:
        """Return a copy keeping only the secrets named in ``names``."""
        keep = set(names)
        return replace(self, secret_env={name: ref for name, ref in self.secret_env.items() if name in keep})

    def is_empty(self) -> bool:
        return not self.secret_env

    def to_dict(self) -> dict[str, Any]:
        return {"kmsKeyName": self.kms_key_name, "secretEnv": dict(self.secret_env)}


@dataclass(frozen=True, slots=True)
class Fragment:
    """A declared step list plus its secret block and any other top-level keys.

    Only the global fragment's secrets and top-level keys reach the output;
    for package fragments they are ignored.
    """

    steps: tuple[Step, ...] = ()
    secrets: tuple[SecretBlock, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", _freeze(self.extra))


@dataclass(frozen=True, slots=True)
class PipelineDocument:
    """The assembled pipeline, ready for serialization.

    An empty secrets tuple means the secret block is omitted entirely:
    some executors reject an empty-but-present block.
    """

    steps: tuple[Step, ...]
    secrets: tuple[SecretBlock, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", _freeze(self.extra))

    @property
    def step_ids(self) -> tuple[StepID, ...]:
        return tuple(step.id for step in self.steps if step.id is not None)

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"steps": [step.to_dict() for step in self.steps]}
        for key, value in self.extra.items():
            if key not in ("steps", "secrets"):
                doc[key] = copy.deepcopy(value)
        if self.secrets:
            doc["secrets"] = [block.to_dict() for block in self.secrets]
        return doc


@dataclass(frozen=True, slots=True)
class Selection:
    """Which packages an assembly run builds and tests.

    Invariants (enforced by compute_selection):
        targets <= test <= build
        delegated <= build | test
    """

    targets: frozenset[PackageName]
    build: frozenset[PackageName]
    test: frozenset[PackageName]
    delegated: frozenset[PackageName] = frozenset()

    @property
    def selected(self) -> frozenset[PackageName]:
        """Packages that are built or tested (build | test)."""
        return self.build | self.test

    @property
    def merged(self) -> frozenset[PackageName]:
        """Selected packages whose own fragments are merged into the pipeline."""
        return self.selected - self.delegated

    def will_build(self, package: str) -> bool:
        return package in self.build

    def will_test(self, package: str) -> bool:
        return package in self.test
