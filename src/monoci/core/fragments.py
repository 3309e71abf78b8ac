# src/monoci/core/fragments.py
"""Pipeline fragment loading.

Fragments are YAML documents in the executor's own format. Only the
shape of identifiers is validated here (ids, wait-lists and secret
lists must be strings); every other step key is passed through to the
output untouched.

The loader never caches: each call parses the file again and returns a
fresh, immutable Fragment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from monoci.contracts.errors import GLOBAL_FRAGMENT_OWNER, FragmentLoadError
from monoci.contracts.pipeline import Fragment, SecretBlock, Step
from monoci.contracts.types import StepID
from monoci.core.config import RepositorySettings
from monoci.core.logging import get_logger

logger = get_logger(__name__)


class StepSpec(BaseModel):
    """Schema for one step as written in a fragment file."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str | None = None
    name: str | None = None
    wait_for: list[str] | None = Field(default=None, alias="waitFor")
    secret_env: list[str] | None = Field(default=None, alias="secretEnv")
    nightly_only: bool = Field(default=False, alias="nightlyOnly")
    waited_for_by_packages: bool = Field(default=False, alias="waitedForByPackages")

    def to_step(self) -> Step:
        return Step(
            id=StepID(self.id) if self.id is not None else None,
            name=self.name,
            wait_for=tuple(StepID(step_id) for step_id in self.wait_for or ()),
            secret_env=tuple(self.secret_env or ()),
            nightly_only=self.nightly_only,
            waited_for_by_packages=self.waited_for_by_packages,
            extra=dict(self.model_extra or {}),
        )


class SecretSpec(BaseModel):
    """Schema for one entry of a fragment's ``secrets`` list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kms_key_name: str = Field(alias="kmsKeyName")
    secret_env: dict[str, str] = Field(default_factory=dict, alias="secretEnv")

    def to_block(self) -> SecretBlock:
        return SecretBlock(kms_key_name=self.kms_key_name, secret_env=self.secret_env)


class FragmentSpec(BaseModel):
    """Schema for a whole fragment document."""

    model_config = ConfigDict(extra="allow", frozen=True)

    steps: list[StepSpec] = Field(default_factory=list)
    secrets: list[SecretSpec] = Field(default_factory=list)

    def to_fragment(self) -> Fragment:
        return Fragment(
            steps=tuple(spec.to_step() for spec in self.steps),
            secrets=tuple(spec.to_block() for spec in self.secrets),
            extra=dict(self.model_extra or {}),
        )


def parse_fragment(text: str, *, owner: str, path: Path) -> Fragment:
    """Parse fragment YAML text.

    Args:
        text: YAML document
        owner: Package name (or '<global>') for error reporting
        path: Source path for error reporting

    Raises:
        FragmentLoadError: If the YAML is malformed or does not match the fragment schema
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise FragmentLoadError(owner, path, f"invalid YAML: {e}") from e

    # An empty file is an empty fragment
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise FragmentLoadError(owner, path, f"expected a mapping at top level, got {type(raw).__name__}")

    try:
        spec = FragmentSpec.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors())
        raise FragmentLoadError(owner, path, problems) from e
    return spec.to_fragment()


class FragmentLoader:
    """Reads package fragments and the global fragment from the repository."""

    def __init__(self, repository: RepositorySettings) -> None:
        self._repository = repository

    def fragment_path(self, package: str) -> Path:
        return self._repository.fragment_path(package)

    def load_fragment(self, package: str) -> Fragment:
        """Load the fragment declared by ``package``.

        Raises:
            FragmentLoadError: If the file is missing, unreadable, or malformed
        """
        fragment = self._load(package, self.fragment_path(package))
        logger.info("fragment_loaded", package=package, steps=len(fragment.steps))
        return fragment

    def load_global_fragment(self) -> Fragment:
        """Load the shared infrastructure steps and authoritative secrets.

        Raises:
            FragmentLoadError: If the file is missing, unreadable, or malformed
        """
        fragment = self._load(GLOBAL_FRAGMENT_OWNER, self._repository.global_fragment_path)
        logger.debug(
            "global_fragment_loaded",
            steps=len(fragment.steps),
            secrets=sum(len(block.secret_env) for block in fragment.secrets),
        )
        return fragment

    def _load(self, owner: str, path: Path) -> Fragment:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise FragmentLoadError(owner, path, "file not found") from None
        except (OSError, UnicodeDecodeError) as e:
            raise FragmentLoadError(owner, path, str(e)) from e
        return parse_fragment(text, owner=owner, path=path)


def fragment_from_dict(raw: dict[str, Any], *, owner: str = GLOBAL_FRAGMENT_OWNER) -> Fragment:
    """Build a Fragment from an already-parsed document (same validation as files)."""
    try:
        return FragmentSpec.model_validate(raw).to_fragment()
    except ValidationError as e:
        raise FragmentLoadError(owner, Path("<memory>"), str(e)) from e
