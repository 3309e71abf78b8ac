# src/monoci/core/config.py
"""
Configuration schema and loading for monoci.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and are passed into
the assembler explicitly; nothing here is process-global state.
"""

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_EXCLUDED_STEPS = frozenset({"build-deps", "yarn-common"})


class RepositorySettings(BaseModel):
    """Where the dependency graph and pipeline fragments live.

    Relative paths are resolved against ``root``.
    """

    model_config = {"frozen": True}

    root: Path = Field(
        default=Path("."),
        description="Repository root; package fragments live at <root>/<package>/<fragment_filename>",
    )
    dependency_graph: Path = Field(
        default=Path("package_dependencies.json"),
        description="JSON mapping of package name to its direct dependencies",
    )
    global_fragment: Path = Field(
        default=Path("scripts/cloudbuild_general_config.yml"),
        description="Shared infrastructure steps and the authoritative secret block",
    )
    fragment_filename: str = Field(
        default="cloudbuild.yml",
        description="File name of each package's pipeline fragment",
    )

    @field_validator("fragment_filename")
    @classmethod
    def validate_fragment_filename(cls, v: str) -> str:
        """Fragment file name must be a bare file name."""
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"fragment_filename must be a plain file name, got {v!r}")
        return v

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the repository root."""
        return path if path.is_absolute() else self.root / path

    @property
    def dependency_graph_path(self) -> Path:
        return self.resolve(self.dependency_graph)

    @property
    def global_fragment_path(self) -> Path:
        return self.resolve(self.global_fragment)

    def fragment_path(self, package: str) -> Path:
        return self.root / package / self.fragment_filename


class StepRules(BaseModel):
    """Rules applied to every package fragment during merge.

    Example YAML:
        rules:
          excluded_steps: [build-deps, yarn-common]
          test_step_marker: test
    """

    model_config = {"frozen": True}

    excluded_steps: frozenset[str] = Field(
        default=DEFAULT_EXCLUDED_STEPS,
        description="Step ids superseded by the global fragment; dropped from package fragments",
    )
    test_step_marker: str = Field(
        default="test",
        description="A step whose id contains this substring is a test step",
    )

    @field_validator("excluded_steps")
    @classmethod
    def validate_excluded_steps(cls, v: frozenset[str]) -> frozenset[str]:
        if any(not step_id.strip() for step_id in v):
            raise ValueError("excluded_steps entries must be non-empty step ids")
        return v

    @field_validator("test_step_marker")
    @classmethod
    def validate_test_step_marker(cls, v: str) -> str:
        # An empty marker would classify every step as a test step
        if not v:
            raise ValueError("test_step_marker must not be empty")
        return v

    def is_excluded(self, step_id: str) -> bool:
        return step_id in self.excluded_steps

    def is_test_step(self, step_id: str | None) -> bool:
        return step_id is not None and self.test_step_marker in step_id


class DelegationSettings(BaseModel):
    """Packages whose build and test are handled by one external step.

    Delegated packages still take part in selection, but their own
    fragments are never loaded or merged.
    """

    model_config = {"frozen": True}

    packages: frozenset[str] = Field(
        default_factory=frozenset,
        description="Packages built and tested by the external system",
    )
    step_id: str | None = Field(
        default=None,
        description="Id of the global step that runs the external build (informational)",
    )

    def is_delegated(self, package: str) -> bool:
        return package in self.packages


class MonociSettings(BaseModel):
    """Top-level monoci configuration.

    This is the single source of truth for assembly configuration.
    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    repository: RepositorySettings = Field(
        default_factory=RepositorySettings,
        description="Locations of the dependency graph and fragments",
    )
    rules: StepRules = Field(
        default_factory=StepRules,
        description="Step exclusion and test classification rules",
    )
    delegation: DelegationSettings = Field(
        default_factory=DelegationSettings,
        description="Packages built by an external system",
    )
    unlisted_packages: frozenset[str] = Field(
        default_factory=frozenset,
        description=(
            "Packages accepted as targets although the dependency graph does not declare them. "
            "Legacy escape hatch: a warning is logged once the graph declares them."
        ),
    )

    @model_validator(mode="after")
    def validate_unlisted_not_delegated(self) -> "MonociSettings":
        """A package cannot be both exempt from the graph and delegated."""
        overlap = self.unlisted_packages & self.delegation.packages
        if overlap:
            raise ValueError(f"Packages cannot be both unlisted and delegated: {sorted(overlap)}")
        return self


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        if match.group(2) is not None:
            return match.group(2)
        # No env var and no default - keep original
        return match.group(0)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_VAR_PATTERN.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Lowercase mapping keys recursively (Dynaconf upper-cases top-level keys)."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def load_settings(config_path: Path) -> MonociSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (MONOCI_*) - highest priority
    2. Config file (monoci.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: MONOCI_RULES__TEST_STEP_MARKER for nested keys.

    A relative ``repository.root`` is resolved against the directory holding
    the settings file, so the file can be used from any working directory.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated MonociSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="MONOCI",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    repository = dict(raw_config.get("repository") or {})
    root = Path(repository.get("root", "."))
    if not root.is_absolute():
        root = (config_path.parent / root).resolve()
    repository["root"] = root
    raw_config["repository"] = repository

    return MonociSettings(**raw_config)
