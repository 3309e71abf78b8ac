# tests/conftest.py
"""Shared test fixtures and helpers.

Sample monorepo
===============

``sample_repo`` lays out a small repository on disk:

    converter            (no dependencies)
    core                 (no dependencies)
    backend   -> core
    native    -> core    (delegated to the external 'bazel-tests' step, no fragment)
    ui        -> core
    app       -> backend, ui

Topological order (ties broken by name): converter, core, backend, native, ui, app.

The global fragment declares 'yarn-common' (waited for by every package
step), 'bazel-tests', and a nightly-only 'nightly-benchmarks'. Three
secrets are declared; NPM_TOKEN is never referenced by any step.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
import yaml
from hypothesis import Phase, Verbosity, settings

from monoci.contracts import Fragment, FragmentLoadError
from monoci.core.config import DelegationSettings, MonociSettings, RepositorySettings
from monoci.core.fragments import fragment_from_dict
from monoci.core.graph import DependencyGraph

SAMPLE_GRAPH: dict[str, list[str]] = {
    "converter": [],
    "core": [],
    "backend": ["core"],
    "native": ["core"],
    "ui": ["core"],
    "app": ["backend", "ui"],
}

SAMPLE_GLOBAL_FRAGMENT: dict[str, Any] = {
    "steps": [
        {
            "name": "node:18",
            "id": "yarn-common",
            "entrypoint": "yarn",
            "args": ["install"],
            "waitedForByPackages": True,
        },
        {
            "name": "gcr.io/bazel",
            "id": "bazel-tests",
            "args": ["test", "//..."],
            "waitFor": ["yarn-common"],
        },
        {
            "name": "node:18",
            "id": "nightly-benchmarks",
            "nightlyOnly": True,
            "waitFor": ["yarn-common"],
            "secretEnv": ["BENCHMARK_TOKEN"],
        },
    ],
    "secrets": [
        {
            "kmsKeyName": "projects/ci/locations/global/keyRings/ci/cryptoKeys/enc",
            "secretEnv": {
                "BROWSERSTACK_KEY": "CiQAbrowserstack",
                "BENCHMARK_TOKEN": "CiQAbenchmark",
                "NPM_TOKEN": "CiQAnpm",
            },
        }
    ],
    "timeout": "3600s",
}

SAMPLE_FRAGMENTS: dict[str, dict[str, Any]] = {
    "converter": {
        "steps": [
            {"name": "node:18", "id": "build", "args": ["build"]},
            {"name": "node:18", "id": "test", "waitFor": ["build"]},
        ]
    },
    "core": {
        "steps": [
            {"name": "node:18", "id": "yarn-common", "entrypoint": "yarn"},
            {"name": "node:18", "id": "build", "args": ["build"], "waitFor": ["yarn-common"]},
            {"name": "node:18", "id": "lint", "waitFor": ["build"]},
            {"name": "node:18", "id": "test", "waitFor": ["build"]},
        ]
    },
    "backend": {
        "steps": [
            {"name": "node:18", "id": "build-deps"},
            {"name": "node:18", "id": "build", "waitFor": ["build-deps"]},
            {"name": "node:18", "id": "test-unit", "waitFor": ["build"]},
        ]
    },
    "ui": {
        "steps": [
            {"name": "node:18", "id": "build"},
            {"name": "node:18", "id": "test", "waitFor": ["build"], "secretEnv": ["BROWSERSTACK_KEY"]},
            {"name": "node:18", "id": "test-browser-nightly", "waitFor": ["build"], "nightlyOnly": True},
        ]
    },
    "app": {
        "steps": [
            {"name": "node:18", "id": "build"},
            {"name": "node:18", "id": "test", "waitFor": ["build"]},
        ]
    },
}


def write_repo(
    root: Path,
    graph: Mapping[str, list[str]],
    fragments: Mapping[str, dict[str, Any]],
    global_fragment: dict[str, Any],
) -> Path:
    """Lay out a monorepo under ``root`` using the default repository settings paths."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "package_dependencies.json").write_text(json.dumps(graph), encoding="utf-8")
    global_path = root / "scripts" / "cloudbuild_general_config.yml"
    global_path.parent.mkdir(parents=True, exist_ok=True)
    global_path.write_text(yaml.safe_dump(global_fragment, sort_keys=False), encoding="utf-8")
    for package, fragment in fragments.items():
        package_dir = root / package
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / "cloudbuild.yml").write_text(yaml.safe_dump(fragment, sort_keys=False), encoding="utf-8")
    return root


class InMemoryFragments:
    """FragmentSource backed by dicts, with a record of which packages were loaded."""

    def __init__(self, fragments: Mapping[str, dict[str, Any]], global_fragment: dict[str, Any] | None = None) -> None:
        self._fragments = dict(fragments)
        self._global = global_fragment if global_fragment is not None else {"steps": []}
        self.loaded: list[str] = []

    def load_fragment(self, package: str) -> Fragment:
        self.loaded.append(package)
        if package not in self._fragments:
            raise FragmentLoadError(package, Path(package) / "cloudbuild.yml", "file not found")
        return fragment_from_dict(self._fragments[package], owner=package)

    def load_global_fragment(self) -> Fragment:
        return fragment_from_dict(self._global)


@pytest.fixture
def sample_graph() -> DependencyGraph:
    return DependencyGraph.from_mapping(SAMPLE_GRAPH)


@pytest.fixture
def sample_repo(tmp_path: Path) -> Path:
    return write_repo(tmp_path / "repo", SAMPLE_GRAPH, SAMPLE_FRAGMENTS, SAMPLE_GLOBAL_FRAGMENT)


@pytest.fixture
def sample_settings(sample_repo: Path) -> MonociSettings:
    return MonociSettings(
        repository=RepositorySettings(root=sample_repo),
        delegation=DelegationSettings(packages=frozenset({"native"}), step_id="bazel-tests"),
    )


@pytest.fixture(autouse=True)
def _reset_root_logging() -> Iterator[None]:
    """Drop handlers installed by configure_logging (they may hold closed CliRunner streams)."""
    yield
    logging.getLogger().handlers = []


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
