# tests/cli/conftest.py
"""Shared fixtures for CLI tests."""

from pathlib import Path

import pytest
import yaml


@pytest.fixture
def settings_file(sample_repo: Path) -> Path:
    """Settings file at the sample repo root delegating 'native' to bazel-tests."""
    config_file = sample_repo / "monoci.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "delegation": {"packages": ["native"], "step_id": "bazel-tests"},
            }
        )
    )
    return config_file
