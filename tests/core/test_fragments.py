# tests/core/test_fragments.py
"""Tests for fragment parsing and loading."""

from pathlib import Path

import pytest
from structlog.testing import capture_logs

from monoci.contracts import GLOBAL_FRAGMENT_OWNER, FragmentLoadError
from monoci.core.config import RepositorySettings
from monoci.core.fragments import FragmentLoader, fragment_from_dict, parse_fragment
from tests.conftest import write_repo


class TestParseFragment:
    """YAML parsing and identifier-shape validation."""

    def test_parses_steps_and_custom_flags(self) -> None:
        text = """
steps:
  - name: node:18
    id: build
    entrypoint: yarn
    args: [build]
    waitFor: [yarn-common]
    secretEnv: [NPM_TOKEN]
  - name: node:18
    id: bench
    nightlyOnly: true
    waitedForByPackages: true
"""
        fragment = parse_fragment(text, owner="core", path=Path("core/cloudbuild.yml"))

        build, bench = fragment.steps
        assert build.id == "build"
        assert build.name == "node:18"
        assert build.wait_for == ("yarn-common",)
        assert build.secret_env == ("NPM_TOKEN",)
        assert dict(build.extra) == {"entrypoint": "yarn", "args": ["build"]}
        assert build.nightly_only is False
        assert bench.nightly_only is True
        assert bench.waited_for_by_packages is True
        assert dict(bench.extra) == {}

    def test_parses_secrets_and_top_level_keys(self) -> None:
        text = """
steps: []
timeout: 3600s
secrets:
  - kmsKeyName: projects/ci/cryptoKeys/enc
    secretEnv:
      NPM_TOKEN: CiQA
"""
        fragment = parse_fragment(text, owner=GLOBAL_FRAGMENT_OWNER, path=Path("global.yml"))

        assert fragment.steps == ()
        (block,) = fragment.secrets
        assert block.kms_key_name == "projects/ci/cryptoKeys/enc"
        assert dict(block.secret_env) == {"NPM_TOKEN": "CiQA"}
        assert dict(fragment.extra) == {"timeout": "3600s"}

    def test_empty_document_is_empty_fragment(self) -> None:
        fragment = parse_fragment("", owner="core", path=Path("core/cloudbuild.yml"))

        assert fragment.steps == ()
        assert fragment.secrets == ()

    def test_step_without_id_is_parsed(self) -> None:
        fragment = parse_fragment("steps:\n  - name: busybox\n", owner="core", path=Path("x"))

        assert fragment.steps[0].id is None

    def test_invalid_yaml(self) -> None:
        with pytest.raises(FragmentLoadError, match="invalid YAML") as exc_info:
            parse_fragment("steps: [unclosed", owner="core", path=Path("core/cloudbuild.yml"))

        assert exc_info.value.package == "core"

    def test_top_level_must_be_mapping(self) -> None:
        with pytest.raises(FragmentLoadError, match="expected a mapping"):
            parse_fragment("- build\n- test\n", owner="core", path=Path("x"))

    def test_non_string_id_rejected(self) -> None:
        with pytest.raises(FragmentLoadError, match="steps.0.id"):
            parse_fragment("steps:\n  - name: node\n    id: 42\n", owner="core", path=Path("x"))

    def test_non_string_wait_for_entry_rejected(self) -> None:
        with pytest.raises(FragmentLoadError, match="waitFor"):
            parse_fragment("steps:\n  - id: build\n    waitFor: [[nested]]\n", owner="core", path=Path("x"))

    def test_fragment_from_dict(self) -> None:
        fragment = fragment_from_dict({"steps": [{"id": "build", "waitFor": ["setup"]}]}, owner="core")

        assert fragment.steps[0].wait_for == ("setup",)

    def test_fragment_from_dict_validation_error(self) -> None:
        with pytest.raises(FragmentLoadError) as exc_info:
            fragment_from_dict({"steps": "build"}, owner="core")

        assert exc_info.value.package == "core"


class TestFragmentLoader:
    """Reading fragments from the repository layout."""

    def test_load_fragment(self, sample_repo: Path) -> None:
        loader = FragmentLoader(RepositorySettings(root=sample_repo))

        fragment = loader.load_fragment("core")

        assert [step.id for step in fragment.steps] == ["yarn-common", "build", "lint", "test"]

    def test_load_global_fragment(self, sample_repo: Path) -> None:
        loader = FragmentLoader(RepositorySettings(root=sample_repo))

        fragment = loader.load_global_fragment()

        assert [step.id for step in fragment.steps] == ["yarn-common", "bazel-tests", "nightly-benchmarks"]
        assert fragment.extra["timeout"] == "3600s"

    def test_missing_fragment(self, sample_repo: Path) -> None:
        loader = FragmentLoader(RepositorySettings(root=sample_repo))

        with pytest.raises(FragmentLoadError, match="file not found") as exc_info:
            loader.load_fragment("native")

        assert exc_info.value.package == "native"
        assert exc_info.value.path == sample_repo / "native" / "cloudbuild.yml"

    def test_missing_global_fragment(self, tmp_path: Path) -> None:
        loader = FragmentLoader(RepositorySettings(root=tmp_path))

        with pytest.raises(FragmentLoadError) as exc_info:
            loader.load_global_fragment()

        assert exc_info.value.package == GLOBAL_FRAGMENT_OWNER

    def test_non_utf8_fragment(self, tmp_path: Path) -> None:
        (tmp_path / "core").mkdir()
        path = tmp_path / "core" / "cloudbuild.yml"
        path.write_bytes(b"steps:\n  - id: b\xffuild\n")
        loader = FragmentLoader(RepositorySettings(root=tmp_path))

        with pytest.raises(FragmentLoadError) as exc_info:
            loader.load_fragment("core")

        assert exc_info.value.package == "core"
        assert exc_info.value.path == path

    def test_load_logged_at_info(self, tmp_path: Path) -> None:
        (tmp_path / "core").mkdir()
        (tmp_path / "core" / "cloudbuild.yml").write_text("steps:\n  - id: build\n  - id: test\n")
        loader = FragmentLoader(RepositorySettings(root=tmp_path))

        with capture_logs() as logs:
            loader.load_fragment("core")

        loaded = [entry for entry in logs if entry["event"] == "fragment_loaded"]
        assert loaded == [{"event": "fragment_loaded", "log_level": "info", "package": "core", "steps": 2}]

    def test_repository_laid_out_under_missing_directory(self, tmp_path: Path) -> None:
        root = write_repo(tmp_path / "checkout" / "repo", {"core": []}, {"core": {"steps": [{"id": "build"}]}}, {"steps": []})
        loader = FragmentLoader(RepositorySettings(root=root))

        assert [step.id for step in loader.load_fragment("core").steps] == ["build"]
        assert loader.load_global_fragment().steps == ()

    def test_each_load_returns_fresh_fragment(self, sample_repo: Path) -> None:
        loader = FragmentLoader(RepositorySettings(root=sample_repo))

        assert loader.load_fragment("core") is not loader.load_fragment("core")

    def test_custom_fragment_filename(self, tmp_path: Path) -> None:
        (tmp_path / "core").mkdir()
        (tmp_path / "core" / "pipeline.yml").write_text("steps:\n  - id: build\n")
        loader = FragmentLoader(RepositorySettings(root=tmp_path, fragment_filename="pipeline.yml"))

        assert loader.load_fragment("core").steps[0].id == "build"
