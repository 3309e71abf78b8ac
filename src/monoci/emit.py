"""Pipeline document serialization.

Both renderers are deterministic: identical documents produce
byte-identical text, so regenerating a pipeline from unchanged inputs
never shows up as a diff.
"""

from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path

import yaml

from monoci.contracts.pipeline import PipelineDocument


class OutputFormat(StrEnum):
    """Serialization format for the assembled pipeline."""

    YAML = "yaml"
    JSON = "json"


def render_yaml(document: PipelineDocument) -> str:
    return yaml.safe_dump(document.to_dict(), sort_keys=False, default_flow_style=False, allow_unicode=True)


def render_json(document: PipelineDocument) -> str:
    return json.dumps(document.to_dict(), indent=2, ensure_ascii=False) + "\n"


def render(document: PipelineDocument, fmt: OutputFormat = OutputFormat.YAML) -> str:
    if fmt == OutputFormat.JSON:
        return render_json(document)
    return render_yaml(document)


def write_pipeline(document: PipelineDocument, path: Path, fmt: OutputFormat = OutputFormat.YAML) -> None:
    """Write the rendered pipeline to ``path`` (UTF-8), creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render(document, fmt), encoding="utf-8")
