# src/monoci/cli.py
"""monoci Command Line Interface.

Entry point for the monoci CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from monoci import __version__
from monoci.assembly import PipelineAssembler, stale_exemptions
from monoci.contracts import AssemblyError, DependencyGraphError, Selection, UnknownPackageError
from monoci.core.config import MonociSettings, RepositorySettings, load_settings
from monoci.core.fragments import FragmentLoader
from monoci.core.graph import DependencyGraph
from monoci.emit import OutputFormat, render, write_pipeline

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

app = typer.Typer(
    name="monoci",
    help="monoci: assemble one CI pipeline for a multi-package repository.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"monoci version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # Existence is checked by _load_dotenv for a better message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """monoci: assemble one CI pipeline for a multi-package repository."""
    # Configure logging before any subcommand runs; logs go to stderr
    from monoci.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _format_error(
    title: str,
    message: str,
    hint: str | None = None,
    details: list[str] | None = None,
) -> None:
    """Display a formatted error panel on stderr with optional hint and details."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    console = Console(stderr=True)

    content = Text()
    content.append(message, style="white")

    if details:
        content.append("\n\n")
        for detail in details:
            content.append(f"  • {detail}\n", style="dim")

    if hint:
        content.append("\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    console.print(Panel(content, title=f"[red bold]{title}[/]", border_style="red", expand=False))


def _load_config(settings: str | None, root: str | None) -> MonociSettings:
    """Load settings from file (if given), applying a --root override.

    Raises:
        typer.Exit: On any settings error (after printing it)
    """
    if settings is None:
        return MonociSettings(repository=RepositorySettings(root=Path(root or ".")))

    settings_path = Path(settings).expanduser()
    try:
        config = load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        _format_error(
            title="YAML Syntax Error",
            message=f"Failed to parse {settings_path.name}",
            details=[str(e.problem)] if hasattr(e, "problem") else None,
            hint="Check for unclosed brackets, incorrect indentation, or invalid characters.",
        )
        raise typer.Exit(1) from None
    except FileNotFoundError:
        _format_error(
            title="File Not Found",
            message=f"Settings file does not exist: {settings}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(1) from None
    except ValidationError as e:
        details = [f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()]
        _format_error(
            title="Configuration Validation Failed",
            message=f"Invalid settings in {settings_path.name}",
            details=details,
            hint="Check field names, types, and required values.",
        )
        raise typer.Exit(1) from None

    if root is not None:
        repository = config.repository.model_copy(update={"root": Path(root)})
        config = config.model_copy(update={"repository": repository})
    return config


def _create_assembler(config: MonociSettings) -> PipelineAssembler:
    """Load the dependency graph and wire up an assembler.

    Raises:
        typer.Exit: If the graph cannot be loaded
    """
    try:
        graph = DependencyGraph.load(config.repository.dependency_graph_path)
    except DependencyGraphError as e:
        _format_error(
            title="Dependency Graph Error",
            message=str(e),
            hint=f"Check {config.repository.dependency_graph} under {config.repository.root}.",
        )
        raise typer.Exit(1) from None
    return PipelineAssembler(graph, FragmentLoader(config.repository), config)


def _report_assembly_error(e: AssemblyError, config: MonociSettings) -> None:
    if isinstance(e, UnknownPackageError):
        _format_error(
            title="Unknown Package",
            message=str(e),
            hint=f"Declare '{e.package}' in {config.repository.dependency_graph} or list it under unlisted_packages.",
        )
    else:
        _format_error(title=f"Assembly Failed ({type(e).__name__})", message=str(e))


def _print_selection(assembler: PipelineAssembler, selection: Selection) -> None:
    from rich.console import Console

    from monoci.reporting import build_selection_rows, selection_table

    rows = build_selection_rows(assembler.graph, selection, assembler.settings.delegation)
    Console(stderr=True).print(selection_table(rows))


@app.command()
def generate(
    packages: list[str] = typer.Argument(
        ...,
        help="Target packages to build and test.",
    ),
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    root: str | None = typer.Option(
        None,
        "--root",
        "-r",
        help="Repository root (overrides repository.root from settings).",
    ),
    nightly: bool = typer.Option(
        False,
        "--nightly",
        help="Keep nightly-only steps.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the pipeline to this file instead of stdout.",
    ),
    output_format: OutputFormat = typer.Option(
        OutputFormat.YAML,
        "--format",
        "-f",
        help="Output format: 'yaml' or 'json'.",
    ),
    report: bool = typer.Option(
        True,
        "--report/--no-report",
        help="Print which packages will be built and tested (stderr).",
    ),
) -> None:
    """Assemble the pipeline for PACKAGES and write it out."""
    config = _load_config(settings, root)
    assembler = _create_assembler(config)

    try:
        result = assembler.assemble(packages, nightly=nightly)
    except AssemblyError as e:
        _report_assembly_error(e, config)
        raise typer.Exit(1) from None

    if report:
        _print_selection(assembler, result.selection)

    if output is None:
        typer.echo(render(result.pipeline, output_format), nl=False)
    else:
        write_pipeline(result.pipeline, output, output_format)
        typer.echo(f"Wrote {len(result.pipeline.steps)} steps to {output}", err=True)


@app.command()
def plan(
    packages: list[str] = typer.Argument(
        ...,
        help="Target packages to build and test.",
    ),
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    root: str | None = typer.Option(
        None,
        "--root",
        "-r",
        help="Repository root (overrides repository.root from settings).",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    ),
) -> None:
    """Show which packages would be built and tested, without loading fragments."""
    from monoci.reporting import build_selection_rows, format_selection_table

    config = _load_config(settings, root)
    assembler = _create_assembler(config)

    try:
        selection = assembler.select(packages)
    except AssemblyError as e:
        if json_output:
            typer.echo(json.dumps({"error": str(e), "error_type": type(e).__name__}))
        else:
            _report_assembly_error(e, config)
        raise typer.Exit(1) from None

    rows = build_selection_rows(assembler.graph, selection, config.delegation)
    if json_output:
        payload = {
            "targets": sorted(selection.targets),
            "build": sorted(selection.build),
            "test": sorted(selection.test),
            "delegated": sorted(selection.delegated),
            "packages": [row.to_dict() for row in rows],
        }
        typer.echo(json.dumps(payload, indent=2))
    else:
        typer.echo(format_selection_table(rows), nl=False)


@app.command()
def validate(
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    root: str | None = typer.Option(
        None,
        "--root",
        "-r",
        help="Repository root (overrides repository.root from settings).",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat stale unlisted-package exemptions as errors.",
    ),
) -> None:
    """Validate settings, the dependency graph and every package fragment.

    Assembles a nightly pipeline for every package, which loads and merges
    every non-delegated fragment.
    """
    config = _load_config(settings, root)
    assembler = _create_assembler(config)

    everything = sorted({*assembler.graph.packages, *config.unlisted_packages})
    try:
        result = assembler.assemble(everything, nightly=True)
    except AssemblyError as e:
        _report_assembly_error(e, config)
        raise typer.Exit(1) from None

    stale = stale_exemptions(assembler.graph, config.unlisted_packages)
    for name in stale:
        typer.secho(
            f"Warning: '{name}' is declared in the dependency graph; remove it from unlisted_packages.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    typer.echo(
        f"Configuration valid: {len(assembler.graph)} packages, "
        f"{len(result.selection.merged)} fragments, {len(result.pipeline.steps)} steps."
    )
    if stale and strict:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
