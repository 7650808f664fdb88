"""
Root Typer application for the chainspine CLI.

Commands:
    validate   check a chain document's structure
    run        run a chain document with simulated steps
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from chainspine.cli.utils import (
    err_console,
    load_definition,
    parse_data,
    print_json,
    print_report,
    print_result,
)
from chainspine.core.errors import InvalidConfigError
from chainspine.core.logging import configure_logging
from chainspine.core.settings import get_settings
from chainspine.orchestration.exceptions import ChainValidationError
from chainspine.orchestration.manager import ChainManager
from chainspine.orchestration.models import ErrorHandlingStrategy
from chainspine.orchestration.validation import validate_chain_definition

app = Typer(
    name="chainspine",
    help="chainspine — run and validate multi-step chains.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from chainspine import __version__

        try:
            v = pkg_version("chainspine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"chainspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """chainspine CLI — validate chain documents and run them."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("validate")
def validate(
    path: Path = typer.Argument(..., help="Chain document (YAML or JSON)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Validate a chain document. Exits 1 when it has errors."""
    definition = load_definition(path)
    report = validate_chain_definition(definition)

    if json_out:
        print_json(report.to_dict())
    else:
        print_report(report, title=f"Chain: {definition.id or path.name}")

    if not report.valid:
        raise typer.Exit(code=1)


@app.command("run")
def run(
    path: Path = typer.Argument(..., help="Chain document (YAML or JSON)"),
    data: str | None = typer.Option(None, "--data", "-d", help="Initial data as a JSON object"),
    strategy: ErrorHandlingStrategy | None = typer.Option(
        None, "--strategy", "-s", help="Error handling strategy"
    ),
    json_out: bool = typer.Option(False, "--json"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Run a chain document with simulated steps and print the result."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_format == "json",
        service=settings.service_name,
    )

    definition = load_definition(path)
    initial = parse_data(data)

    overrides = {}
    if strategy is not None:
        overrides["error_handling_strategy"] = strategy
    if log_level:
        overrides["log_level"] = log_level

    manager = ChainManager(settings=settings)
    try:
        result = manager.start_chain_execution(definition, initial, overrides)
    except ChainValidationError as e:
        err_console.print(f"[bold red]Invalid chain[/bold red] {e.definition_id!r}:")
        for message in e.errors:
            err_console.print(f"  - {message}")
        raise typer.Exit(code=1) from None
    except InvalidConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] {e.message}")
        raise typer.Exit(code=1) from None

    if json_out:
        print_json(result.to_dict())
    else:
        print_result(result, title=f"Chain: {definition.name}")

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
