"""
CLI utility helpers — output formatting and input parsing.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from chainspine.orchestration.loader import load_chain_definition
from chainspine.orchestration.models import ChainDefinition, ExecutionResult
from chainspine.orchestration.validation import ValidationReport

console = Console()
err_console = Console(stderr=True)


# ── Input helpers ────────────────────────────────────────────────────────


def load_definition(path: Path) -> ChainDefinition:
    """Load a chain document or exit with code 1."""
    try:
        return load_chain_definition(path)
    except (OSError, ValueError) as e:
        err_console.print(f"[bold red]Error[/bold red] loading {path}: {e}")
        raise typer.Exit(code=1) from None


def parse_data(raw: str | None) -> dict[str, Any]:
    """Parse the ``--data`` JSON object or exit with code 1."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        err_console.print(f"[bold red]Error[/bold red] invalid --data JSON: {e}")
        raise typer.Exit(code=1) from None
    if not isinstance(data, dict):
        err_console.print("[bold red]Error[/bold red] --data must be a JSON object")
        raise typer.Exit(code=1)
    return data


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_report(report: ValidationReport, *, title: str = "") -> None:
    """Render a validation report."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for message in report.errors:
        console.print(f"  [red]error[/red]   {message}")
    for message in report.warnings:
        console.print(f"  [yellow]warning[/yellow] {message}")
    style = "green" if report.valid else "red"
    console.print(f"[{style}]{report.summary()}[/{style}]")


def print_result(result: ExecutionResult, *, title: str = "") -> None:
    """Render an execution result as a summary table plus errors."""
    table = Table(title=title or None, show_header=True, header_style="bold cyan")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("chain_id", result.chain_id)
    table.add_row("success", _yes_no(result.success))
    table.add_row("cancelled", _yes_no(result.cancelled))
    table.add_row("completed_steps", f"{result.completed_steps}/{result.total_steps}")
    table.add_row("execution_time_ms", f"{result.execution_time_ms:.1f}")
    table.add_row("final_keys", ", ".join(sorted(result.final_data)) or "-")
    console.print(table)

    for error in result.errors:
        console.print(
            f"  [red]step {error.step_index}[/red] {error.error_type.value}: {error.message}"
        )


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"
