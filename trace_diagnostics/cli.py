"""CLI entry point for trace diagnostics."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from trace_diagnostics.analyzer import analyze_trace, load_trace
from trace_diagnostics.config import EngineConfig
from trace_diagnostics.gatherers.speedline import SpeedlineGatherer

app = typer.Typer(
    help="Trace diagnostics - compute quality metrics from browser traces",
    no_args_is_help=True
)
console = Console()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")
):
    """Trace diagnostics - compute quality metrics from browser traces."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)]
    )


def _check_trace_path(trace: Path) -> None:
    if not trace.exists():
        console.print(f"[red]Error:[/red] Trace file not found: {trace}")
        raise typer.Exit(code=1)
    if not trace.is_file():
        console.print(f"[red]Error:[/red] Path is not a file: {trace}")
        raise typer.Exit(code=1)


def _load(trace: Path):
    try:
        return load_trace(trace)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error reading trace:[/red] {e}")
        raise typer.Exit(code=1)


@app.command()
def analyze(
    trace: Path = typer.Option(..., "--trace", help="Path to a JSON trace file"),
    out: Path = typer.Option("metrics.json", "--out", help="Output JSON file path"),
    long_task_ms: Optional[int] = typer.Option(None, "--long-task-ms", help="Threshold for long tasks in milliseconds"),
    parallel: Optional[bool] = typer.Option(None, "--parallel/--no-parallel", help="Run metrics on a thread pool"),
):
    """Analyze a trace and write metric values to JSON."""
    _check_trace_path(trace)

    config = EngineConfig.from_env()
    if long_task_ms is not None:
        config.long_task_ms = long_task_ms
    if parallel is not None:
        config.parallel_metrics = parallel

    console.print(f"[blue]Analyzing trace:[/blue] {trace}")
    console.print(f"[blue]Output file:[/blue] {out}")
    console.print(f"[blue]Long task threshold:[/blue] {config.long_task_ms}ms")

    result = analyze_trace(_load(trace), config=config)
    with open(out, "w") as f:
        json.dump(result, f, indent=2)

    if result.get("debugString"):
        console.print(f"[red]Analysis failed:[/red] {result['debugString']}")
        raise typer.Exit(code=1)

    table = Table(title="Metrics")
    table.add_column("Name")
    table.add_column("Unit")
    table.add_column("Value", justify="right")
    for value in result["metrics"]:
        table.add_row(value["name"], value["unit"], f"{value['value']:.4f}")
    console.print(table)
    console.print(f"[green]✓[/green] Analysis complete: {out}")


@app.command("speed-index")
def speed_index(
    trace: Path = typer.Option(..., "--trace", help="Path to a JSON trace file with screenshots"),
):
    """Compute the speed index from screenshot frames in a trace."""
    _check_trace_path(trace)

    gatherer = SpeedlineGatherer()
    asyncio.run(gatherer.after_pass({}, {"traceContents": _load(trace)}))
    artifact = gatherer.artifact or {}
    if artifact.get("debugString"):
        console.print(f"[red]Error:[/red] {artifact['debugString']}")
        raise typer.Exit(code=1)

    console.print(f"[green]Speed index:[/green] {round(artifact['speedIndex'])}")
    for label, key in (("First visual change", "first"), ("Visually complete", "complete")):
        if artifact.get(key) is not None:
            console.print(f"[blue]{label}:[/blue] {artifact[key]:.0f}ms")


if __name__ == "__main__":
    app()
