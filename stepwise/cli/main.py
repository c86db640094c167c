"""Main CLI entry point using Typer."""

import json
from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from stepwise import __version__
from stepwise.core.config import get_settings
from stepwise.core.logging import configure_logging
from stepwise.decomposition.models import BreakdownResult, RefinementMode, Step, StreamEventType

app = typer.Typer(
    name="stepwise",
    help="Stepwise - ADHD-friendly task breakdowns",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Stepwise[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Stepwise - turn a daunting task into small, timed steps.

    Runs without an API key too; every stage then uses its fallback.
    """
    configure_logging(get_settings())


@app.command()
def breakdown(
    title: str = typer.Argument(..., help="Task title"),
    description: str | None = typer.Option(
        None,
        "--description",
        "-d",
        help="Optional task description",
    ),
    deferred: bool = typer.Option(
        False,
        "--deferred",
        help="Only flag composite steps instead of refining them",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the breakdown as JSON",
    ),
) -> None:
    """
    Break a task down into a step tree.

    Example:
        stepwise breakdown "Build a personal website"
    """
    mode = RefinementMode.DEFERRED if deferred else RefinementMode.EAGER

    async def do_breakdown() -> BreakdownResult:
        from stepwise.core.pipeline import BreakdownPipeline

        pipeline = BreakdownPipeline()
        return await pipeline.breakdown(title, description=description, mode=mode)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Breaking it down...", total=None)
        result = anyio.run(do_breakdown)

    header = (
        f"[bold]Size:[/bold] {result.complexity.size.value}  "
        f"[bold]Budget:[/bold] {result.complexity.total_minutes} min  "
        f"[bold]Language:[/bold] {result.language.value}"
    )
    if result.learning_mode:
        header += "  [magenta]learning mode[/magenta]"
    if result.used_fallback:
        header += "  [yellow]template[/yellow]"
    console.print(Panel(header, title=f"[bold blue]{title}[/bold blue]", border_style="blue"))

    tree = Tree(f"[bold]{title}[/bold]")
    for step in result.steps:
        _add_step(tree, step)
    console.print(tree)

    if output:
        output.write_text(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        console.print(f"[green]Saved to {output}[/green]")


@app.command()
def classify(
    title: str = typer.Argument(..., help="Task title"),
    description: str | None = typer.Option(
        None,
        "--description",
        "-d",
        help="Optional task description",
    ),
) -> None:
    """
    Estimate how big a task is.
    """

    async def do_classify():
        from stepwise.core.pipeline import BreakdownPipeline

        return await BreakdownPipeline().classify(title, description)

    estimate = anyio.run(do_classify)

    table = Table(title="Complexity")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("Size", estimate.size.value)
    table.add_row("Keyword rules", estimate.rule_size.value if estimate.rule_size else "-")
    table.add_row("Model", estimate.model_size.value)
    table.add_row("Total minutes", str(estimate.total_minutes))
    table.add_row("Time scale", estimate.time_scale.value)
    if estimate.reasoning:
        table.add_row("Reasoning", estimate.reasoning)
    console.print(table)


@app.command()
def stream(
    title: str = typer.Argument(..., help="Task title"),
    description: str | None = typer.Option(
        None,
        "--description",
        "-d",
        help="Optional task description",
    ),
) -> None:
    """
    Stream a breakdown, printing steps as they arrive.
    """

    async def do_stream() -> bool:
        from stepwise.core.pipeline import BreakdownPipeline

        pipeline = BreakdownPipeline()
        async for event in pipeline.stream_breakdown(title, description=description):
            if event.type == StreamEventType.SUBTASK:
                step = event.payload["subtask"]
                console.print(f"  [cyan]+[/cyan] {step['title']} [dim]({step['estimatedMinutes']} min)[/dim]")
            elif event.type == StreamEventType.COMPLETE:
                steps = event.payload["subtasks"]
                total = sum(s["estimatedMinutes"] for s in steps)
                console.print(f"\n[bold green]Done:[/bold green] {len(steps)} steps, {total} min")
            elif event.type == StreamEventType.ERROR:
                console.print(f"\n[bold red]Error:[/bold red] {event.payload['error']}")
                return False
        return True

    if not anyio.run(do_stream):
        raise typer.Exit(code=1)


@app.command()
def serve(
    port: int | None = typer.Option(None, "--port", "-p", help="Port to bind to"),
    host: str | None = typer.Option(None, "--host", "-h", help="Host to bind to"),
) -> None:
    """
    Start the Stepwise API server.

    Example:
        stepwise serve --port 3000
    """
    import uvicorn

    from stepwise.api.main import app as api_app

    settings = get_settings()
    host = host or settings.stepwise_host
    port = port or settings.stepwise_port

    console.print(
        Panel(
            f"[bold]API:[/bold]     http://{host}:{port}/api\n"
            f"[bold]API Docs:[/bold] http://{host}:{port}/docs\n"
            f"[bold]Health:[/bold]  http://{host}:{port}/health",
            title="[bold cyan]Stepwise API[/bold cyan]",
            border_style="cyan",
        )
    )

    uvicorn.run(api_app, host=host, port=port, log_level="info")


def _add_step(parent: Tree, step: Step) -> None:
    marker = "[yellow]composite[/yellow] " if step.is_composite and not step.children else ""
    label = f"{step.title} [dim]{step.estimated_minutes} min, {step.step_type.value}[/dim] {marker}"
    if step.strategy_tag:
        label += f"[magenta]{step.strategy_tag}[/magenta]"
    node = parent.add(label.rstrip())
    for child in step.children:
        _add_step(node, child)


if __name__ == "__main__":
    app()
