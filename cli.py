import asyncio
import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from wayfinder.core.config import settings
from wayfinder.core.exceptions import AIGenerationException
from wayfinder.models.graph import MapEdge, MapNode
from wayfinder.models.layout import LayoutConfig
from wayfinder.services.ai_service import AIService
from wayfinder.services.graph_layout import compute_layout, count_skipped_edges
from wayfinder.services.prompt_service import PromptService

cli_app = typer.Typer(help="Developer tools for the Wayfinder curiosity journal.")
console = Console()


@cli_app.command()
def suggest(
    concept: str = typer.Argument(..., help="The concept to branch sideways from."),
):
    """
    Calls the AIService directly to test and tune the lateral connection prompt.
    """
    if not settings.GEMINI_API_KEY:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY is not set in your .env file.")
        raise typer.Exit(code=1)

    ai_service = AIService(api_key=settings.GEMINI_API_KEY, prompt_service=PromptService())
    console.print(f"[cyan]Asking for lateral connections of[/cyan] [bold]{concept}[/bold]...")
    try:
        connections = asyncio.run(ai_service.generate_lateral_connections(concept))
    except AIGenerationException as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"Sideways from '{concept}'")
    table.add_column("Type", style="magenta")
    table.add_column("Concept", style="bold")
    table.add_column("Reason")
    for connection in connections:
        table.add_row(connection.type.value, connection.concept, connection.reason)
    console.print(table)


@cli_app.command()
def layout(
    graph_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with 'nodes' and 'edges'."),
    iterations: int = typer.Option(50, "--iterations", "-i", min=1, help="Number of simulation passes."),
    as_json: bool = typer.Option(False, "--json", help="Print positions as JSON instead of a table."),
):
    """
    Runs the force-directed layout on a curiosity map export (the /curiosity-map payload).
    """
    try:
        payload = json.loads(graph_file.read_text(encoding="utf-8"))
        nodes = [MapNode.model_validate(node) for node in payload.get("nodes", [])]
        edges = [MapEdge.model_validate(edge) for edge in payload.get("edges", [])]
    except (json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[bold red]Error:[/bold red] {graph_file} is not a valid curiosity map: {exc}")
        raise typer.Exit(code=1)

    positions = compute_layout(nodes, edges, LayoutConfig(iterations=iterations))

    if as_json:
        console.print_json(json.dumps({node_id: pos.model_dump() for node_id, pos in positions.items()}))
        return

    labels = {node.id: node.concept for node in nodes}
    table = Table(title=f"Layout after {iterations} iterations")
    table.add_column("Node")
    table.add_column("Concept", style="bold")
    table.add_column("x", justify="right")
    table.add_column("y", justify="right")
    for node_id, pos in positions.items():
        table.add_row(node_id, labels[node_id], f"{pos.x:.1f}", f"{pos.y:.1f}")
    console.print(table)

    skipped = count_skipped_edges(nodes, edges)
    if skipped:
        console.print(f"[yellow]Skipped {skipped} edge(s) referencing unknown nodes.[/yellow]")


if __name__ == "__main__":
    cli_app()
