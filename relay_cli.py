"""
A terminal client for the relay service.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Prompt
from rich.spinner import Spinner
from rich.table import Table

from relay_service.client.consumer import API_BASE_URL, StreamConsumer, TurnTranscript
from relay_service.core.errors import RelayError, RelayStreamError

# --- Rich Console Initialization ---
console = Console()
app = typer.Typer(
    name="relay-cli",
    help="A terminal client for the relay service.",
    add_completion=False,
)


def select_model(consumer: StreamConsumer, model_name: Optional[str]) -> str:
    """Guides the user to select a model if one isn't provided."""
    try:
        models = asyncio.run(consumer.list_models())
    except RelayStreamError as e:
        console.print(f"[bold red]Error:[/bold red] Could not connect to the service at {consumer.base_url}.")
        console.print("Please ensure the relay service is running: [bold]python -m relay_service.app[/bold]")
        console.print(f"Details: {e}")
        raise typer.Exit(1)

    if model_name:
        if model_name in models:
            return model_name
        console.print(f"[bold red]Error:[/bold red] Model '{model_name}' not found.")
        raise typer.Exit(1)
    if not models:
        console.print("[bold red]Error:[/bold red] The service reported no models.")
        raise typer.Exit(1)

    console.print("\nAvailable Models:")
    for i, name in enumerate(models):
        console.print(f"  [bold cyan][{i + 1}][/bold cyan] {name}")
    choice = Prompt.ask("\nModel", choices=[str(i + 1) for i in range(len(models))], default="1")
    return models[int(choice) - 1]


def render_payload(data: Dict[str, Any]) -> None:
    kind = data.get("kind")
    body = data.get("data") or {}
    if kind == "flights":
        table = Table(title="Flights", border_style="yellow")
        for col in ("Airline", "Departs", "Arrives", "Duration", "Price"):
            table.add_column(col)
        for f in body.get("flights", []):
            table.add_row(str(f.get("airline")), str(f.get("departure")), str(f.get("arrival")), str(f.get("duration")), str(f.get("price")))
        console.print(table)
    elif kind == "hotels":
        table = Table(title="Hotels", border_style="yellow")
        for col in ("Name", "Rating", "Per night", "Amenities"):
            table.add_column(col)
        for h in body.get("hotels", []):
            table.add_row(str(h.get("name")), str(h.get("rating") or ""), str(h.get("price") or ""), str(h.get("amenities") or ""))
        console.print(table)
    elif kind == "weather":
        current = body.get("current") or {}
        lines = [f"{k}: {v}" for k, v in current.items()]
        if body.get("forecast_summary"):
            lines.append(str(body["forecast_summary"]))
        console.print(Panel("\n".join(lines), title="Weather", border_style="yellow", expand=False))
    else:
        console.print(Panel(json.dumps(body, indent=2)[:1000], title=str(kind), border_style="yellow"))


async def run_turn(consumer: StreamConsumer, body: Dict[str, Any], debug: bool = False) -> TurnTranscript:
    """Stream one turn to the console and return what was received."""
    transcript = TurnTranscript()
    text_started = False
    with Live(Spinner("dots", text="[dim]Waiting for response...[/dim]"), console=console, refresh_per_second=10) as live:
        spinner_active = True
        async for event in consumer.events(body):
            # Stop spinner on first event
            if spinner_active:
                live.stop()
                spinner_active = False
            if debug:
                console.print(f"[dim]Received event: {event}[/dim]")

            evt_type = event.get("type")
            evt_data = event.get("data", {})
            if evt_type == "text":
                delta = evt_data.get("delta", "")
                transcript.text += delta
                if not text_started:
                    console.print("\n[bold green]Assistant:[/bold green]")
                    text_started = True
                console.print(delta, end="", style="green")
            elif evt_type == "status":
                if text_started:
                    console.print()
                transcript.statuses.append(evt_data.get("label", ""))
                console.print(f"[dim italic]{evt_data.get('label', '')}[/dim italic]")
            elif evt_type == "payload":
                transcript.payloads.append(evt_data)
                render_payload(evt_data)
            elif evt_type == "artifact":
                transcript.artifacts.append(evt_data)
                console.print(Panel(str(evt_data.get("content", ""))[:2000], title=f"Artifact: {evt_data.get('title')} ({evt_data.get('type')})", border_style="blue"))
            elif evt_type == "done":
                transcript.done = True
                transcript.truncated = bool(evt_data.get("truncated"))
                transcript.usage = dict(evt_data.get("usage") or {})

    if text_started:
        console.print()
    transcript.timed_out = consumer.timed_out
    if transcript.truncated:
        console.print("[yellow]The response was cut off at the token limit.[/yellow]")
    if transcript.timed_out:
        console.print("[yellow]The response took too long and was stopped.[/yellow]")
    if debug and transcript.usage:
        console.print(f"[dim]usage: {transcript.usage}[/dim]")
    return transcript


@app.command()
def chat(
    model_name: Optional[str] = typer.Option(None, "--model", "-m", help="Model alias. If not provided, a list will be shown."),
    persona: str = typer.Option("default", "--persona", "-p", help="Persona for the system prompt."),
    base_url: str = typer.Option(API_BASE_URL, "--url", help="Base URL of the relay API."),
    debug: bool = typer.Option(False, "--debug", help="Show every received event."),
):
    """
    Interactive chat. The conversation is kept client-side and sent with every turn.
    """
    console.print(Panel.fit("[bold blue]Relay CLI[/bold blue]\nType [bold cyan]\\exit[/bold cyan] to quit, [bold cyan]\\reset[/bold cyan] to start over.", style="bold blue"))
    consumer = StreamConsumer(base_url=base_url)
    model_name = select_model(consumer, model_name)
    console.print(f"Starting chat with [bold green]{model_name}[/bold green]...")

    history: List[Dict[str, str]] = []
    while True:
        user_prompt = Prompt.ask("[bold cyan]You[/bold cyan]")
        stripped = user_prompt.strip().lower()
        if stripped in ("\\exit", "\\quit"):
            console.print("Goodbye!")
            break
        if stripped == "\\reset":
            history.clear()
            console.print("History cleared.")
            console.rule()
            continue
        if not stripped:
            continue

        history.append({"role": "user", "content": user_prompt})
        body = {"messages": history, "model": model_name, "persona": persona}
        try:
            transcript = asyncio.run(run_turn(consumer, body, debug=debug))
        except RelayStreamError as e:
            console.print(Panel(str(e), title="Error", border_style="bold red"))
            history.pop()
            continue
        finally:
            console.rule()
        if transcript.text:
            history.append({"role": "assistant", "content": transcript.text})


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="The question to send."),
    model_name: str = typer.Option("relay-beta", "--model", "-m"),
    base_url: str = typer.Option(API_BASE_URL, "--url"),
):
    """One-shot question; prints the answer and exits non-zero on error."""
    consumer = StreamConsumer(base_url=base_url)
    try:
        transcript = asyncio.run(run_turn(consumer, {"messages": [{"role": "user", "content": prompt}], "model": model_name}))
    except RelayStreamError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    if not transcript.done:
        raise typer.Exit(2)


@app.command()
def tool(
    name: str = typer.Argument(..., help="Registered tool name, e.g. calculator."),
    args: str = typer.Argument("{}", help="JSON object of arguments."),
):
    """Run a single tool locally through the execution coordinator (no model involved)."""
    from relay_service.core.factory import ServiceFactory

    try:
        parsed = json.loads(args)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid JSON arguments:[/bold red] {e}")
        raise typer.Exit(1)

    coordinator = ServiceFactory().get_coordinator()
    result = asyncio.run(coordinator.run(name, parsed))
    try:
        result.raise_for_error()
    except RelayError as e:
        console.print(f"[bold red]{name} failed:[/bold red] {e}")
        raise typer.Exit(1)
    console.print_json(json.dumps(result.value, default=str))
    console.print(f"[dim]{result.duration_ms} ms[/dim]")


if __name__ == "__main__":
    app()
