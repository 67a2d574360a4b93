"""Command-line interface for the FocusGuard agent."""

import logging
import sys
from typing import Annotated

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from focusguard import __version__
from focusguard.config import load_settings
from focusguard.services.categories import category_name, classify_domain
from focusguard.utils import MalformedUrlError, domain_from_url, is_trackable

app = typer.Typer(
    name="focusguard",
    help="Per-tab website and content visit tracking agent.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]focusguard[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """FocusGuard - mirror browser visits to the focus backend."""
    pass


def configure_logging(level: str) -> None:
    """Send agent logs through rich at the given level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    # Every backend call would otherwise log a request line.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _fetch_sessions(url: str, timeout_seconds: float = 2.0) -> list[dict] | None:
    """Read open sessions from a running agent, or None if unreachable."""
    try:
        response = httpx.get(f"{url}/api/sessions", timeout=timeout_seconds)
    except httpx.HTTPError:
        return None
    if response.status_code != 200:
        return None
    return response.json()


@app.command()
def start(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind the agent to."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind the agent to."),
    ] = 8765,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development."),
    ] = False,
) -> None:
    """Start the tracking agent.

    The browser extension posts tab lifecycle events to this agent, which
    mirrors visits to the backend configured by FOCUSGUARD_API_BASE_URL.
    """
    settings = load_settings()
    configure_logging(settings.log_level)

    url = f"http://{host}:{port}"
    console.print(
        Panel(
            f"[bold green]Starting focusguard agent[/bold green]\n\n"
            f"  URL: [link={url}]{url}[/link]\n"
            f"  Backend: {settings.api_base_url}\n"
            f"  User: {settings.user_id}\n"
            f"  Reload: {'enabled' if reload else 'disabled'}",
            title="FocusGuard",
            border_style="blue",
        )
    )

    import uvicorn

    uvicorn.run(
        "focusguard.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


@app.command()
def status(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host of the running agent."),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port of the running agent."),
    ] = 8765,
) -> None:
    """Show the visits currently open in each tab."""
    url = f"http://{host}:{port}"
    sessions = _fetch_sessions(url)
    if sessions is None:
        console.print(f"[red]No agent reachable at {url}.[/red]")
        raise typer.Exit(1)

    if not sessions:
        console.print("[yellow]No open visits.[/yellow]")
        return

    table = Table(title="Open Visits")
    table.add_column("Tab", style="cyan", justify="right")
    table.add_column("Domain", style="bold")
    table.add_column("State")
    table.add_column("Visit", justify="right")
    table.add_column("Content")

    for snapshot in sessions:
        session = snapshot["session"]
        content = session.get("content_session")
        if content:
            content_details = f"{content['metadata']['title']} (visit {content['content_visit_id']})"
        else:
            content_details = session.get("content_status", "-")
        table.add_row(
            str(snapshot["tab_id"]),
            session["domain"],
            session["status"],
            str(session.get("visit_id") or "-"),
            content_details,
        )
    console.print(table)


@app.command()
def classify(
    url: Annotated[str, typer.Argument(help="URL of the page to classify.")],
) -> None:
    """Show the domain and category the agent would record for a URL."""
    if not is_trackable(url):
        console.print(f"[red]Not a trackable http(s) URL:[/red] {url}")
        raise typer.Exit(1)
    try:
        domain = domain_from_url(url)
    except MalformedUrlError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    settings = load_settings()
    category_id = classify_domain(domain, settings.default_category_id)
    double_edged = category_id in settings.double_edged_category_ids
    console.print(f"[bold]Domain:[/bold] {domain}")
    console.print(f"[bold]Category:[/bold] {category_name(category_id)} ({category_id})")
    if double_edged:
        console.print("[cyan]Tracked per content item.[/cyan]")


@app.command()
def info() -> None:
    """Show information about the current installation."""
    settings = load_settings()
    double_edged = ", ".join(str(c) for c in sorted(settings.double_edged_category_ids))
    console.print(
        Panel(
            f"[bold blue]focusguard[/bold blue] v{__version__}\n\n"
            f"[bold]Python:[/bold] {sys.version}\n"
            f"[bold]Backend:[/bold] {settings.api_base_url}\n"
            f"[bold]User:[/bold] {settings.user_id}\n"
            f"[bold]Content-level categories:[/bold] {double_edged or 'none'}\n"
            f"[bold]Fetch page metadata:[/bold] {'yes' if settings.fetch_metadata else 'no'}",
            title="Installation Info",
            border_style="blue",
        )
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
