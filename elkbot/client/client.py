"""CLI client for Elkbot.

Runs the Slack bot, or ingests a channel once from the terminal.
"""

import logging

import typer
from prometheus_client import start_http_server
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from slack_sdk import WebClient

from elkbot.bot.handler import IngestCommandHandler
from elkbot.bot.runtime import ElkbotRuntime
from elkbot.errors import ElkbotError
from elkbot.index.writer import IndexWriter
from elkbot.ingest.projector import DocumentProjector
from elkbot.models.config import ConfigLoader, ElkbotConfig
from elkbot.sources.history import HistoryPaginator

logging.basicConfig(
    level=logging.WARNING, format="%(message)s", datefmt="[%X]", handlers=[RichHandler(rich_tracebacks=True)]
)

app = typer.Typer(help="Elkbot - index a Slack channel's backlog into Qdrant")
console = Console()


class State:
    """Application state container."""

    def __init__(self) -> None:
        self.config: ElkbotConfig = ElkbotConfig()


state = State()


@app.callback()  # type: ignore[misc]
def main(
    config: str = typer.Option("config/elkbot.yaml", "--config", help="Path to configuration file"),
    env_file: str = typer.Option(".env", "--env-file", help="Optional .env file with overrides"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging (DEBUG level)"),
) -> None:
    """Elkbot - index a Slack channel's backlog into Qdrant."""
    state.config = ConfigLoader.load(config, env_file=env_file)

    level_name = "DEBUG" if verbose else state.config.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.getLogger().setLevel(level)
    logging.getLogger("elkbot").setLevel(level)


def _start_metrics() -> None:
    port = state.config.metrics.port
    if port:
        start_http_server(port)
        logging.getLogger(__name__).info(f"Serving Prometheus metrics on :{port}")


@app.command()  # type: ignore[misc]
def run() -> None:
    """Connect to Slack and serve commands until interrupted."""
    _start_metrics()
    try:
        runtime = ElkbotRuntime(state.config)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    runtime.run_forever()


@app.command()  # type: ignore[misc]
def ingest(channel_id: str = typer.Argument(..., help="ID of the channel to ingest logs from.")) -> None:
    """Ingest a channel's backlog once, without the chat command."""
    if not state.config.slack.bot_token:
        console.print("[red]Slack bot token is not set (ELKBOT_TOKEN)[/red]")
        raise typer.Exit(code=1)

    web_client = WebClient(token=state.config.slack.bot_token)
    handler = IngestCommandHandler(
        history=HistoryPaginator.create(web_client, state.config.ingest),
        projector=DocumentProjector(IndexWriter.create(state.config.qdrant)),
        reply=lambda channel, text: None,
        is_authorized=lambda caller_id: True,
    )

    with console.status(f"Ingesting {channel_id}..."):
        try:
            report = handler.ingest_channel(channel_id)
        except ElkbotError as e:
            console.print(f"[red]Ingestion failed:[/red] {e}")
            raise typer.Exit(code=1)

    table = Table(title=f"Ingested {channel_id}")
    table.add_column("Pages", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Attachments", justify="right")
    table.add_row(str(report.pages), str(report.messages), str(report.attachments))
    console.print(table)
    console.print("[green]Channel messages successfully ingested.[/green]")


if __name__ == "__main__":
    app()
