"""Serve mode: run the FastAPI listener for Event Grid notifications."""

import sys

import typer
import uvicorn

from graph_events.config import MOCK_DIRECTORY_PATH, WEBHOOK_PORT
from graph_events.notifications.server import HANDLER_ENDPOINT, create_app

from .shared import console, get_directory_client, logger, missing_credentials


def serve(
    port: int = typer.Option(WEBHOOK_PORT, "--port", "-p", help="Port for the webhook server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
    mock: bool = typer.Option(
        False,
        "--mock",
        help="Use the in-memory directory (seeded from MOCK_DIRECTORY_PATH) instead of Graph",
    ),
) -> None:
    """Start the webhook listener for Graph notifications delivered by Event Grid."""
    log = logger.bind(command="serve", port=port, mock=mock)
    log.info("serve.start")

    if mock:
        console.print(f"[yellow]Using in-memory directory from {MOCK_DIRECTORY_PATH}[/yellow]")
        app = create_app(client=get_directory_client(mock=True))
    else:
        missing = missing_credentials()
        if missing:
            console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
            log.warning("serve.missing_env", missing=missing)
            raise typer.Exit(1)
        # Graph client is created in the server's event loop
        app = create_app()

    console.print(f"[green]Starting webhook server on http://{host}:{port}[/green]")
    console.print(
        f"[dim]Endpoints: OPTIONS/POST {HANDLER_ENDPOINT}, "
        f"GET {HANDLER_ENDPOINT}/create/{{id}}, GET {HANDLER_ENDPOINT}/delete/{{id}}, GET /health[/dim]"
    )
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=15,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
