"""Shared CLI helpers: console, logger, directory client construction."""

import os

import typer
from rich.console import Console

from graph_events.config import (
    AZURE_CLIENT_ID,
    AZURE_CLIENT_SECRET,
    AZURE_TENANT_ID,
    MOCK_DIRECTORY_PATH,
    SUBSCRIPTION_CLIENT_STATE,
    SUBSCRIPTION_EXPIRATION_MINUTES,
    EventGridSettings,
)
from graph_events.directory.graph_mock import InMemoryDirectory
from graph_events.directory.protocol import DirectoryClient
from graph_events.notifications.subscription import SubscriptionManager
from graph_events.utils.logger import get_logger

console = Console()
logger = get_logger("graph_events.cli")

REQUIRED_CREDENTIALS = ("AZURE_TENANT_ID", "AZURE_CLIENT_ID")


def missing_credentials() -> list[str]:
    return [k for k in REQUIRED_CREDENTIALS if not os.getenv(k)]


def get_directory_client(mock: bool = False) -> DirectoryClient:
    """Graph client from AZURE_* env vars, or the in-memory directory when `mock`."""
    if mock:
        return InMemoryDirectory.from_file(MOCK_DIRECTORY_PATH)
    missing = missing_credentials()
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        logger.warning("cli.missing_env", missing=missing)
        raise typer.Exit(1)
    from graph_events.directory.graph_real import GraphDirectoryClient

    return GraphDirectoryClient.from_credentials(
        tenant_id=AZURE_TENANT_ID,
        client_id=AZURE_CLIENT_ID,
        client_secret=AZURE_CLIENT_SECRET or None,
    )


def get_subscription_manager(mock: bool = False) -> SubscriptionManager:
    return SubscriptionManager(
        get_directory_client(mock),
        EventGridSettings.from_env(),
        client_state=SUBSCRIPTION_CLIENT_STATE,
        expiration_minutes=SUBSCRIPTION_EXPIRATION_MINUTES,
    )
