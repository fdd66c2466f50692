"""Validate configuration: credentials and Event Grid coordinates."""

from rich.table import Table

from graph_events.config import (
    AZURE_CLIENT_SECRET,
    CLIENT_STATE_MAX_LENGTH,
    DELTA_SETTLE_SECONDS,
    SUBSCRIPTION_CLIENT_STATE,
    SUBSCRIPTION_EXPIRATION_MINUTES,
    EventGridSettings,
)

from .shared import console, logger, missing_credentials


def validate_config() -> None:
    """Check required environment variables and print the effective settings."""
    log = logger.bind(command="validate-config")
    log.info("validate_config.start")

    event_grid = EventGridSettings.from_env()
    errors = [f"Missing {name}" for name in missing_credentials() + event_grid.missing()]
    if len(SUBSCRIPTION_CLIENT_STATE) > CLIENT_STATE_MAX_LENGTH:
        errors.append(f"SUBSCRIPTION_CLIENT_STATE longer than {CLIENT_STATE_MAX_LENGTH} characters")
    if errors:
        for msg in errors:
            console.print(f"[red]{msg}[/red]")
        log.error("validate_config.validation_failed", errors=errors)
        raise SystemExit(1)

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Auth mode", "app-only (client secret)" if AZURE_CLIENT_SECRET else "delegated (device code)")
    table.add_row("Notification URL", event_grid.notification_url())
    table.add_row("Subscription lifetime (min)", str(SUBSCRIPTION_EXPIRATION_MINUTES))
    table.add_row("Delta settle delay (s)", str(DELTA_SETTLE_SECONDS))
    console.print(table)
    console.print("[green]Config valid.[/green]")
    log.info("validate_config.ok")
