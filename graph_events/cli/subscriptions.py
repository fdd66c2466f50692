"""Operator commands: create, delete and list the Graph subscription."""

import asyncio

import typer
from rich.table import Table

from graph_events.notifications.subscription import SubscriptionResult

from .shared import console, get_subscription_manager, logger


def _print_result(result: SubscriptionResult) -> None:
    color = "green" if result.ok else "red"
    console.print(f"[{color}]{result.message}[/{color}]")
    if result.subscription_id:
        console.print(f"  Subscription ID: {result.subscription_id}")
    if result.resource:
        console.print(f"  Resource: {result.resource}")


def create_subscription(
    group_id: str = typer.Argument(..., help="Group whose membership changes to subscribe to"),
    mock: bool = typer.Option(False, "--mock", help="Use the in-memory directory"),
) -> None:
    """Create the Graph subscription for a group's members (refuses if one exists)."""
    log = logger.bind(command="create-subscription", group_id=group_id)
    log.info("create_subscription.start")
    manager = get_subscription_manager(mock)
    result = asyncio.run(manager.create(group_id))
    _print_result(result)
    if not result.ok:
        raise typer.Exit(1)


def delete_subscription(
    subscription_id: str = typer.Argument(..., help="Subscription to delete"),
    mock: bool = typer.Option(False, "--mock", help="Use the in-memory directory"),
) -> None:
    """Delete a Graph subscription by id."""
    log = logger.bind(command="delete-subscription", subscription_id=subscription_id)
    log.info("delete_subscription.start")
    manager = get_subscription_manager(mock)
    result = asyncio.run(manager.delete(subscription_id))
    _print_result(result)
    if not result.ok:
        raise typer.Exit(1)


def list_subscriptions(
    mock: bool = typer.Option(False, "--mock", help="Use the in-memory directory"),
) -> None:
    """List current Graph subscriptions."""
    manager = get_subscription_manager(mock)
    subscriptions = asyncio.run(manager.list_subscriptions())
    if not subscriptions:
        console.print("[dim]No subscriptions.[/dim]")
        return
    table = Table(title="Graph subscriptions")
    table.add_column("ID", style="cyan")
    table.add_column("Resource", style="green")
    table.add_column("Change types")
    table.add_column("Expires")
    for sub in subscriptions:
        table.add_row(
            sub.id or "",
            sub.resource or "",
            sub.change_type or "",
            sub.expiration_date_time.isoformat() if sub.expiration_date_time else "",
        )
    console.print(table)
