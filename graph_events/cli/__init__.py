"""CLI commands: one module per concern (serve, subscriptions, validate-config)."""

from typer import Typer

from graph_events.cli import serve, subscriptions, validate_config as validate_config_module

app = Typer(help="Graph directory change notifications via Event Grid")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(serve.serve)
    app.command(name="create-subscription")(subscriptions.create_subscription)
    app.command(name="delete-subscription")(subscriptions.delete_subscription)
    app.command(name="list-subscriptions")(subscriptions.list_subscriptions)
    app.command(name="validate-config")(validate_config_module.validate_config)


register_commands()
