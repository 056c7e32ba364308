from __future__ import annotations

from pathlib import Path

import typer

from ..errors import TgkitError
from ..model import ApiResult


def _run(config_path: Path | None, debug: bool, action) -> None:
    from . import open_client, print_result

    with open_client(config_path, debug) as client:
        try:
            result: ApiResult = action(client)
        except TgkitError as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(code=1) from e
    print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


def set_cmd(
    url: str = typer.Argument(..., help="Public https URL Telegram should post to."),
    secret: str | None = typer.Option(
        None, "--secret", help="Value Telegram echoes in the secret-token header."
    ),
    drop_pending: bool = typer.Option(
        False, "--drop-pending/--keep-pending", help="Discard queued updates."
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug/--no-debug"),
) -> None:
    """Register a webhook URL."""
    _run(
        config_path,
        debug,
        lambda client: client.set_webhook(
            url, secret_token=secret, drop_pending_updates=drop_pending or None
        ),
    )


def delete_cmd(
    drop_pending: bool = typer.Option(False, "--drop-pending/--keep-pending"),
    config_path: Path | None = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug/--no-debug"),
) -> None:
    """Remove the webhook so polling can be used."""
    _run(
        config_path,
        debug,
        lambda client: client.delete_webhook(drop_pending_updates=drop_pending or None),
    )


def info_cmd(
    config_path: Path | None = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug/--no-debug"),
) -> None:
    """Show the current webhook status."""
    _run(config_path, debug, lambda client: client.get_webhook_info())


def webhook_app() -> typer.Typer:
    app = typer.Typer(help="Manage the bot's webhook registration.", no_args_is_help=True)
    app.command(name="set")(set_cmd)
    app.command(name="delete")(delete_cmd)
    app.command(name="info")(info_cmd)
    return app
