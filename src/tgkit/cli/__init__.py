from __future__ import annotations

from pathlib import Path
from typing import Any

import msgspec
import typer
from rich.console import Console

from .. import __version__
from ..client import BotClient
from ..config import BotConfig, load_config
from ..errors import ConfigError, PollingAbortedError, TgkitError
from ..ingestion import UpdateIngestor
from ..logging import get_logger, setup_logging
from ..updates import Update
from .webhook import webhook_app

logger = get_logger(__name__)

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to tgkit.toml (defaults to ./.tgkit/tgkit.toml, then ~/.tgkit/tgkit.toml).",
)
_DEBUG_OPTION = typer.Option(False, "--debug/--no-debug", help="Verbose console logs.")


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _load_config_or_exit(path: Path | None, debug: bool) -> BotConfig:
    try:
        config = load_config(path)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    setup_logging(debug=debug or config.debug, log_file=config.log_file)
    return config


def build_client(config: BotConfig) -> BotClient:
    return BotClient(config.token, config.request)


def open_client(path: Path | None, debug: bool) -> BotClient:
    config = _load_config_or_exit(path, debug)
    try:
        return build_client(config)
    except TgkitError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e


def parse_param(raw: str) -> tuple[str, Any]:
    """Parse ``key=value``; values that read as JSON are decoded."""
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"expected key=value, got {raw!r}")
    try:
        return key.strip(), msgspec.json.decode(value)
    except msgspec.DecodeError:
        return key.strip(), value


def print_result(result: Any) -> None:
    Console().print_json(msgspec.json.encode(result).decode("utf-8"))


def call(
    method: str = typer.Argument(..., help="Bot API method, e.g. getMe."),
    param: list[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="Request parameter as key=value; repeat for more.",
    ),
    config_path: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Call one Bot API method and print the JSON response."""
    params = dict(parse_param(item) for item in param)
    with open_client(config_path, debug) as client:
        try:
            result = client.call(method, params)
        except TgkitError as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(code=1) from e
    print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


def poll(
    config_path: Path | None = _CONFIG_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Long-poll for updates and print each one as JSON."""
    config = _load_config_or_exit(config_path, debug)
    try:
        client = build_client(config)
    except TgkitError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e

    def echo_update(update: Update, _client: BotClient) -> None:
        print_result(update.to_dict())

    with client:
        ingestor = UpdateIngestor(client, "polling", config=config.ingestion)
        ingestor.set_callback(echo_update)
        try:
            ingestor.run_polling()
        except PollingAbortedError as e:
            typer.echo(f"error: {e}", err=True)
            raise typer.Exit(code=1) from e
        except KeyboardInterrupt:
            logger.info("shutdown.interrupted")
            raise typer.Exit(code=130) from None


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """tgkit: Telegram Bot API client."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Telegram Bot API client and update runner.",
    )
    app.callback()(app_main)
    app.command(name="call")(call)
    app.command(name="poll")(poll)
    app.add_typer(webhook_app(), name="webhook")
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
