"""CLI commands for the Codicent client."""

import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog

from src.client import CodicentClient, Message
from src.errors import ClientError
from src.observability.logging import bind_client_context, configure_logging
from src.settings import AppSettings, get_settings


logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class CliOptions:
    """Options shared by every command."""

    settings: AppSettings
    json_logs: bool
    verbose: bool


def _echo_log_line(line: str) -> None:
    click.echo(line, err=True)


def _run_with_client(
    options: CliOptions, action: Callable[[CodicentClient], Awaitable[T]]
) -> T:
    """Initialize a client from settings, run an action with it and exit on errors."""
    configure_logging(
        level=logging.DEBUG if options.verbose else logging.WARNING,
        json_format=options.json_logs,
    )
    client_id = str(uuid.uuid4())
    bind_client_context(client_id)

    init_options: dict[str, Any] = options.settings.to_options()
    if options.verbose:
        init_options["log"] = _echo_log_line

    async def main() -> T:
        async with CodicentClient() as client:
            await client.init(**init_options)
            return await action(client)

    try:
        return asyncio.run(main())
    except ClientError as e:
        logger.error("cli_command_failed", client_id=client_id, **e.to_dict())
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


def _format_message(message: Message) -> str:
    created = message.created_at.strftime("%Y-%m-%d %H:%M") if message.created_at else "-"
    return f"{created}  {message.id}  {message.content}"


@click.group()
@click.version_option(version="0.1.0")
@click.option("--token", default=None, help="API token (default: $CODICENT_TOKEN).")
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(ctx: click.Context, token: str | None, json_logs: bool, verbose: bool) -> None:
    """Codicent messaging client CLI."""
    settings = get_settings()
    if token:
        settings = settings.model_copy(update={"token": token})
    ctx.obj = CliOptions(settings=settings, json_logs=json_logs, verbose=verbose)


@cli.command()
@click.argument("message")
@click.option("--parent-id", default=None, help="ID of the message to reply to.")
@click.option("--type", "message_type", default=None, help="Message type (default: info).")
@click.pass_obj
def post(
    options: CliOptions, message: str, parent_id: str | None, message_type: str | None
) -> None:
    """Post MESSAGE and print the new message ID."""

    async def action(client: CodicentClient) -> str:
        return await client.post_message(
            message, parent_id=parent_id, message_type=message_type
        )

    click.echo(_run_with_client(options, action))


@cli.command()
@click.option("--start", type=int, default=0, help="Offset of the first message.")
@click.option("--length", type=int, default=10, help="Number of messages (default: 10).")
@click.option("--search", default="", help="Search text.")
@click.option("--skip-content", is_flag=True, help="Do not fetch message content.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def messages(  # noqa: PLR0913
    options: CliOptions,
    start: int,
    length: int,
    search: str,
    skip_content: bool,
    json_output: bool,
) -> None:
    """List recent messages."""

    async def action(client: CodicentClient) -> list[Message]:
        return await client.get_messages(
            start=start, length=length, search=search, skip_content=skip_content
        )

    result = _run_with_client(options, action)
    if json_output:
        payload = [m.model_dump(mode="json", by_alias=True) for m in result]
        click.echo(json.dumps(payload, indent=2))
        return
    for message in result:
        click.echo(_format_message(message))


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--filename", default=None, help="Stored file name (default: PATH's name).")
@click.pass_obj
def upload(options: CliOptions, path: Path, filename: str | None) -> None:
    """Upload the file at PATH and print its ID."""
    data = path.read_bytes()

    async def action(client: CodicentClient) -> str:
        return await client.upload(data, filename or path.name)

    click.echo(_run_with_client(options, action))


@cli.command()
@click.option(
    "--count",
    type=int,
    default=0,
    help="Stop after this many messages (default: run until interrupted).",
)
@click.pass_obj
def listen(options: CliOptions, count: int) -> None:
    """Print messages pushed over the real-time connection."""

    async def action(client: CodicentClient) -> int:
        received = 0
        async for event in client.messages.stream():
            click.echo(json.dumps(event, default=str))
            received += 1
            if count and received >= count:
                break
        return received

    try:
        _run_with_client(options, action)
    except KeyboardInterrupt:
        click.echo("Stopped.", err=True)


def main() -> None:
    """Entry point for the ``codicent`` script."""
    cli()


if __name__ == "__main__":
    main()
