"""kbsync command line: maintenance operations against the message store."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from typing import Any

import click

from kbsync.config import Settings, load_settings
from kbsync.core.context import Context
from kbsync.errors import RevertFailed
from kbsync.keyboards import InlineKeyboard
from kbsync.models import Bot
from kbsync.store.keyboards import KeyboardStore
from kbsync.store.messages import MessageStore
from kbsync.transports.telegram import TelegramTransport
from kbsync.utils.logging import get_logger, setup_logging

log = get_logger(__name__)


class App:
    """Opens the stores and the transport for one CLI invocation."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        db_path = settings.get_db_path()
        self.store = MessageStore(db_path)
        self.keyboards = KeyboardStore(db_path)
        self.transport = TelegramTransport(settings.telegram)

    async def start(self) -> None:
        await self.store.start()
        await self.keyboards.start()

    async def stop(self) -> None:
        await self.transport.close()
        await self.keyboards.stop()
        await self.store.stop()

    def context(self) -> Context:
        return Context(
            service_name=self.settings.service_name,
            bot=Bot(id=self.settings.telegram.get_bot_id()),
            store=self.store,
            keyboards=self.keyboards,
            transport=self.transport,
            config=self.settings.sync,
        )


def _message_to_json(message: Any) -> str:
    def default(value: Any) -> Any:
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    return json.dumps(dataclasses.asdict(message), default=default, indent=2, ensure_ascii=False)


async def _edit_event(
    settings: Settings,
    bot_id: int,
    event_id: str,
    text: str,
    keyboard: InlineKeyboard | None,
    from_state: str | None,
) -> None:
    app = App(settings)
    await app.start()
    try:
        ctx = app.context()
        if keyboard is None:
            await ctx.edit_messages_text_with_event_id(bot_id, event_id, text)
        else:
            await ctx.edit_messages_with_event_id(bot_id, event_id, from_state, text, keyboard)
    finally:
        await app.stop()


async def _show_message(settings: Settings, message_id: int) -> str | None:
    app = App(settings)
    await app.start()
    try:
        message = await app.store.get(message_id)
    finally:
        await app.stop()
    return _message_to_json(message) if message is not None else None


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Inspect and edit interactive messages recorded by the bot."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    ctx.obj = settings


@cli.command("edit-event")
@click.option("--bot-id", type=int, default=None, help="Bot id (defaults to the token's bot)")
@click.option("--event-id", required=True, help="Correlation id the messages were sent with")
@click.option("--text", required=True, help="New message text")
@click.option("--keyboard", "keyboard_json", default=None, help="Inline keyboard as JSON")
@click.option("--from-state", default=None, help="Only edit messages whose keyboard is in this state")
@click.pass_obj
def edit_event(
    settings: Settings,
    bot_id: int | None,
    event_id: str,
    text: str,
    keyboard_json: str | None,
    from_state: str | None,
) -> None:
    """Edit the latest messages sent for EVENT_ID in every chat."""
    keyboard = None
    if keyboard_json:
        try:
            keyboard = InlineKeyboard.from_dict(json.loads(keyboard_json))
        except (ValueError, AttributeError) as exc:
            raise click.BadParameter(f"invalid keyboard JSON: {exc}", param_hint="--keyboard")
    resolved_bot = bot_id if bot_id is not None else settings.telegram.get_bot_id()
    if not resolved_bot:
        raise click.UsageError("--bot-id is required when no telegram token is configured")
    try:
        asyncio.run(_edit_event(settings, resolved_bot, event_id, text, keyboard, from_state))
    except RevertFailed as exc:
        raise click.ClickException(str(exc)) from exc
    log.info("edit_event_done", bot_id=resolved_bot, event_id=event_id)


@cli.command("show-message")
@click.argument("message_id", type=int)
@click.pass_obj
def show_message(settings: Settings, message_id: int) -> None:
    """Print a stored message as JSON."""
    output = asyncio.run(_show_message(settings, message_id))
    if output is None:
        click.echo(f"message {message_id} not found", err=True)
        sys.exit(1)
    click.echo(output)


if __name__ == "__main__":
    cli()
