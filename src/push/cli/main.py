"""push CLI -- send, receive and browse Pushover notifications.

Thin wrapper around :class:`push.service.PushService` using click.  Each
command runs its coroutine with ``asyncio.run``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

import click

from push.client.api import PushoverClient
from push.client.auth import DEFAULT_DEVICE_NAME, authenticate
from push.config import Config, config_path, database_path
from push.dates import parse_datetime
from push.errors import PushError
from push.service import DEFAULT_CHECK_LIMIT, PushService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error(msg: str) -> NoReturn:
    """Print an error message to stderr and exit 1."""
    click.echo(msg, err=True)
    raise SystemExit(1)


def _warn(msg: str) -> None:
    click.echo(f"warning: {msg}", err=True)


def _setup_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("PUSH_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _paths(ctx: click.Context) -> tuple[Path, Path]:
    return config_path(ctx.obj.get("config")), database_path(ctx.obj.get("data"))


def _load_config(ctx: click.Context) -> tuple[Config, Path]:
    cfg_path, _ = _paths(ctx)
    try:
        return Config.load(cfg_path), cfg_path
    except ValueError as exc:
        _error(f"Error: {exc}")


def _service(ctx: click.Context) -> PushService:
    cfg, cfg_path = _load_config(ctx)
    _, db_path = _paths(ctx)
    return PushService(cfg, db_path, config_path=cfg_path)


def _run(coro: Any) -> Any:
    """Run *coro*, turning push errors into a clean exit 1."""
    try:
        return asyncio.run(coro)
    except PushError as exc:
        _error(f"Error: {exc}")


class DateParam(click.ParamType):
    """Free-form date; naive values are local time."""

    name = "date"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> datetime:
        if isinstance(value, datetime):
            return value
        try:
            return parse_datetime(str(value))
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


DATE = DateParam()


def _record_json(record: Any) -> dict[str, Any]:
    return json.loads(record.model_dump_json())


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="push-sync")
@click.option("--config", "config_file", default=None, help="Config file (default ~/.config/push/config.toml).")
@click.option("--data", "data_dir", default=None, help="Data directory (default ~/.local/share/push).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_file: str | None, data_dir: str | None, verbose: bool) -> None:
    """push -- bridge the Pushover API with a CLI and an MCP server."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_file
    ctx.obj["data"] = data_dir
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# push login / logout
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--device-name", default=DEFAULT_DEVICE_NAME, show_default=True, help="Device name to register.")
@click.pass_context
def login(ctx: click.Context, device_name: str) -> None:
    """Authenticate with Pushover and store device credentials."""
    cfg, cfg_path = _load_config(ctx)
    cfg = cfg.clone()

    app_token = click.prompt("Pushover app token", default=cfg.app_token or None)
    user_key = click.prompt("Pushover user key", default=cfg.user_key or None)
    email = click.prompt("Email")
    password = click.prompt("Password", hide_input=True)

    cfg.app_token = app_token
    cfg.user_key = user_key

    async def _login():
        async with PushoverClient(cfg.credentials()) as client:
            return await authenticate(
                client,
                email,
                password,
                device_name=device_name,
                code_provider=lambda: click.prompt("2FA code"),
            )

    device = _run(_login())
    cfg.device_id = device.device_id
    cfg.device_secret = device.device_secret
    if not cfg.default_device and device_name:
        cfg.default_device = device_name

    try:
        cfg.save(cfg_path)
    except OSError as exc:
        _error(f"Error: saving config: {exc}")
    click.echo(f"Logged in. Device {cfg.device_id!r} registered.")


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Remove stored device credentials."""
    cfg, cfg_path = _load_config(ctx)
    if not cfg.device_id and not cfg.device_secret:
        click.echo("No device credentials were stored.")
        return
    cfg.clear_device()
    try:
        cfg.save(cfg_path)
    except OSError as exc:
        _error(f"Error: saving config: {exc}")
    click.echo("Device credentials removed.")


# ---------------------------------------------------------------------------
# push send
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--title", "-t", default="", help="Notification title.")
@click.option("--priority", "-p", type=int, default=None, help="Priority (-2 to 2).")
@click.option("--url", "-u", default="", help="Supplementary URL.")
@click.option("--url-title", default="", help="Supplementary URL title.")
@click.option("--sound", "-s", default="", help="Notification sound.")
@click.option("--device", "-d", default="", help="Target device name.")
@click.pass_context
def send(
    ctx: click.Context,
    message: tuple[str, ...],
    title: str,
    priority: int | None,
    url: str,
    url_title: str,
    sound: str,
    device: str,
) -> None:
    """Send a Pushover notification."""
    service = _service(ctx)

    async def _send():
        async with service:
            return await service.send_notification(
                " ".join(message),
                title=title,
                device=device,
                priority=priority,
                url=url,
                url_title=url_title,
                sound=sound,
            )

    outcome = _run(_send())
    if outcome.warning:
        _warn(outcome.warning)
    click.echo(f"Notification sent. Request ID: {outcome.request_id}")
    if outcome.receipt:
        click.echo(f"Receipt: {outcome.receipt}")


# ---------------------------------------------------------------------------
# push messages
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--limit", "-n", default=DEFAULT_CHECK_LIMIT, show_default=True, help="Maximum messages to show.")
@click.pass_context
def messages(ctx: click.Context, limit: int) -> None:
    """Fetch unread messages, store them, and mark them read on Pushover."""
    service = _service(ctx)

    async def _check():
        async with service:
            return await service.check_messages(limit=limit)

    result = _run(_check())
    if result.warning:
        _warn(result.warning)
    if result.ack_warning:
        _warn(result.ack_warning)

    if not result.messages:
        click.echo("No new messages.")
        return

    for msg in result.messages:
        click.echo(f"[{msg.id}] {msg.message}")
        if msg.title:
            click.echo(f"  Title: {msg.title}")
        if msg.app:
            click.echo(f"  App: {msg.app}")
        if msg.url:
            click.echo(f"  URL: {msg.url}")
        if msg.priority:
            click.echo(f"  Priority: {msg.priority}")


@cli.command("mark-read")
@click.argument("message_id", type=int)
@click.pass_context
def mark_read(ctx: click.Context, message_id: int) -> None:
    """Acknowledge messages on Pushover up to and including MESSAGE_ID."""
    service = _service(ctx)

    async def _mark():
        async with service:
            return await service.mark_read(message_id)

    acked = _run(_mark())
    click.echo(f"Acknowledged messages up to {acked}.")


# ---------------------------------------------------------------------------
# push history / sent
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Limit number of rows.")
@click.option("--since", type=DATE, default=None, help="Only messages received at or after this date, e.g. '2024-05-01' or 'May 1 14:00'.")
@click.option("--search", default="", help="Search text in message and title.")
@click.option("--json", "as_json", is_flag=True, help="Output JSON.")
@click.pass_context
def history(
    ctx: click.Context,
    limit: int,
    since: datetime | None,
    search: str,
    as_json: bool,
) -> None:
    """Show persisted message history."""
    service = _service(ctx)

    async def _history():
        async with service:
            return await service.list_history(
                limit=limit, since=since, search=search
            )

    records = _run(_history())
    if as_json:
        click.echo(json.dumps([_record_json(r) for r in records], indent=2))
        return
    if not records:
        click.echo("No history found.")
        return
    for rec in records:
        click.echo(f"{rec.received_at.isoformat()}Z [{rec.pushover_id}] {rec.message}")
        if rec.title:
            click.echo(f"  Title: {rec.title}")
        if rec.url:
            click.echo(f"  URL: {rec.url}")
        if rec.priority:
            click.echo(f"  Priority: {rec.priority}")
        if rec.app:
            click.echo(f"  App: {rec.app}")


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Limit number of rows.")
@click.option("--since", type=DATE, default=None, help="Sent at or after this date.")
@click.option("--until", type=DATE, default=None, help="Sent at or before this date.")
@click.option("--json", "as_json", is_flag=True, help="Output JSON.")
@click.pass_context
def sent(
    ctx: click.Context,
    limit: int,
    since: datetime | None,
    until: datetime | None,
    as_json: bool,
) -> None:
    """Show notifications sent from this machine."""
    service = _service(ctx)

    async def _sent():
        async with service:
            return await service.list_sent(
                limit=limit, since=since, until=until
            )

    records = _run(_sent())
    if as_json:
        click.echo(json.dumps([_record_json(r) for r in records], indent=2))
        return
    if not records:
        click.echo("No sent notifications found.")
        return
    for rec in records:
        target = f" -> {rec.device}" if rec.device else ""
        click.echo(f"{rec.sent_at.isoformat()}Z{target} {rec.message}")
        if rec.title:
            click.echo(f"  Title: {rec.title}")
        if rec.request_id:
            click.echo(f"  Request: {rec.request_id}")


# ---------------------------------------------------------------------------
# push config
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect the stored configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the config with secrets masked."""
    cfg, cfg_path = _load_config(ctx)

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." if len(value) > 8 else "***"

    click.echo(f"Config file:      {cfg_path}")
    click.echo(f"App token:        {mask(cfg.app_token)}")
    click.echo(f"User key:         {mask(cfg.user_key)}")
    click.echo(f"Device ID:        {cfg.device_id or '(not set)'}")
    click.echo(f"Device secret:    {mask(cfg.device_secret)}")
    click.echo(f"Default device:   {cfg.default_device or '(not set)'}")
    click.echo(f"Default priority: {cfg.default_priority}")


# ---------------------------------------------------------------------------
# push mcp
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    from push.mcp.server import create_server

    service = _service(ctx)
    create_server(service).run(transport="stdio")


if __name__ == "__main__":
    cli()
