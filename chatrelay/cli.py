"""CLI entry point — Click group for the bot, the local console and role listing."""
from __future__ import annotations

import asyncio
import logging

import click
from rich import box
from rich.console import Console
from rich.table import Table

from chatrelay.config import ConfigError, RelaySettings
from chatrelay.storage import RoleStoreError, YamlRoleStore

logger = logging.getLogger(__name__)


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(name)s: %(message)s",
    )
    # Polling logs every getUpdates request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if not debug:
        logging.getLogger("telegram").setLevel(logging.WARNING)


def _load_settings(*, require_telegram: bool = False) -> RelaySettings:
    try:
        settings = RelaySettings.from_env()
        settings.validate(require_telegram=require_telegram)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    return settings


async def _build_router(settings: RelaySettings, transport, store):
    """Wire model, completion client, role catalog and router together."""
    from chatrelay.completion import LangChainCompletionClient
    from chatrelay.models import make_model
    from chatrelay.roles import RoleCatalog
    from chatrelay.router import Router

    model = make_model(settings.model, provider=settings.provider, credentials=settings.credentials)
    completion = LangChainCompletionClient(
        model,
        timeout=settings.completion_timeout,
        max_retries=settings.completion_max_retries,
    )
    try:
        catalog = await RoleCatalog.load(store)
    except RoleStoreError as e:
        raise click.ClickException(str(e)) from e
    logger.info("Loaded %d role(s)", len(await catalog.roles()))
    return Router(transport, completion, catalog, default_system_prompt=settings.default_system_prompt)


@click.group()
def main() -> None:
    """chatrelay — Telegram relay bot with role personas."""


@main.command()
@click.option("--debug", is_flag=True, help="Debug logging")
def run(debug: bool) -> None:
    """Start the Telegram bot (long polling)."""
    _setup_logging(debug)
    settings = _load_settings(require_telegram=True)
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        pass


async def _run_bot(settings: RelaySettings) -> None:
    from chatrelay.telegram import TelegramTransport

    transport = TelegramTransport(settings.telegram_token, is_allowed=settings.is_allowed)
    router = await _build_router(settings, transport, YamlRoleStore(settings.roles_path))
    transport.attach(router.handle)

    await transport.start()
    try:
        await asyncio.Event().wait()
    finally:
        await transport.stop()


@main.command()
@click.option("--debug", is_flag=True, help="Debug logging")
@click.option("--no-persist", is_flag=True, help="Keep roles in memory only")
def chat(debug: bool, no_persist: bool) -> None:
    """Chat with the relay in the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    settings = _load_settings()
    asyncio.run(_run_console(settings, no_persist))


async def _run_console(settings: RelaySettings, no_persist: bool) -> None:
    from chatrelay.console import ConsoleTransport, run_console
    from chatrelay.storage import InMemoryRoleStore

    transport = ConsoleTransport()
    store = InMemoryRoleStore() if no_persist else YamlRoleStore(settings.roles_path)
    router = await _build_router(settings, transport, store)
    await run_console(router, transport)


@main.command()
def roles() -> None:
    """Show the saved roles."""
    settings = _load_settings()
    store = YamlRoleStore(settings.roles_path)
    try:
        catalog = asyncio.run(store.load())
    except RoleStoreError as e:
        raise click.ClickException(str(e)) from e

    console = Console()
    if not catalog:
        console.print(f"  [dim]No roles in {settings.roles_path}[/dim]")
        return

    table = Table(box=box.SIMPLE, title=str(settings.roles_path), title_style="dim")
    table.add_column("Role", style="bold cyan")
    table.add_column("System prompt")
    for i, (name, text) in enumerate(catalog.items()):
        table.add_row(f"{name} (default)" if i == 0 else name, text)
    console.print(table)
