"""Local console transport — talk to the router without Telegram.

Lines starting with ``/`` are commands, ``#N`` picks choice N from the
most recent choice list, anything else is a chat message.
"""
from __future__ import annotations

import logging
from typing import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from chatrelay.commands import DESCRIPTIONS, split_command
from chatrelay.formatting import unescape_markdown_v2
from chatrelay.transport import CallbackSelection, Choice, CommandEvent, Event, FormatHint, TextMessage

logger = logging.getLogger(__name__)

CONSOLE_CHAT_ID = 0

console = Console()


class ConsoleTransport:
    """Transport that prints to the terminal with rich."""

    def __init__(self, out: Console | None = None) -> None:
        self.out = out or console
        self._next_message_id = 1
        # message id -> choices shown in that message
        self._choice_lists: dict[int, list[Choice]] = {}
        self._last_choice_list: int | None = None

    def _new_message_id(self) -> int:
        message_id = self._next_message_id
        self._next_message_id += 1
        return message_id

    async def send_text(self, chat_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN) -> None:
        self._new_message_id()
        if format_hint is FormatHint.MARKDOWN_V2:
            self.out.print(Panel(Markdown(unescape_markdown_v2(text)), border_style="cyan"))
        else:
            self.out.print(f"  {text}", markup=False, highlight=False)

    async def send_typing_indicator(self, chat_id: int) -> None:
        self.out.print("  [dim]typing…[/dim]")

    async def send_choice_list(self, chat_id: int, prompt: str, choices: Sequence[Choice]) -> None:
        message_id = self._new_message_id()
        self._choice_lists[message_id] = list(choices)
        self._last_choice_list = message_id
        self.out.print(f"  {prompt}", markup=False, highlight=False)
        for i, choice in enumerate(choices, 1):
            self.out.print(f"    [bold]#{i}[/bold] {escape(choice.label)}")

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        # The keyboard is consumed once a choice has been made
        self._choice_lists.pop(message_id, None)
        if self._last_choice_list == message_id:
            self._last_choice_list = None
        await self.send_text(chat_id, text, format_hint)

    def parse_line(self, line: str) -> Event | None:
        """Turn one input line into an inbound event, or None to ignore it."""
        line = line.strip()
        if not line:
            return None
        if line.startswith("/"):
            name, raw_args = split_command(line)
            return CommandEvent(CONSOLE_CHAT_ID, name, raw_args)
        if line.startswith("#") and line[1:].isdigit() and self._last_choice_list is not None:
            choices = self._choice_lists.get(self._last_choice_list, [])
            index = int(line[1:]) - 1
            if 0 <= index < len(choices):
                return CallbackSelection(CONSOLE_CHAT_ID, self._last_choice_list, choices[index].payload)
            self.out.print(f"  [red]No choice {line}[/red]")
            return None
        return TextMessage(CONSOLE_CHAT_ID, line)


async def run_console(router, transport: ConsoleTransport) -> None:
    """Read lines until EOF or ``exit`` and feed them to the router."""
    session: PromptSession = PromptSession(
        history=InMemoryHistory(),
        completer=WordCompleter([f"/{name}" for name in DESCRIPTIONS], sentence=True),
    )
    transport.out.print("[bold]chatrelay console[/bold] [dim]- /help for commands, exit to quit[/dim]")

    while True:
        try:
            line = await session.prompt_async("> ")
        except (EOFError, KeyboardInterrupt):
            break
        if line.strip().lower() in ("exit", "quit"):
            break

        event = transport.parse_line(line)
        if event is None:
            continue
        try:
            await router.handle(event)
        except Exception:
            logger.exception("Error handling console input")
            transport.out.print("  [bold red]✗ Something went wrong. Check the logs.[/bold red]")
