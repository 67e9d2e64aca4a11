"""Transport boundary: inbound event types and the outbound interface.

The router only talks to a ``Transport``; the Telegram bot and the local
console both implement it.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable


class FormatHint(str, enum.Enum):
    PLAIN = "plain"
    MARKDOWN_V2 = "markdown_v2"


@dataclass(frozen=True)
class Choice:
    """One button of a choice list."""
    label: str
    payload: str


@dataclass(frozen=True)
class TextMessage:
    chat_id: int
    text: str


@dataclass(frozen=True)
class CommandEvent:
    chat_id: int
    name: str
    raw_args: str = ""


@dataclass(frozen=True)
class CallbackSelection:
    chat_id: int
    message_id: int
    payload: str


Event = TextMessage | CommandEvent | CallbackSelection


@runtime_checkable
class Transport(Protocol):
    async def send_text(self, chat_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN) -> None:
        ...

    async def send_typing_indicator(self, chat_id: int) -> None:
        ...

    async def send_choice_list(self, chat_id: int, prompt: str, choices: Sequence[Choice]) -> None:
        ...

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        ...
