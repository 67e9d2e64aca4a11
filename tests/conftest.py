"""Shared fakes for router/session tests."""
from __future__ import annotations

import asyncio
from typing import Callable, Sequence

import pytest

from chatrelay.completion import CompletionError
from chatrelay.roles import RoleCatalog
from chatrelay.router import Router
from chatrelay.session import Message
from chatrelay.storage import InMemoryRoleStore, RoleStoreError
from chatrelay.transport import Choice, FormatHint

DEFAULT_PROMPT = "You are a helpful assistant."


class FakeTransport:
    """Records everything the router sends."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str, FormatHint]] = []
        self.choice_lists: list[tuple[int, str, list[Choice]]] = []
        self.edits: list[tuple[int, int, str]] = []
        self.typing: list[int] = []

    async def send_text(self, chat_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN) -> None:
        self.sent.append((chat_id, text, format_hint))

    async def send_typing_indicator(self, chat_id: int) -> None:
        self.typing.append(chat_id)

    async def send_choice_list(self, chat_id: int, prompt: str, choices: Sequence[Choice]) -> None:
        self.choice_lists.append((chat_id, prompt, list(choices)))

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        self.edits.append((chat_id, message_id, text))

    @property
    def texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]


class FakeCompletion:
    """Completion client that answers via a callable and records requests."""

    def __init__(self, reply: Callable[[list[Message]], str] | None = None, delay: float = 0) -> None:
        self.reply = reply or (lambda messages: f"echo: {messages[-1].content}")
        self.delay = delay
        self.requests: list[list[Message]] = []
        self.fail = False

    async def complete(self, messages: Sequence[Message]) -> str:
        self.requests.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise CompletionError("upstream unavailable", category="timeout")
        return self.reply(list(messages))


class FailingRoleStore(InMemoryRoleStore):
    """Role store whose writes fail once ``broken`` is set."""

    def __init__(self, roles: dict[str, str] | None = None) -> None:
        super().__init__(roles)
        self.broken = False

    async def save(self, roles: dict[str, str]) -> None:
        if self.broken:
            raise RoleStoreError("disk full")
        await super().save(roles)


def make_router(
    roles: dict[str, str] | None = None,
    *,
    store: InMemoryRoleStore | None = None,
    completion: FakeCompletion | None = None,
) -> tuple[Router, FakeTransport, FakeCompletion, RoleCatalog]:
    store = store if store is not None else InMemoryRoleStore(roles)
    catalog = RoleCatalog(store, roles)
    transport = FakeTransport()
    completion = completion or FakeCompletion()
    router = Router(transport, completion, catalog, default_system_prompt=DEFAULT_PROMPT, typing_interval=0.01)
    return router, transport, completion, catalog


@pytest.fixture
def roles() -> dict[str, str]:
    return {
        "Assistant": "You are my personal assistant.",
        "Tutor": "You are a patient math tutor.",
        "Coder": "You are a senior Python developer.",
    }
