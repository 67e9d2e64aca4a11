"""Tests for chatrelay.telegram: keyboard layout, sends, update dispatch.

The bot is replaced by a recorder; no network access happens here.
"""
from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from telegram.constants import ParseMode
from telegram.error import BadRequest

from chatrelay.roles import RoleCatalog
from chatrelay.router import Router
from chatrelay.session import Message
from chatrelay.storage import InMemoryRoleStore
from chatrelay.telegram import TelegramTransport, choice_keyboard
from chatrelay.transport import CallbackSelection, Choice, CommandEvent, FormatHint, TextMessage
from tests.conftest import FakeCompletion


class FakeBot:

    def __init__(self, reject_markdown: bool = False):
        self.reject_markdown = reject_markdown
        self.messages: list[dict] = []
        self.edits: list[dict] = []

    async def send_message(self, **kwargs):
        if self.reject_markdown and kwargs.get("parse_mode"):
            raise BadRequest("Can't parse entities")
        self.messages.append(kwargs)

    async def edit_message_text(self, **kwargs):
        if self.reject_markdown and kwargs.get("parse_mode"):
            raise BadRequest("Can't parse entities")
        self.edits.append(kwargs)

    async def send_chat_action(self, **kwargs):
        pass


def make_transport(bot: FakeBot, **kwargs) -> TelegramTransport:
    transport = TelegramTransport("123:abc", **kwargs)
    transport._app = SimpleNamespace(bot=bot)
    return transport


def make_update(*, text=None, user_id=1, callback_data=None, answer_delay=0.0):
    replies: list[str] = []

    async def reply_text(body):
        replies.append(body)

    async def answer(body=None):
        if answer_delay:
            await asyncio.sleep(answer_delay)
        replies.append(body)

    message = SimpleNamespace(text=text, chat_id=42, message_id=9, chat=SimpleNamespace(id=42), reply_text=reply_text)
    query = None
    if callback_data is not None:
        query = SimpleNamespace(data=callback_data, message=message, answer=answer)
    update = SimpleNamespace(
        update_id=1,
        effective_user=SimpleNamespace(id=user_id),
        effective_message=message,
        callback_query=query,
    )
    return update, replies


class TestChoiceKeyboard:

    def test_two_buttons_per_row(self):
        choices = [Choice(n, f"switch_role {n}") for n in ("A", "B", "C")]
        rows = choice_keyboard(choices).inline_keyboard
        assert [[b.text for b in row] for row in rows] == [["A", "B"], ["C"]]
        assert rows[1][0].callback_data == "switch_role C"


class TestSend:

    def test_markdown_send(self):
        bot = FakeBot()
        asyncio.run(make_transport(bot).send_text(42, r"hi\!", FormatHint.MARKDOWN_V2))
        assert bot.messages == [{"chat_id": 42, "text": r"hi\!", "parse_mode": ParseMode.MARKDOWN_V2}]

    def test_markdown_falls_back_to_plain(self):
        bot = FakeBot(reject_markdown=True)
        asyncio.run(make_transport(bot).send_text(42, r"1 \+ 1", FormatHint.MARKDOWN_V2))
        assert bot.messages == [{"chat_id": 42, "text": "1 + 1"}]

    def test_long_text_is_split(self):
        bot = FakeBot()
        asyncio.run(make_transport(bot).send_text(42, "x" * 5000))
        assert [len(m["text"]) for m in bot.messages] == [4096, 904]

    def test_edit_falls_back_to_plain(self):
        bot = FakeBot(reject_markdown=True)
        asyncio.run(make_transport(bot).edit_text(42, 9, r"done\.", FormatHint.MARKDOWN_V2))
        assert bot.edits == [{"text": "done.", "chat_id": 42, "message_id": 9}]

    def test_not_started(self):
        with pytest.raises(RuntimeError, match="not started"):
            asyncio.run(TelegramTransport("t").send_typing_indicator(1))


class TestInbound:

    def _attach(self, transport: TelegramTransport) -> list:
        events: list = []

        async def on_event(event):
            events.append(event)

        transport.attach(on_event)
        return events

    def test_command(self):
        transport = make_transport(FakeBot())
        events = self._attach(transport)
        update, _ = make_update(text="/switch_role@relay_bot Tutor")
        asyncio.run(transport._handle_command(update, None))
        assert events == [CommandEvent(42, "switch_role@relay_bot", "Tutor")]

    def test_text(self):
        transport = make_transport(FakeBot())
        events = self._attach(transport)
        update, _ = make_update(text="hello")
        asyncio.run(transport._handle_message(update, None))
        assert events == [TextMessage(42, "hello")]

    def test_non_text_message_is_empty_text(self):
        transport = make_transport(FakeBot())
        events = self._attach(transport)
        update, _ = make_update(text=None)
        asyncio.run(transport._handle_message(update, None))
        assert events == [TextMessage(42, "")]

    def test_callback(self):
        transport = make_transport(FakeBot())
        events = self._attach(transport)
        update, replies = make_update(callback_data="delete_role Tutor")
        asyncio.run(transport._handle_callback(update, None))
        assert events == [CallbackSelection(42, 9, "delete_role Tutor")]
        assert replies == [None]

    def test_disallowed_user_is_refused(self):
        transport = make_transport(FakeBot(), is_allowed=lambda user_id: user_id == 7)
        events = self._attach(transport)
        update, replies = make_update(text="hello", user_id=8)
        asyncio.run(transport._handle_message(update, None))
        assert events == []
        assert replies == ["Not authorized."]

    def test_handler_error_is_reported(self):
        bot = FakeBot()
        transport = make_transport(bot)

        async def on_event(event):
            raise RuntimeError("boom")

        transport.attach(on_event)
        update, _ = make_update(text="hello")
        asyncio.run(transport._handle_message(update, None))
        assert bot.messages == [{"chat_id": 42, "text": "Something went wrong. Check the logs."}]


class TestArrivalOrder:
    """A keyboard selection followed by a message must be applied in that order."""

    def test_selection_reaches_router_before_query_is_answered(self):
        roles = {"Assistant": "A persona.", "Tutor": "T persona."}
        bot = FakeBot()
        transport = make_transport(bot)
        catalog = RoleCatalog(InMemoryRoleStore(roles), roles)
        router = Router(transport, FakeCompletion(), catalog, default_system_prompt="fallback", typing_interval=0.01)
        transport.attach(router.handle)

        selection, replies = make_update(callback_data="switch_role Tutor", answer_delay=0.01)
        message, _ = make_update(text="hello")

        async def scenario():
            first = asyncio.create_task(transport._handle_callback(selection, None))
            second = asyncio.create_task(transport._handle_message(message, None))
            await asyncio.gather(first, second)
            return await router.sessions.get(42)

        session = asyncio.run(scenario())
        assert session.history == [
            Message.system("T persona."),
            Message.user("hello"),
            Message.assistant("echo: hello"),
        ]
        assert bot.edits[0]["text"].startswith("Switched to role 'Tutor'.")
        assert replies == [None]
