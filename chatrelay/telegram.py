"""Telegram bot transport — python-telegram-bot adapter for the router."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Sequence

from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters

from chatrelay.commands import DESCRIPTIONS, split_command
from chatrelay.formatting import split_message, unescape_markdown_v2
from chatrelay.transport import CallbackSelection, Choice, CommandEvent, Event, FormatHint, TextMessage

logger = logging.getLogger(__name__)

# Inline keyboard buttons per row
_BUTTONS_PER_ROW = 2


def _parse_mode(format_hint: FormatHint) -> str | None:
    return ParseMode.MARKDOWN_V2 if format_hint is FormatHint.MARKDOWN_V2 else None


def _plain(text: str, format_hint: FormatHint) -> str:
    return unescape_markdown_v2(text) if format_hint is FormatHint.MARKDOWN_V2 else text


def choice_keyboard(choices: Sequence[Choice]) -> InlineKeyboardMarkup:
    """Lay choices out as an inline keyboard, two buttons per row."""
    buttons = [InlineKeyboardButton(c.label, callback_data=c.payload) for c in choices]
    rows = [buttons[i:i + _BUTTONS_PER_ROW] for i in range(0, len(buttons), _BUTTONS_PER_ROW)]
    return InlineKeyboardMarkup(rows)


class TelegramTransport:
    """Telegram long-polling bot that feeds every update to one event handler.

    Args:
        token: Bot token.
        is_allowed: Predicate on the sender's user ID; others are refused.
    """

    def __init__(
        self,
        token: str,
        is_allowed: Callable[[int | None], bool] | None = None,
    ) -> None:
        self.token = token
        self.is_allowed = is_allowed or (lambda _user_id: True)
        self.on_event: Callable[[Event], Awaitable[None]] | None = None
        self._app: Application | None = None

    def attach(self, on_event: Callable[[Event], Awaitable[None]]) -> None:
        """Register the coroutine that processes inbound events (the router)."""
        self.on_event = on_event

    @property
    def bot(self):
        if self._app is None:
            raise RuntimeError("Telegram transport is not started")
        return self._app.bot

    # --- Outbound (Transport protocol) ---

    async def send_text(self, chat_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN) -> None:
        for chunk in split_message(text):
            try:
                await self.bot.send_message(chat_id=chat_id, text=chunk, parse_mode=_parse_mode(format_hint))
            except BadRequest:
                if format_hint is FormatHint.PLAIN:
                    raise
                # Model output can still break MarkdownV2 entity parsing
                logger.debug("MarkdownV2 send failed, falling back to plain text")
                await self.bot.send_message(chat_id=chat_id, text=_plain(chunk, format_hint))

    async def send_typing_indicator(self, chat_id: int) -> None:
        await self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    async def send_choice_list(self, chat_id: int, prompt: str, choices: Sequence[Choice]) -> None:
        await self.bot.send_message(chat_id=chat_id, text=prompt, reply_markup=choice_keyboard(choices))

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        try:
            await self.bot.edit_message_text(
                text=text, chat_id=chat_id, message_id=message_id, parse_mode=_parse_mode(format_hint),
            )
        except BadRequest:
            if format_hint is FormatHint.PLAIN:
                raise
            logger.debug("MarkdownV2 edit failed, falling back to plain text")
            await self.bot.edit_message_text(
                text=_plain(text, format_hint), chat_id=chat_id, message_id=message_id,
            )

    # --- Inbound ---

    async def _dispatch(self, update: Update, event: Event) -> None:
        if self.on_event is None:
            logger.warning("No event handler attached, dropping update %s", update.update_id)
            return
        try:
            await self.on_event(event)
        except Exception:
            logger.exception("Error handling Telegram update %s", update.update_id)
            try:
                await self.bot.send_message(chat_id=event.chat_id, text="Something went wrong. Check the logs.")
            except Exception:
                logger.debug("Could not report the error to chat %s", event.chat_id, exc_info=True)

    async def _refuse(self, update: Update) -> bool:
        """Reply 'Not authorized' and return True if the sender is not allowed."""
        user = update.effective_user
        if self.is_allowed(user.id if user else None):
            return False
        logger.info("Refused update from user %s", user.id if user else "unknown")
        if update.callback_query:
            await update.callback_query.answer("Not authorized.")
        elif update.effective_message:
            await update.effective_message.reply_text("Not authorized.")
        return True

    async def _handle_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if not message or not message.text or await self._refuse(update):
            return
        name, raw_args = split_command(message.text)
        logger.info("Telegram command from chat %s: /%s", message.chat_id, name)
        await self._dispatch(update, CommandEvent(message.chat_id, name, raw_args))

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if not message or await self._refuse(update):
            return
        # Non-text messages (stickers, photos) arrive as empty text
        text = message.text or ""
        logger.info("Telegram message from chat %s: %s", message.chat_id, text[:100])
        await self._dispatch(update, TextMessage(message.chat_id, text))

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if not query or await self._refuse(update):
            return
        message = query.message
        if message is not None:
            # Hand the selection over before the first network await, or a
            # later message from the same chat can take the session lock first
            await self._dispatch(update, CallbackSelection(message.chat.id, message.message_id, query.data or ""))
        await query.answer()

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start polling (non-blocking)."""
        # Updates run as independent tasks; the router serializes per chat
        self._app = Application.builder().token(self.token).concurrent_updates(True).build()
        self._app.add_handler(
            MessageHandler(filters.UpdateType.MESSAGE & filters.COMMAND, self._handle_command)
        )
        self._app.add_handler(
            MessageHandler(filters.UpdateType.MESSAGE & ~filters.COMMAND, self._handle_message)
        )
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))

        await self._app.initialize()
        await self._app.bot.set_my_commands(
            [BotCommand(name, description[:256]) for name, description in DESCRIPTIONS.items()]
        )
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)
        logger.info("Telegram bot started")

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        if self._app:
            try:
                await self._app.updater.stop()
            except Exception:
                logger.debug("Telegram updater stop error (ignored)", exc_info=True)
            try:
                await self._app.stop()
            except Exception:
                logger.debug("Telegram app stop error (ignored)", exc_info=True)
            try:
                await self._app.shutdown()
            except Exception:
                logger.debug("Telegram app shutdown error (ignored)", exc_info=True)
            self._app = None
            logger.info("Telegram bot stopped")
