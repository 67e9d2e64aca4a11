"""Command router: classifies inbound events and drives session state.

Every event for a chat is handled while holding that chat's session lock,
so replies and history updates for one chat happen in arrival order.
Lock order is always session -> role catalog.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from chatrelay import callback, dialogue, prompts
from chatrelay.callback import CallbackAction
from chatrelay.commands import (
    DESCRIPTIONS,
    Cancel,
    CheckGrammar,
    Clear,
    Command,
    CommandParseError,
    DeleteRole,
    Help,
    ListRoles,
    Naming,
    NewRole,
    SwitchRole,
    Test,
    Translate,
    Unknown,
    normalize_name,
    parse_command,
)
from chatrelay.completion import CompletionClient, CompletionError
from chatrelay.dialogue import Idle
from chatrelay.formatting import FORMAT_SAMPLE, escape_markdown_v2
from chatrelay.roles import RoleCatalog, RoleNameError
from chatrelay.session import Message, Session, SessionRegistry
from chatrelay.storage import RoleStoreError
from chatrelay.transport import (
    CallbackSelection,
    Choice,
    CommandEvent,
    Event,
    FormatHint,
    TextMessage,
    Transport,
)

logger = logging.getLogger(__name__)

CLEARED = "Conversation history cleared, new session started."
NO_ROLES = "No roles defined yet. Create one with /new_role."


class Router:
    """Routes commands, free text and keyboard selections for all chats.

    Args:
        transport: Where replies go.
        completion: Chat-completion client.
        catalog: Process-wide role catalog.
        default_system_prompt: Persona for new chats while the catalog is empty.
        sessions: Optional registry (tests inject their own).
        typing_interval: Seconds between typing indicators during a completion.
    """

    def __init__(
        self,
        transport: Transport,
        completion: CompletionClient,
        catalog: RoleCatalog,
        *,
        default_system_prompt: str,
        sessions: SessionRegistry | None = None,
        typing_interval: float = 4.0,
    ) -> None:
        self.transport = transport
        self.completion = completion
        self.catalog = catalog
        self.default_system_prompt = default_system_prompt
        self.sessions = sessions or SessionRegistry(self._seed_session)
        self.typing_interval = typing_interval

    async def _seed_session(self) -> tuple[str | None, str]:
        role = await self.catalog.default()
        if role is None:
            return None, self.default_system_prompt
        return role.name, role.persona_text

    # --- Entry point ---

    async def handle(self, event: Event) -> None:
        """Process one inbound event to completion."""
        session = await self.sessions.get(event.chat_id)
        async with session.lock:
            match event:
                case CommandEvent():
                    await self._on_command(session, event)
                case CallbackSelection():
                    await self._on_callback(session, event)
                case TextMessage():
                    await self._on_text(session, event.text)

    async def _on_command(self, session: Session, event: CommandEvent) -> None:
        # Mid-dialogue, commands are answers to the dialogue unless it's /cancel
        if not isinstance(session.dialogue, Idle) and normalize_name(event.name) != "cancel":
            raw = f"/{event.name.lstrip('/')} {event.raw_args}".strip()
            await self._on_dialogue_input(session, raw)
            return

        try:
            command = parse_command(event.name, event.raw_args)
        except CommandParseError as e:
            await self._reply(session, str(e))
            return
        logger.info("Chat %s: %s", session.chat_id, type(command).__name__)
        await self.dispatch(session, command)

    async def dispatch(self, session: Session, command: Command) -> None:
        """Run a parsed command. Caller holds ``session.lock``."""
        match command:
            case Help():
                await self._reply(session, _help_text())
            case Test():
                await self.transport.send_text(session.chat_id, FORMAT_SAMPLE, FormatHint.MARKDOWN_V2)
            case Clear():
                session.clear_to_system()
                await self._reply(session, CLEARED)
            case ListRoles():
                await self._reply(session, await self._list_roles(session))
            case Cancel():
                if isinstance(session.dialogue, Idle):
                    await self._reply(session, "Nothing to cancel.")
                else:
                    session.dialogue = Idle()
                    await self._reply(session, "Role creation cancelled.")
            case NewRole(name=None):
                step = dialogue.start()
                session.dialogue = step.state
                await self._reply(session, step.prompt)
            case NewRole(name=name, persona_text=persona):
                await self._create_role(session, name, persona)
            case DeleteRole(name=None):
                await self._send_role_choices(session, CallbackAction.DELETE_ROLE, "Choose a role to delete:")
            case DeleteRole(name=name):
                await self._reply(session, await self._delete_role(name))
            case SwitchRole(name=None):
                await self._send_role_choices(session, CallbackAction.SWITCH_ROLE, "Choose a role to switch to:")
            case SwitchRole(name=name):
                await self._reply(session, await self._switch_role(session, name))
            case Translate(lang=lang, text=text):
                await self._one_shot(session, prompts.translate(lang, text))
            case Naming(scene=scene):
                await self._one_shot(session, prompts.naming(scene))
            case CheckGrammar(lang=lang, text=text):
                await self._one_shot(session, prompts.check_grammar(lang, text))
            case Unknown(name=name):
                await self._reply(session, f"Unknown command /{name}. See /help.")

    async def _on_callback(self, session: Session, event: CallbackSelection) -> None:
        data = callback.decode(event.payload)
        if data is None:
            logger.debug("Ignoring unrecognized callback payload %r", event.payload)
            return

        match data.action:
            case CallbackAction.DELETE_ROLE:
                text = await self._delete_role(data.role_name)
            case CallbackAction.SWITCH_ROLE:
                text = await self._switch_role(session, data.role_name)
            case _:
                return
        await self.transport.edit_text(session.chat_id, event.message_id, text)

    async def _on_text(self, session: Session, text: str) -> None:
        if not isinstance(session.dialogue, Idle):
            await self._on_dialogue_input(session, text)
            return
        if not text.strip():
            return

        logger.info("Chat %s: message (%d chars)", session.chat_id, len(text))
        session.append_user(text)
        try:
            async with self._typing(session.chat_id):
                answer = await self.completion.complete(session.snapshot())
        except CompletionError as e:
            # The user turn stays; no assistant turn and no reply
            logger.warning("Chat %s: completion failed: %s", session.chat_id, e)
            return

        session.append_assistant(answer)
        await self.transport.send_text(session.chat_id, escape_markdown_v2(answer), FormatHint.MARKDOWN_V2)

    async def _on_dialogue_input(self, session: Session, text: str | None) -> None:
        step = dialogue.advance(session.dialogue, text)
        session.dialogue = step.state
        if step.created is not None:
            await self._create_role(session, *step.created)
        elif step.prompt:
            await self._reply(session, step.prompt)

    # --- Role operations ---

    async def _list_roles(self, session: Session) -> str:
        roles = await self.catalog.roles()
        if not roles:
            return NO_ROLES
        lines = ["Roles:"]
        names = set()
        for role in roles:
            names.add(role.name)
            if role.name == session.active_role:
                lines.append(f"▶ {role.name} (active)")
            else:
                lines.append(f"• {role.name}")
        if session.active_role and session.active_role not in names:
            lines.append(
                f"\nActive role '{session.active_role}' was deleted; "
                "its persona stays in use until you switch roles."
            )
        return "\n".join(lines)

    async def _create_role(self, session: Session, name: str, persona_text: str) -> None:
        try:
            role = await self.catalog.put(name, persona_text)
        except RoleNameError as e:
            await self._reply(session, str(e))
            return
        except RoleStoreError as e:
            await self._reply(session, f"Failed to save roles, role '{name}' was not created: {e}")
            return
        session.set_active_role(role.name, role.persona_text)
        await self._reply(session, f"Role '{role.name}' created and activated.")

    async def _delete_role(self, name: str) -> str:
        try:
            removed = await self.catalog.remove(name)
        except RoleStoreError as e:
            return f"Failed to save roles, role '{name}' was not deleted: {e}"
        if removed is None:
            return f"Role '{name}' not found."
        return f"Role '{name}' deleted."

    async def _switch_role(self, session: Session, name: str) -> str:
        role = await self.catalog.get(name)
        if role is None:
            return f"Role '{name}' not found."
        if role.name == session.active_role:
            return f"Already using role '{name}'."
        session.set_active_role(role.name, role.persona_text)
        logger.info("Chat %s: switched to role '%s'", session.chat_id, role.name)
        return f"Switched to role '{name}'. {CLEARED}"

    async def _send_role_choices(self, session: Session, action: CallbackAction, prompt: str) -> None:
        choices = []
        for role in await self.catalog.roles():
            try:
                choices.append(Choice(role.name, callback.encode(action, role.name)))
            except ValueError:
                logger.warning("Role '%s' cannot be offered as a button, skipping", role.name)
        if not choices:
            await self._reply(session, NO_ROLES)
            return
        await self.transport.send_choice_list(session.chat_id, prompt, choices)

    # --- Helpers ---

    async def _one_shot(self, session: Session, messages: Sequence[Message]) -> None:
        """Send a standalone request; the chat history is not involved."""
        try:
            async with self._typing(session.chat_id):
                answer = await self.completion.complete(messages)
        except CompletionError as e:
            logger.warning("Chat %s: completion failed: %s", session.chat_id, e)
            return
        await self.transport.send_text(session.chat_id, escape_markdown_v2(answer), FormatHint.MARKDOWN_V2)

    async def _reply(self, session: Session, text: str | None) -> None:
        if text:
            await self.transport.send_text(session.chat_id, text, FormatHint.PLAIN)

    @asynccontextmanager
    async def _typing(self, chat_id: int) -> AsyncIterator[None]:
        """Keep the typing indicator alive until the block exits."""
        stop = asyncio.Event()

        async def _keep_typing() -> None:
            while not stop.is_set():
                try:
                    await self.transport.send_typing_indicator(chat_id)
                except Exception:
                    logger.debug("Typing indicator failed for chat %s", chat_id, exc_info=True)
                    return
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.typing_interval)
                except asyncio.TimeoutError:
                    pass

        task = asyncio.create_task(_keep_typing())
        try:
            yield
        finally:
            stop.set()
            await task


def _help_text() -> str:
    lines = ["These commands are supported:"]
    lines.extend(f"/{name} - {description}" for name, description in DESCRIPTIONS.items())
    lines.append("\nAnything else you send is answered in the current conversation.")
    return "\n".join(lines)
