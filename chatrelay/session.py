"""Per-chat session state: conversation history, active role, dialogue.

History invariant: element 0 is always the SYSTEM message of the active
persona. Callers hold ``Session.lock`` across any read-modify-write that
also waits on a completion so two messages from one chat cannot interleave.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from chatrelay.dialogue import DialogueState, Idle

logger = logging.getLogger(__name__)


class MessageRole(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(MessageRole.ASSISTANT, content)


class Session:
    """State for one chat."""

    def __init__(self, chat_id: int, system_text: str, active_role: str | None = None) -> None:
        self.chat_id = chat_id
        self.history: list[Message] = [Message.system(system_text)]
        self.active_role = active_role
        self.dialogue: DialogueState = Idle()
        self.lock = asyncio.Lock()

    def append_user(self, text: str) -> None:
        self.history.append(Message.user(text))

    def append_assistant(self, text: str) -> None:
        self.history.append(Message.assistant(text))

    def clear_to_system(self) -> None:
        """Drop everything after the system message."""
        del self.history[1:]

    def set_active_role(self, name: str, persona_text: str) -> None:
        """Start a fresh history driven by *persona_text*."""
        self.clear_to_system()
        self.history[0] = Message.system(persona_text)
        self.active_role = name

    def snapshot(self) -> list[Message]:
        """Copy of the history, safe to hand to the completion client."""
        return list(self.history)


# Returns (active role name or None, system text) for a brand-new session
SeedFn = Callable[[], Awaitable[tuple[str | None, str]]]


class SessionRegistry:
    """Sessions keyed by chat ID, created lazily on first contact."""

    def __init__(self, seed: SeedFn) -> None:
        self._seed = seed
        self._sessions: dict[int, Session] = {}
        self._lock = asyncio.Lock()

    async def get(self, chat_id: int) -> Session:
        async with self._lock:
            session = self._sessions.get(chat_id)
            if session is None:
                role_name, system_text = await self._seed()
                session = Session(chat_id, system_text, active_role=role_name)
                self._sessions[chat_id] = session
                logger.info("New session for chat %s (role: %s)", chat_id, role_name or "default")
            return session

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
