"""Role-creation dialogue: a small per-chat state machine.

    Idle --/new_role--> AwaitingRoleName --text--> AwaitingRoleSystemText --text--> Idle

``advance`` is pure: it returns the next state, the prompt to send and,
on the final step, the role that should be created. The router performs
the side effects (catalog write, role switch).
"""
from __future__ import annotations

from dataclasses import dataclass

from chatrelay.roles import RoleNameError, validate_role_name

ASK_NAME = "Send me the name of the new role (one word, no spaces)."
ASK_NAME_AGAIN = "I need a text message with the role name."
ASK_SYSTEM_TEXT = "Now send the system prompt for role '{name}'."
ASK_SYSTEM_TEXT_AGAIN = "I need a text message with the system prompt for role '{name}'."


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class AwaitingRoleName:
    pass


@dataclass(frozen=True)
class AwaitingRoleSystemText:
    role_name: str


DialogueState = Idle | AwaitingRoleName | AwaitingRoleSystemText


@dataclass(frozen=True)
class Transition:
    """Outcome of feeding one message to the dialogue."""
    state: DialogueState
    prompt: str | None = None
    # (name, persona_text) once both answers are in
    created: tuple[str, str] | None = None


def start() -> Transition:
    """Begin role creation from any state."""
    return Transition(AwaitingRoleName(), ASK_NAME)


def advance(state: DialogueState, text: str | None) -> Transition:
    """Feed one inbound message to the dialogue.

    Empty or missing text keeps the current state and re-asks. An invalid
    role name keeps ``AwaitingRoleName`` and explains what is wrong.
    """
    text = (text or "").strip()

    match state:
        case Idle():
            return Transition(state)
        case AwaitingRoleName():
            if not text:
                return Transition(state, ASK_NAME_AGAIN)
            try:
                name = validate_role_name(text)
            except RoleNameError as e:
                return Transition(state, f"{e} {ASK_NAME}")
            return Transition(AwaitingRoleSystemText(name), ASK_SYSTEM_TEXT.format(name=name))
        case AwaitingRoleSystemText(role_name=name):
            if not text:
                return Transition(state, ASK_SYSTEM_TEXT_AGAIN.format(name=name))
            return Transition(Idle(), created=(name, text))
