"""Callback payloads for inline-keyboard role choices.

Each button carries ``"<action> <role name>"``. The action tells the
router which handler should run once the user taps the button; the role
name is the literal catalog key, so role names may not contain spaces.

Decoding never raises: stale or foreign payloads decode to ``None`` and
the router drops them.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

# Telegram rejects callback_data longer than this many bytes
MAX_PAYLOAD_BYTES = 64

SEPARATOR = " "


class CallbackAction(str, enum.Enum):
    DELETE_ROLE = "delete_role"
    SWITCH_ROLE = "switch_role"


@dataclass(frozen=True)
class CallbackData:
    """A decoded selection: which action to run and for which role."""
    action: CallbackAction
    role_name: str


# Longest role name (in UTF-8 bytes) that still fits every action's payload
MAX_ROLE_NAME_BYTES = MAX_PAYLOAD_BYTES - len(SEPARATOR) - max(len(a.value) for a in CallbackAction)


def encode(action: CallbackAction, role_name: str) -> str:
    """Build the payload for one choice button.

    Raises:
        ValueError: if the role name is empty, contains whitespace, or the
            payload would not fit in a callback button.
    """
    if not role_name or any(ch.isspace() for ch in role_name):
        raise ValueError(f"Role name {role_name!r} cannot be encoded (empty or contains whitespace)")
    payload = f"{action.value}{SEPARATOR}{role_name}"
    if len(payload.encode("utf-8")) > MAX_PAYLOAD_BYTES:
        raise ValueError(f"Callback payload for role {role_name!r} exceeds {MAX_PAYLOAD_BYTES} bytes")
    return payload


def decode(payload: object) -> CallbackData | None:
    """Parse a payload produced by ``encode``; ``None`` if unrecognized."""
    if not isinstance(payload, str):
        return None
    tag, sep, role_name = payload.partition(SEPARATOR)
    if not sep or not role_name:
        return None
    try:
        action = CallbackAction(tag)
    except ValueError:
        return None
    return CallbackData(action=action, role_name=role_name)
