"""One-shot prompts for the helper commands.

Each builder returns a two-message request (system instruction + user
payload) that is sent on its own, outside the chat's history.
"""
from __future__ import annotations

from chatrelay.session import Message

TRANSLATE_SYSTEM = "Translate the following text to {lang}. Reply with the translation only."
NAMING_SYSTEM = "Just give a variable name or method name based on the scene I ask you."
GRAMMAR_SYSTEM = (
    "You are a language teacher, diagnose grammar problems for me "
    "and explain them to me in {lang}."
)


def translate(lang: str, text: str) -> list[Message]:
    return [Message.system(TRANSLATE_SYSTEM.format(lang=lang)), Message.user(text)]


def naming(scene: str) -> list[Message]:
    return [Message.system(NAMING_SYSTEM), Message.user(f"The scene is: {scene}")]


def check_grammar(lang: str, text: str) -> list[Message]:
    return [Message.system(GRAMMAR_SYSTEM.format(lang=lang)), Message.user(f"My input is: {text}")]
