"""Slash commands: a closed set of command types plus their argument parsers.

``parse_command`` turns a command name and its raw argument string into
one of the dataclasses below; the router dispatches on the type.
"""
from __future__ import annotations

from dataclasses import dataclass

from chatrelay.roles import RoleNameError, validate_role_name

TRANSLATE_DEFAULT_LANG = "English"
GRAMMAR_DEFAULT_LANG = "Chinese"
LANG_FLAG = "l"


class CommandParseError(ValueError):
    """Raised when command arguments are malformed. The message is a usage hint."""


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Test:
    pass


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class ListRoles:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class NewRole:
    """``name``/``persona_text`` are None when the interactive flow should start."""
    name: str | None = None
    persona_text: str | None = None


@dataclass(frozen=True)
class DeleteRole:
    name: str | None = None


@dataclass(frozen=True)
class SwitchRole:
    name: str | None = None


@dataclass(frozen=True)
class Translate:
    lang: str
    text: str


@dataclass(frozen=True)
class Naming:
    scene: str


@dataclass(frozen=True)
class CheckGrammar:
    lang: str
    text: str


@dataclass(frozen=True)
class Unknown:
    name: str


Command = (
    Help | Test | Clear | ListRoles | Cancel | NewRole | DeleteRole | SwitchRole
    | Translate | Naming | CheckGrammar | Unknown
)


# name -> description, in the order shown by /help and the Telegram menu
DESCRIPTIONS: dict[str, str] = {
    "help": "show this help",
    "test": "send a formatting sample",
    "clear": "clear conversation history and start a new session",
    "list_roles": "list all roles",
    "new_role": "create a role: /new_role or /new_role name:persona",
    "delete_role": "delete a role: /delete_role [name]",
    "switch_role": "switch to another role: /switch_role [name]",
    "translate": "translate text: /translate [-l<language>] text",
    "naming": "suggest a variable name: /naming scene",
    "check_grammar": "check grammar: /check_grammar [-l<language>] text",
    "cancel": "cancel role creation",
}

_ALIASES = {
    "start": "help",
    "listroles": "list_roles",
    "newrole": "new_role",
    "deleterole": "delete_role",
    "switchrole": "switch_role",
    "checkgrammar": "check_grammar",
    "name_a_variable": "naming",
}


def normalize_name(name: str) -> str:
    """Lowercase, strip a leading slash and ``@botname``, accept hyphens."""
    name = name.strip().lstrip("/").split("@", 1)[0].lower().replace("-", "_")
    return _ALIASES.get(name, name)


def split_command(text: str) -> tuple[str, str]:
    """Split ``/name@bot args`` into ``("name@bot", "args")``."""
    parts = text.split(None, 1)
    if not parts:
        return "", ""
    return parts[0].lstrip("/"), (parts[1] if len(parts) > 1 else "")


def split_options_and_body(user_input: str, default: str, option_flag: str) -> tuple[str, str]:
    """Split ``"-<flag><value> body"`` into ``(value, body)``.

    Only the first space separates the option token from the body. With a
    single token, or no ``-<flag>`` prefix, the default value is used and
    the whole input is the body. ``-<flag>`` with nothing after it also
    falls back to the default.

    >>> split_options_and_body("-len hello world", "Chinese", "l")
    ('en', 'hello world')
    >>> split_options_and_body("-l", "Chinese", "l")
    ('Chinese', '-l')
    """
    parts = user_input.split(" ", 1)
    if len(parts) == 1:
        return default, parts[0]

    first, body = parts
    prefix = f"-{option_flag}"
    if first.startswith(prefix):
        value = first[len(prefix):]
        return (value or default), body

    return default, user_input


def parse_role_definition(raw: str) -> tuple[str, str]:
    """Parse inline ``name:persona`` into a validated ``(name, persona)``."""
    parts = raw.split(":", 1)
    if len(parts) != 2 or not parts[1].strip():
        raise CommandParseError("Usage: /new_role name:persona (for example /new_role Tutor:You are a patient math tutor.)")
    try:
        name = validate_role_name(parts[0])
    except RoleNameError as e:
        raise CommandParseError(f"{e} Usage: /new_role name:persona") from e
    return name, parts[1].strip()


def _require(text: str, usage: str) -> str:
    if not text.strip():
        raise CommandParseError(f"Usage: {usage}")
    return text


def parse_command(name: str, raw_args: str = "") -> Command:
    """Build a command from its name and raw argument text.

    Raises:
        CommandParseError: arguments are missing or malformed.
    """
    args = (raw_args or "").strip()

    match normalize_name(name):
        case "help":
            return Help()
        case "test":
            return Test()
        case "clear":
            return Clear()
        case "list_roles":
            return ListRoles()
        case "cancel":
            return Cancel()
        case "new_role":
            if not args:
                return NewRole()
            role_name, persona = parse_role_definition(args)
            return NewRole(role_name, persona)
        case "delete_role":
            return DeleteRole(args or None)
        case "switch_role":
            return SwitchRole(args or None)
        case "translate":
            lang, text = split_options_and_body(
                _require(args, "/translate [-l<language>] text"), TRANSLATE_DEFAULT_LANG, LANG_FLAG,
            )
            return Translate(lang, _require(text, "/translate [-l<language>] text"))
        case "naming":
            return Naming(_require(args, "/naming scene"))
        case "check_grammar":
            lang, text = split_options_and_body(
                _require(args, "/check_grammar [-l<language>] text"), GRAMMAR_DEFAULT_LANG, LANG_FLAG,
            )
            return CheckGrammar(lang, _require(text, "/check_grammar [-l<language>] text"))
        case other:
            return Unknown(other)
