"""Configuration: loads .env, resolves workspace, bot and model settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _default_workspace() -> Path:
    """Return the default workspace root.

    ``CHATRELAY_HOME`` overrides; otherwise the user's home directory
    (state lives at ``~/.chatrelay``).
    """
    env = os.getenv("CHATRELAY_HOME")
    if env:
        return Path(env).expanduser().resolve()
    return Path.home()


def _find_workspace() -> Path:
    """Walk up from cwd to find a directory containing .chatrelay/ or .env."""
    p = Path.cwd()
    while p != p.parent:
        if (p / ".chatrelay").is_dir() or (p / ".env").is_file():
            return p
        p = p.parent
    return _default_workspace()


WORKSPACE = _find_workspace()
RELAY_DIR = WORKSPACE / ".chatrelay"

# .chatrelay/.env wins over the workspace .env; load_dotenv never overrides
# variables that are already set.
load_dotenv(RELAY_DIR / ".env")
load_dotenv(WORKSPACE / ".env")

# --- Telegram ---
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
# Comma-separated Telegram user IDs; empty means anyone may talk to the bot
TELEGRAM_ALLOWED_USERS = os.getenv("TELEGRAM_ALLOWED_USERS", "")

# --- Provider override (optional) ---
# Auto-detected from model name if not set. Values: openai, azure, anthropic, local
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "")
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gpt-4o-mini")

# --- OpenAI ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_API_BASE = os.getenv("OPENAI_API_BASE", "")

# --- Azure OpenAI ---
AZURE_OPENAI_API_KEY = os.getenv("AZURE_OPENAI_API_KEY", "")
AZURE_OPENAI_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT", "")
AZURE_OPENAI_API_VERSION = os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")

# --- Anthropic ---
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# --- Roles ---
ROLES_PATH = Path(os.getenv("ROLES_PATH", "") or RELAY_DIR / "roles.yaml")
DEFAULT_SYSTEM_PROMPT = os.getenv(
    "DEFAULT_SYSTEM_PROMPT",
    "You are my personal assistant. Most of questions I asked are related to "
    "programming. Your reply to me can be in Markdown format.",
)

# --- Completion ---
# Seconds allowed for a single completion attempt
COMPLETION_TIMEOUT = float(os.getenv("COMPLETION_TIMEOUT", "120"))
# Extra attempts for transient failures (timeouts, rate limits, 5xx)
COMPLETION_MAX_RETRIES = int(os.getenv("COMPLETION_MAX_RETRIES", "2"))


class ConfigError(ValueError):
    """Raised when RelaySettings validation fails."""


def _parse_user_ids(spec: str) -> frozenset[int]:
    ids: set[int] = set()
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            raise ConfigError(f"TELEGRAM_ALLOWED_USERS: '{part}' is not a numeric user ID") from None
    return frozenset(ids)


@dataclass
class RelaySettings:
    """Runtime settings. Built from the environment by ``from_env()``.

    Tests and embedders construct this directly; nothing here reads
    the environment on its own.
    """

    telegram_token: str = ""
    allowed_users: frozenset[int] = field(default_factory=frozenset)

    provider: str = ""
    model: str = "gpt-4o-mini"
    credentials: dict[str, str] = field(default_factory=dict)

    roles_path: Path = field(default_factory=lambda: RELAY_DIR / "roles.yaml")
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    completion_timeout: float = 120.0
    completion_max_retries: int = 2

    @classmethod
    def from_env(cls) -> RelaySettings:
        credentials = {
            "openai_api_key": OPENAI_API_KEY,
            "openai_api_base": OPENAI_API_BASE,
            "azure_api_key": AZURE_OPENAI_API_KEY,
            "azure_endpoint": AZURE_OPENAI_ENDPOINT,
            "azure_api_version": AZURE_OPENAI_API_VERSION,
            "anthropic_api_key": ANTHROPIC_API_KEY,
        }
        return cls(
            telegram_token=TELEGRAM_BOT_TOKEN,
            allowed_users=_parse_user_ids(TELEGRAM_ALLOWED_USERS),
            provider=LLM_PROVIDER,
            model=DEFAULT_MODEL,
            credentials={k: v for k, v in credentials.items() if v},
            roles_path=ROLES_PATH,
            default_system_prompt=DEFAULT_SYSTEM_PROMPT,
            completion_timeout=COMPLETION_TIMEOUT,
            completion_max_retries=COMPLETION_MAX_RETRIES,
        )

    def validate(self, *, require_telegram: bool = False) -> None:
        """Validate settings. Raises ConfigError listing every problem."""
        errors: list[str] = []

        if require_telegram and not self.telegram_token:
            errors.append("TELEGRAM_BOT_TOKEN is required to run the bot")
        if not self.model:
            errors.append("DEFAULT_MODEL is required")
        if not self.default_system_prompt.strip():
            errors.append("DEFAULT_SYSTEM_PROMPT must not be empty")
        if self.completion_timeout <= 0:
            errors.append(f"COMPLETION_TIMEOUT must be positive, got {self.completion_timeout}")
        if self.completion_max_retries < 0:
            errors.append(
                f"COMPLETION_MAX_RETRIES must be >= 0, got {self.completion_max_retries}"
            )

        if errors:
            raise ConfigError("; ".join(errors))

    def is_allowed(self, user_id: int | None) -> bool:
        """Check if a Telegram user may use the bot."""
        if not self.allowed_users:
            return True
        return user_id is not None and user_id in self.allowed_users
