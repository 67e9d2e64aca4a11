"""chatrelay — Telegram relay bot with per-chat context and role personas."""
from __future__ import annotations

__version__ = "0.1.0"
