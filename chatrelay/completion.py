"""Completion client — sends role-tagged messages to a LangChain chat model.

Transient failures (timeouts, rate limits, dropped connections) are
retried with exponential backoff. Anything that still fails surfaces as
CompletionError so callers can leave conversation state untouched.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from chatrelay.session import Message, MessageRole

logger = logging.getLogger(__name__)

# Backoff delays (seconds) between attempts, indexed by retry number
_BACKOFF_TIMEOUT = [3, 9, 27]
_BACKOFF_RATE_LIMIT = [5, 15, 45]


class CompletionError(RuntimeError):
    """Raised when the completion service fails or times out."""

    def __init__(self, message: str, *, category: str | None = None) -> None:
        super().__init__(message)
        self.category = category


@runtime_checkable
class CompletionClient(Protocol):
    """Anything that turns a message sequence into generated text."""

    async def complete(self, messages: Sequence[Message]) -> str:
        """Return the generated reply. Raises CompletionError on failure."""
        ...


def classify_error(error: BaseException) -> str | None:
    """Classify an error into a retry category.

    Returns:
        "timeout", "rate_limit", "connection_closed", or None (not retryable).
    """
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    msg = str(error).lower()
    if "read timeout" in msg or "connect timeout" in msg or "timed out" in msg:
        return "timeout"
    if "rate limit" in msg or "too many requests" in msg or "429" in msg:
        return "rate_limit"
    if "service unavailable" in msg or "503" in msg or "overloaded" in msg:
        return "timeout"
    if "connection was closed" in msg or "connection reset" in msg or "broken pipe" in msg:
        return "connection_closed"
    return None


def to_langchain(messages: Sequence[Message]) -> list[BaseMessage]:
    """Convert history messages to LangChain message objects."""
    converted: list[BaseMessage] = []
    for m in messages:
        if m.role is MessageRole.SYSTEM:
            converted.append(SystemMessage(content=m.content))
        elif m.role is MessageRole.USER:
            converted.append(HumanMessage(content=m.content))
        else:
            converted.append(AIMessage(content=m.content))
    return converted


def _content_text(content: str | list) -> str:
    """Flatten a model response's content into plain text."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainCompletionClient:
    """CompletionClient backed by any LangChain ``BaseChatModel``."""

    def __init__(
        self,
        model: BaseChatModel,
        *,
        timeout: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

    async def complete(self, messages: Sequence[Message]) -> str:
        payload = to_langchain(messages)
        attempt = 0
        while True:
            try:
                response = await asyncio.wait_for(self.model.ainvoke(payload), timeout=self.timeout)
            except Exception as e:
                category = classify_error(e)
                if category is None or attempt >= self.max_retries:
                    raise CompletionError(
                        f"Completion failed after {attempt + 1} attempt(s): {e or type(e).__name__}",
                        category=category,
                    ) from e
                delays = _BACKOFF_RATE_LIMIT if category == "rate_limit" else _BACKOFF_TIMEOUT
                delay = delays[min(attempt, len(delays) - 1)]
                logger.warning(
                    "Completion %s (attempt %d/%d), retrying in %ds",
                    category, attempt + 1, self.max_retries + 1, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            text = _content_text(response.content)
            if not text.strip():
                raise CompletionError("Completion returned an empty reply")
            return text
