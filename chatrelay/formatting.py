"""Text helpers for Telegram MarkdownV2 output."""
from __future__ import annotations

import re

# Characters MarkdownV2 reserves that model output uses as plain text.
# ``*``, ``_`` and backticks stay unescaped so bold/italic/code from the
# model still render.
_RESERVED = re.compile(r"([\[\]()~>#+\-=|{}.!])")

TELEGRAM_MAX_MESSAGE = 4096

FORMAT_SAMPLE = r"""*bold \*text*
_italic \*text_
__underline__
~strikethrough~
||spoiler||
*bold _italic bold ~italic bold strikethrough ||italic bold strikethrough spoiler||~ __underline italic bold___ bold*
[inline URL](http://www.example.com/)
[inline mention of a user](tg://user?id=123456789)
`inline fixed-width code`
```
pre-formatted fixed-width code block
```
```python
pre-formatted fixed-width code block written in the Python programming language
```"""


def escape_markdown_v2(text: str) -> str:
    """Backslash-escape MarkdownV2 reserved characters in data-derived text."""
    return _RESERVED.sub(r"\\\1", text)


def split_message(text: str, max_len: int = TELEGRAM_MAX_MESSAGE) -> list[str]:
    """Split text into Telegram-safe chunks, preferring newline boundaries."""
    if len(text) <= max_len:
        return [text]
    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        split_at = text.rfind("\n", 0, max_len)
        if split_at <= 0:
            split_at = max_len
        # Never leave a dangling escape backslash at the end of a chunk
        while split_at > 1 and text[split_at - 1] == "\\":
            split_at -= 1
        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")
    return chunks


def unescape_markdown_v2(text: str) -> str:
    """Undo ``escape_markdown_v2`` for plain-text fallbacks."""
    return re.sub(r"\\([\[\]()~>#+\-=|{}.!])", r"\1", text)
