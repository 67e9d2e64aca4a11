"""Tests for chatrelay.formatting."""
from __future__ import annotations

import pytest

from chatrelay.formatting import escape_markdown_v2, split_message, unescape_markdown_v2


class TestEscape:

    @pytest.mark.parametrize("raw, escaped", [
        ("Hello world", "Hello world"),
        ("1 + 1 = 2.", r"1 \+ 1 \= 2\."),
        ("[link](url)", r"\[link\]\(url\)"),
        ("a-b|c{d}!#~>", r"a\-b\|c\{d\}\!\#\~\>"),
        ("*bold* _it_ `code`", "*bold* _it_ `code`"),
        ("", ""),
    ])
    def test_escape(self, raw, escaped):
        assert escape_markdown_v2(raw) == escaped

    def test_unescape_reverses_escape(self):
        raw = "Use f(x) = x + 1! See [docs] #1 {ok} a|b ~c > d."
        assert unescape_markdown_v2(escape_markdown_v2(raw)) == raw


class TestSplitMessage:

    def test_short_text_is_one_chunk(self):
        assert split_message("hello", 10) == ["hello"]

    def test_prefers_newlines(self):
        assert split_message("aaaa\nbbbb\ncccc", 10) == ["aaaa\nbbbb", "cccc"]

    def test_hard_split_without_newlines(self):
        assert split_message("x" * 25, 10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_never_ends_chunk_on_escape(self):
        text = "abcdefgh\\.more text"
        chunks = split_message(text, 9)
        assert all(not c.endswith("\\") for c in chunks)
        assert "".join(chunks) == text
