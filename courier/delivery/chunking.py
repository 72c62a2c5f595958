"""Fit text into a channel's maximum message size."""

from __future__ import annotations

import re

CHAT_MAX_MESSAGE_LENGTH = 4096
FEED_MAX_POST_LENGTH = 280
# Posts are written against a shorter target; the prompt asks for it, the code enforces 280.
FEED_AUTHORING_TARGET = 270

ELLIPSIS = "..."

_WHITESPACE_RE = re.compile(r"\s")


def _fit_lines(lines: list[str], max_len: int) -> list[str]:
    """Hard-split any line longer than ``max_len``."""
    fitted: list[str] = []
    for line in lines:
        if len(line) <= max_len:
            fitted.append(line)
            continue
        fitted.extend(line[i:i + max_len] for i in range(0, len(line), max_len))
    return fitted


def chunk(text: str, max_len: int = CHAT_MAX_MESSAGE_LENGTH) -> list[str]:
    """Split ``text`` into newline-joined chunks of at most ``max_len`` characters.

    Lines are accumulated greedily; a line that does not fit starts the next chunk.
    Joining the result with newlines gives back ``text`` with a newline inserted
    wherever an overlong line had to be cut. Empty trailing segments are dropped.
    """
    if max_len < 1:
        raise ValueError("max_len must be positive")
    if not text:
        return []

    chunks: list[str] = []
    current: str | None = None
    for line in _fit_lines(text.split("\n"), max_len):
        if current is not None and len(current) + len(line) + 1 <= max_len:
            current = f"{current}\n{line}"
            continue
        if current is not None:
            chunks.append(current)
        current = line
    if current is not None:
        chunks.append(current)
    while chunks and not chunks[-1]:
        chunks.pop()
    return chunks


def truncate(text: str, max_len: int = FEED_MAX_POST_LENGTH) -> str:
    """Shorten ``text`` to ``max_len``, preferring a sentence end, then a word break."""
    if len(text) <= max_len:
        return text
    if max_len <= len(ELLIPSIS):
        return text[:max_len]

    period = text.rfind(".", 0, max_len)
    if period != -1:
        sentence = text[: period + 1].strip()
        if sentence:
            return sentence

    # The ellipsis must still fit, so the break has to leave room for it.
    window = text[: max_len - len(ELLIPSIS) + 1]
    breaks = [m.start() for m in _WHITESPACE_RE.finditer(window)]
    if breaks:
        head = text[: breaks[-1]].strip()
        if head:
            return head + ELLIPSIS

    return text[: max_len - len(ELLIPSIS)].strip() + ELLIPSIS
