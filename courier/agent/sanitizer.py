"""Cleanup and validation of generated replies."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from courier.config import DEFAULT_DENYLIST

_EMOJI_RE = re.compile("[\U0001F300-\U0001F9FF]")
_HASHTAG_RE = re.compile(r"#\w+")
_FILLER_RE = re.compile(r"oh,?\s*darling\s*", re.IGNORECASE)
_FILLER_WORD = "darling"
_PUNCT_RUN_RE = re.compile(r"[!?.]+([!?.])")

PLACEHOLDERS = {"...", "…"}


def _strip_repeated_filler(text: str) -> str:
    if text.lower().count(_FILLER_WORD) <= 1:
        return text
    seen = False

    def keep_first(match: re.Match) -> str:
        nonlocal seen
        if seen:
            return ""
        seen = True
        return match.group(0)

    return _FILLER_RE.sub(keep_first, text)


def sanitize(text: str) -> str:
    """Strip emoji, hashtags, repeated filler and punctuation runs.

    Steps run in a fixed order so the result is stable under a second pass.
    """
    text = _EMOJI_RE.sub("", text)
    text = _HASHTAG_RE.sub("", text)
    text = _strip_repeated_filler(text)
    text = _PUNCT_RUN_RE.sub(r"\1", text)
    return text.strip()


def is_placeholder(text: str) -> bool:
    stripped = text.strip()
    return not stripped or stripped in PLACEHOLDERS


def count_pattern_matches(text: str, patterns: Iterable[str] = DEFAULT_DENYLIST) -> int:
    return sum(1 for pattern in patterns if pattern and pattern in text)


def validate_response(
    text: str,
    recent_replies: Sequence[str],
    patterns: Iterable[str] = DEFAULT_DENYLIST,
    max_pattern_matches: int = 2,
    duplicate_window: int = 3,
) -> bool:
    """Reject empty text, a repeat of a recent agent reply, or template-heavy output."""
    if not text:
        return False
    window = list(recent_replies)[-duplicate_window:] if duplicate_window else []
    if text in window:
        return False
    return count_pattern_matches(text, patterns) <= max_pattern_matches
