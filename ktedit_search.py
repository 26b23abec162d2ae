"""Find/replace helpers and document statistics."""

from __future__ import annotations

import re

from ktedit_models import TextStats


def search_pattern(query: str, case_sensitive: bool = False, whole_word: bool = False) -> re.Pattern[str] | None:

    if not query:
        return None
    rx = re.escape(query)
    if whole_word:
        rx = rf"\b{rx}\b"
    return re.compile(rx, 0 if case_sensitive else re.IGNORECASE)


def find_next(text: str, pattern: re.Pattern[str] | None, start: int) -> tuple[int, int] | None:
    """Next match at or after `start`, wrapping to the top of the document."""

    if pattern is None:
        return None
    start = max(0, min(int(start), len(text)))
    m = pattern.search(text, start) or pattern.search(text)
    if m is None:
        return None
    return m.start(), m.end()


def replace_selection(
    text: str,
    sel_start: int,
    sel_end: int,
    pattern: re.Pattern[str] | None,
    replacement: str,
) -> tuple[str, int, int] | None:
    """Replace the selection if it is exactly one match; returns (text, sel_start, sel_end)."""

    if pattern is None:
        return None
    lo, hi = sorted((sel_start, sel_end))
    if lo == hi or lo < 0 or hi > len(text):
        return None
    if pattern.fullmatch(text, lo, hi) is None:
        return None
    new_text = text[:lo] + replacement + text[hi:]
    return new_text, lo, lo + len(replacement)


def replace_all(text: str, pattern: re.Pattern[str] | None, replacement: str) -> tuple[str, int]:

    if pattern is None:
        return text, 0
    # Literal replacement: backslashes in the user's text are not group references.
    return pattern.subn(lambda _m: replacement, text)


def text_stats(text: str) -> TextStats:

    lines = 0 if not text else text.count("\n") + 1
    return TextStats(chars=len(text), words=len(text.split()), lines=lines)
