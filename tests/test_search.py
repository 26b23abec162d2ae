"""Tests for find/replace helpers and text statistics."""

from __future__ import annotations

from ktedit_search import find_next, replace_all, replace_selection, search_pattern, text_stats


def test_empty_query_has_no_pattern() -> None:
    assert search_pattern("") is None
    assert find_next("abc", None, 0) is None
    assert replace_all("abc", None, "x") == ("abc", 0)


def test_find_next_wraps() -> None:
    rx = search_pattern("ab")
    text = "ab cd ab"

    assert find_next(text, rx, 0) == (0, 2)
    assert find_next(text, rx, 2) == (6, 8)
    assert find_next(text, rx, 8) == (0, 2)
    assert find_next(text, search_pattern("zz"), 0) is None


def test_replace_selection_needs_exact_match() -> None:
    rx = search_pattern("foo")
    text = "foo bar foo"

    assert replace_selection(text, 0, 3, rx, "baz") == ("baz bar foo", 0, 3)
    assert replace_selection(text, 0, 2, rx, "baz") is None
    assert replace_selection(text, 4, 4, rx, "baz") is None
    assert replace_selection(text, 11, 8, rx, "quux") == ("foo bar quux", 8, 12)


def test_replace_all_is_literal() -> None:
    rx = search_pattern("x", case_sensitive=True)

    assert replace_all("x X x", rx, r"\1") == (r"\1 X \1", 2)


def test_replace_all_whole_word() -> None:
    rx = search_pattern("val", whole_word=True)

    assert replace_all("val value VAL", rx, "var") == ("var value var", 2)


def test_text_stats() -> None:
    assert text_stats("").label() == "Characters: 0    Words: 0    Lines: 0"

    s = text_stats("fun main()\n  println(1)\n")
    assert (s.chars, s.words, s.lines) == (24, 3, 3)
