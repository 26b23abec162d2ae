"""Tests for the built-in scanner and the rule-driven highlighter."""

from __future__ import annotations

import pytest

import ktedit_highlight
from ktedit_highlight import _rule_pass, rule_highlight, rule_passes, scan_highlight
from ktedit_models import Category, RuleSet, Span, StyledText
from ktedit_rules import KOTLIN_RULES

SAMPLES = [
    "",
    "x",
    "fun main() { val x = 1 // c\n }",
    'val s = "unterminated',
    "/* open comment\nfun x",
    'val e = "a\\"b" + 1.2.3',
    "//\n//\n",
    "\n\n\t  ",
    'println("héllo ✓") // ünïcode',
]


def _assert_partition(styled: StyledText) -> None:
    pos = 0
    for s in styled.base:
        assert s.start == pos
        assert s.end > s.start
        pos = s.end
    assert pos == len(styled.text)


def _text_of(styled: StyledText, cat: Category) -> list[str]:
    return [styled.text[s.start : s.end] for s in styled.base if s.category is cat]


@pytest.mark.parametrize("text", SAMPLES)
def test_scan_partitions_text(text: str) -> None:
    _assert_partition(scan_highlight(text))


@pytest.mark.parametrize("text", SAMPLES)
def test_scan_is_idempotent(text: str) -> None:
    assert scan_highlight(text, KOTLIN_RULES) == scan_highlight(text, KOTLIN_RULES)


@pytest.mark.parametrize("text", SAMPLES)
def test_rule_highlight_is_idempotent(text: str) -> None:
    assert rule_highlight(text, KOTLIN_RULES) == rule_highlight(text, KOTLIN_RULES)


def test_scan_classifies_kotlin_line() -> None:
    styled = scan_highlight("fun main() { val x = 1 // c\n }")

    assert _text_of(styled, Category.KEYWORD) == ["fun", "val"]
    assert _text_of(styled, Category.NUMBER) == ["1"]
    assert _text_of(styled, Category.COMMENT) == ["// c"]
    assert _text_of(styled, Category.TYPE) == []
    assert styled.base == (
        Span(0, 3, Category.KEYWORD),
        Span(3, 13, Category.PLAIN),
        Span(13, 16, Category.KEYWORD),
        Span(16, 21, Category.PLAIN),
        Span(21, 22, Category.NUMBER),
        Span(22, 23, Category.PLAIN),
        Span(23, 27, Category.COMMENT),
        Span(27, 30, Category.PLAIN),
    )


def test_unterminated_string_runs_to_end() -> None:
    text = 'val s = "never closed\nfun'
    styled = scan_highlight(text)

    last = styled.base[-1]
    assert last.category is Category.STRING
    assert text[last.start : last.end] == '"never closed\nfun'


def test_unterminated_block_comment_runs_to_end() -> None:
    text = "val a = 1 /* open\nfun x()"
    styled = scan_highlight(text)

    last = styled.base[-1]
    assert last.category is Category.COMMENT
    assert last.end == len(text)
    assert text[last.start :].startswith("/*")


def test_escaped_quote_does_not_close_string() -> None:
    styled = scan_highlight('"a\\"b" x')

    assert _text_of(styled, Category.STRING) == ['"a\\"b"']


def test_types_and_malformed_numbers() -> None:
    styled = scan_highlight("val n: Int = 1.2.3")

    assert _text_of(styled, Category.TYPE) == ["Int"]
    assert _text_of(styled, Category.NUMBER) == ["1.2.3"]


def test_scan_with_other_rules() -> None:
    rules = RuleSet(keywords=frozenset({"def"}), line_comment="#", string_quote="'")
    styled = scan_highlight("def f(): # note\n'x'", rules)

    assert _text_of(styled, Category.KEYWORD) == ["def"]
    assert _text_of(styled, Category.COMMENT) == ["# note"]
    assert _text_of(styled, Category.STRING) == ["'x'"]


def test_rule_highlight_layers_over_plain_base() -> None:
    rules = RuleSet(keywords=frozenset({"def"}), types=frozenset({"int"}), line_comment="#", string_quote='"')
    text = 'def f(x: int): # "c"'
    styled = rule_highlight(text, rules)

    assert styled.base == (Span(0, len(text), Category.PLAIN),)
    assert styled.categories_at(0) == [Category.PLAIN, Category.KEYWORD]
    assert Category.TYPE in styled.categories_at(text.index("int"))
    # The string pass paints after the comment pass, so both remain visible.
    assert styled.categories_at(text.index('"c"') + 1) == [Category.PLAIN, Category.COMMENT, Category.STRING]


def test_rule_highlight_without_rules_is_plain() -> None:
    assert rule_highlight("anything", None) == StyledText.plain("anything")


def test_rule_highlight_block_comment_spans_lines() -> None:
    rules = RuleSet(block_comment=("/*", "*/"))
    styled = rule_highlight("a /* b\nc */ d", rules)

    assert [(s.start, s.end, s.category) for s in styled.layers] == [(2, 11, Category.COMMENT)]


def test_bad_rule_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    rules = RuleSet(keywords=frozenset({"val"}))

    def passes(r: RuleSet):
        return [_rule_pass("(unclosed", Category.TYPE)] + rule_passes(r)

    monkeypatch.setattr(ktedit_highlight, "rule_passes", passes)
    styled = rule_highlight("val x", rules)

    assert styled.layers == (Span(0, 3, Category.KEYWORD),)


def test_failing_pass_returns_none() -> None:
    assert _rule_pass("[", Category.KEYWORD)("text") is None
