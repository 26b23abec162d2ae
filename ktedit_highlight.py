"""Tokenizer, rule-driven highlighter and the search/error overlays."""

from __future__ import annotations

import re
from functools import reduce
from typing import Callable, Iterable

from ktedit_core import LOG, HighlightRuleError
from ktedit_models import Category, RuleSet, Span, StyledText
from ktedit_rules import KOTLIN_RULES
from ktedit_search import search_pattern


def _append(spans: list[Span], start: int, end: int, cat: Category) -> None:

    if spans and cat is Category.PLAIN and spans[-1].category is Category.PLAIN and spans[-1].end == start:
        spans[-1] = Span(spans[-1].start, end, cat)
    else:
        spans.append(Span(start, end, cat))


def scan_highlight(text: str, rules: RuleSet | None = None) -> StyledText:
    """Single left-to-right scan; every character lands in exactly one base span.

    Unterminated block comments and strings run to the end of the text.
    """

    r = rules if rules is not None else KOTLIN_RULES
    block = r.block_comment if r.block_comment and all(r.block_comment) else None
    line = r.line_comment or None
    quote = r.string_quote or None
    keywords = r.keywords
    types = r.types

    n = len(text)
    spans: list[Span] = []
    i = 0
    while i < n:
        ch = text[i]
        if block is not None and text.startswith(block[0], i):
            close = text.find(block[1], i + len(block[0]))
            end = n if close == -1 else close + len(block[1])
            cat = Category.COMMENT
        elif line is not None and text.startswith(line, i):
            nl = text.find("\n", i)
            end = n if nl == -1 else nl
            cat = Category.COMMENT
        elif quote is not None and text.startswith(quote, i):
            j = i + len(quote)
            while j < n and not text.startswith(quote, j):
                if text[j] == "\\" and j + 1 < n:
                    j += 1
                j += 1
            end = n if j >= n else j + len(quote)
            cat = Category.STRING
        elif ch.isdigit():
            end = i + 1
            while end < n and (text[end].isdigit() or text[end] == "."):
                end += 1
            cat = Category.NUMBER
        elif ch.isalpha() or ch == "_":
            end = i + 1
            while end < n and (text[end].isalnum() or text[end] == "_"):
                end += 1
            word = text[i:end]
            if word in keywords:
                cat = Category.KEYWORD
            elif word in types:
                cat = Category.TYPE
            else:
                cat = Category.PLAIN
        else:
            end = i + 1
            cat = Category.PLAIN

        # A marker that matches an empty or newline-only run must still advance.
        if end <= i:
            end = i + 1
        _append(spans, i, end, cat)
        i = end

    return StyledText(text, tuple(spans))


RulePass = Callable[[str], "list[Span] | None"]


def _compile_rule(source: str, flags: int = 0) -> re.Pattern[str]:

    try:
        return re.compile(source, flags)
    except re.error as e:
        raise HighlightRuleError(f"bad highlight pattern {source!r}: {e}") from e


def _rule_pass(source: str, category: Category, flags: int = 0) -> RulePass:

    def run(text: str) -> list[Span] | None:

        try:
            rx = _compile_rule(source, flags)
            return [Span(m.start(), m.end(), category) for m in rx.finditer(text) if m.end() > m.start()]
        except HighlightRuleError as e:
            LOG.debug("Skipping highlight rule: %s", e)
            return None

    return run


def rule_passes(rules: RuleSet) -> list[RulePass]:
    """Independent passes in paint order: keywords, types, comments, strings."""

    passes: list[RulePass] = []
    for kw in sorted(rules.keywords):
        passes.append(_rule_pass(rf"\b{re.escape(kw)}\b", Category.KEYWORD))
    for ty in sorted(rules.types):
        passes.append(_rule_pass(rf"\b{re.escape(ty)}\b", Category.TYPE))
    if rules.line_comment:
        passes.append(_rule_pass(re.escape(rules.line_comment) + ".*", Category.COMMENT))
    if rules.block_comment and all(rules.block_comment):
        start, end = rules.block_comment
        passes.append(_rule_pass(re.escape(start) + ".*?" + re.escape(end), Category.COMMENT, re.DOTALL))
    if rules.string_quote:
        q = re.escape(rules.string_quote)
        passes.append(_rule_pass(q + ".*?" + q, Category.STRING))
    return passes


def rule_highlight(text: str, rules: RuleSet | None) -> StyledText:
    """Plain base with each rule's matches layered on top; later passes paint over earlier ones."""

    base = StyledText.plain(text)
    if rules is None:
        return base

    def fold(acc: StyledText, run: RulePass) -> StyledText:

        spans = run(text)
        return acc if spans is None else acc.with_layer(spans)

    return reduce(fold, rule_passes(rules), base)


def overlay_search(
    styled: StyledText,
    full_text: str,
    query: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
) -> StyledText:

    if not query or not query.strip():
        return styled
    rx = search_pattern(query, case_sensitive, whole_word)
    if rx is None:
        return styled
    return styled.with_layer(Span(m.start(), m.end(), Category.SEARCH_MATCH) for m in rx.finditer(full_text))


def line_starts(text: str) -> list[int]:

    starts = [0]
    for idx, c in enumerate(text):
        if c == "\n":
            starts.append(idx + 1)
    return starts


def overlay_errors(styled: StyledText, full_text: str, error_lines: Iterable[int]) -> StyledText:
    """Tag whole 1-based lines; numbers outside the document are ignored."""

    wanted = sorted({int(x) for x in error_lines})
    if not wanted:
        return styled
    starts = line_starts(full_text)
    spans: list[Span] = []
    for ln in wanted:
        if ln < 1 or ln > len(starts):
            continue
        start = starts[ln - 1]
        end = starts[ln] if ln < len(starts) else len(full_text)
        spans.append(Span(start, end, Category.ERROR_LINE))
    return styled.with_layer(spans)


def base_highlight(text: str, rules: RuleSet | None, builtin: bool) -> StyledText:

    if builtin:
        return scan_highlight(text, rules)
    return rule_highlight(text, rules)


def compose(
    text: str,
    rules: RuleSet | None,
    *,
    builtin: bool,
    query: str = "",
    case_sensitive: bool = False,
    whole_word: bool = False,
    error_lines: Iterable[int] = (),
) -> StyledText:
    """Base classification, then the search overlay, then the error overlay."""

    styled = base_highlight(text, rules, builtin)
    styled = overlay_search(styled, text, query, case_sensitive, whole_word)
    return overlay_errors(styled, text, error_lines)


def top_lexical(categories: Iterable[Category]) -> Category:
    """The last-painted non-overlay category, which a single-style renderer shows."""

    top = Category.PLAIN
    for c in categories:
        if not c.is_overlay:
            top = c
    return top


def utf8_offsets(text: str) -> list[int]:
    """Byte offset of every character boundary; Scintilla positions are UTF-8 bytes."""

    out = [0]
    total = 0
    for c in text:
        total += len(c.encode("utf-8", errors="surrogatepass"))
        out.append(total)
    return out
