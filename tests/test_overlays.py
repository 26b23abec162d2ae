"""Tests for the search and error overlays and their composition."""

from __future__ import annotations

from ktedit_highlight import compose, line_starts, overlay_errors, overlay_search, scan_highlight, top_lexical, utf8_offsets
from ktedit_models import Category, Span, StyledText

DOC = "fun a() {\n    val x = 1\n}"


def test_empty_query_is_noop() -> None:
    base = scan_highlight(DOC)

    assert overlay_search(base, DOC, "") == base
    assert overlay_search(base, DOC, "   ") == base


def test_search_marks_every_match() -> None:
    base = scan_highlight("Val val VAL")
    styled = overlay_search(base, base.text, "val")

    assert [(s.start, s.end) for s in styled.layers] == [(0, 3), (4, 7), (8, 11)]
    assert all(s.category is Category.SEARCH_MATCH for s in styled.layers)


def test_search_case_sensitive_and_whole_word() -> None:
    text = "value val Val"
    base = scan_highlight(text)

    cs = overlay_search(base, text, "val", case_sensitive=True)
    assert [(s.start, s.end) for s in cs.layers] == [(0, 3), (6, 9)]

    ww = overlay_search(base, text, "val", whole_word=True)
    assert [(s.start, s.end) for s in ww.layers] == [(6, 9), (10, 13)]


def test_search_query_is_literal() -> None:
    text = "a.b axb"
    styled = overlay_search(StyledText.plain(text), text, "a.b")

    assert [(s.start, s.end) for s in styled.layers] == [(0, 3)]


def test_error_overlay_out_of_range_is_unchanged() -> None:
    base = scan_highlight(DOC)

    assert overlay_errors(base, DOC, {9999}) == base
    assert overlay_errors(base, DOC, {0, -3}) == base


def test_error_overlay_covers_whole_lines() -> None:
    styled = overlay_errors(StyledText.plain(DOC), DOC, {2, 3})

    assert styled.layers == (
        Span(10, 24, Category.ERROR_LINE),
        Span(24, len(DOC), Category.ERROR_LINE),
    )
    assert DOC[10:24] == "    val x = 1\n"


def test_line_starts() -> None:
    assert line_starts("") == [0]
    assert line_starts("a\nb\n") == [0, 2, 4]


def test_keyword_search_and_error_coexist() -> None:
    styled = compose(DOC, None, builtin=True, query="val", error_lines={2})
    at = DOC.index("val")
    cats = styled.categories_at(at)

    assert cats == [Category.KEYWORD, Category.SEARCH_MATCH, Category.ERROR_LINE]
    assert top_lexical(cats) is Category.KEYWORD


def test_overlays_keep_base_at_untouched_offsets() -> None:
    base = scan_highlight(DOC)
    styled = compose(DOC, None, builtin=True, query="val", error_lines={2})

    assert styled.base == base.base
    assert styled.categories_at(0) == [Category.KEYWORD]


def test_runs_merge_equal_category_stacks() -> None:
    text = "abc def"
    styled = StyledText.plain(text).with_layer([Span(4, 7, Category.SEARCH_MATCH)])

    assert styled.runs() == [
        (0, 4, (Category.PLAIN,)),
        (4, 7, (Category.PLAIN, Category.SEARCH_MATCH)),
    ]


def test_runs_cover_text_after_overlays() -> None:
    styled = compose(DOC, None, builtin=True, query="x", error_lines={1, 2})
    runs = styled.runs()

    assert runs[0][0] == 0
    assert runs[-1][1] == len(DOC)
    for (_, end, _), (start, _, _) in zip(runs, runs[1:]):
        assert end == start


def test_with_layer_drops_empty_spans() -> None:
    base = StyledText.plain("abc")

    assert base.with_layer([Span(1, 1, Category.SEARCH_MATCH)]) is base


def test_utf8_offsets() -> None:
    assert utf8_offsets("aé✓") == [0, 1, 3, 6]
