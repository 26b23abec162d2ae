"""Data models shared by the highlighter, the bridge client and the UI."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from enum import Enum


class Category(Enum):

    PLAIN = "plain"
    KEYWORD = "keyword"
    TYPE = "type"
    STRING = "string"
    COMMENT = "comment"
    NUMBER = "number"
    SEARCH_MATCH = "search_match"
    ERROR_LINE = "error_line"

    @property
    def is_overlay(self) -> bool:

        return self in (Category.SEARCH_MATCH, Category.ERROR_LINE)


@dataclass(frozen=True)
class Span:

    start: int
    end: int
    category: Category

    def covers(self, offset: int) -> bool:

        return self.start <= offset < self.end


@dataclass(frozen=True)
class StyledText:
    """Source text plus its styling.

    `base` partitions [0, len(text)) exactly once. `layers` holds every span painted
    on top of the base, in paint order: rule-driven lexical classes first, then
    search matches, then error lines. Layers may overlap each other and the base.
    """

    text: str
    base: tuple[Span, ...]
    layers: tuple[Span, ...] = ()

    @classmethod
    def plain(cls, text: str) -> StyledText:

        if not text:
            return cls(text, ())
        return cls(text, (Span(0, len(text), Category.PLAIN),))

    def with_layer(self, spans) -> StyledText:

        added = tuple(s for s in spans if s.end > s.start)
        if not added:
            return self
        return StyledText(self.text, self.base, self.layers + added)

    def base_category_at(self, offset: int) -> Category | None:

        starts = [s.start for s in self.base]
        i = bisect.bisect_right(starts, offset) - 1
        if i < 0 or not self.base[i].covers(offset):
            return None
        return self.base[i].category

    def categories_at(self, offset: int) -> list[Category]:
        """Every category present at `offset`, base first, then layers in paint order."""

        out: list[Category] = []
        base = self.base_category_at(offset)
        if base is not None:
            out.append(base)
        out.extend(s.category for s in self.layers if s.covers(offset))
        return out

    def runs(self) -> list[tuple[int, int, tuple[Category, ...]]]:
        """Flatten base and layers into maximal runs sharing the same category stack."""

        n = len(self.text)
        if n == 0:
            return []

        bounds = {0, n}
        for s in self.base:
            bounds.add(s.start)
            bounds.add(s.end)
        opens: dict[int, list[int]] = {}
        closes: dict[int, list[int]] = {}
        for idx, s in enumerate(self.layers):
            bounds.add(s.start)
            bounds.add(s.end)
            opens.setdefault(s.start, []).append(idx)
            closes.setdefault(s.end, []).append(idx)

        points = sorted(b for b in bounds if 0 <= b <= n)
        active: set[int] = set()
        bi = 0
        out: list[tuple[int, int, tuple[Category, ...]]] = []
        for a, b in zip(points, points[1:]):
            for idx in closes.get(a, ()):
                active.discard(idx)
            for idx in opens.get(a, ()):
                active.add(idx)
            while bi < len(self.base) and self.base[bi].end <= a:
                bi += 1
            cats: list[Category] = []
            if bi < len(self.base) and self.base[bi].covers(a):
                cats.append(self.base[bi].category)
            cats.extend(self.layers[idx].category for idx in sorted(active))
            key = tuple(cats)
            if out and out[-1][1] == a and out[-1][2] == key:
                out[-1] = (out[-1][0], b, key)
            else:
                out.append((a, b, key))
        return out


@dataclass(frozen=True)
class RuleSet:

    keywords: frozenset[str] = field(default_factory=frozenset)
    types: frozenset[str] = field(default_factory=frozenset)
    line_comment: str | None = None
    block_comment: tuple[str, str] | None = None
    string_quote: str | None = None


@dataclass(frozen=True)
class Idle:

    pass


@dataclass(frozen=True)
class Connecting:

    pass


@dataclass(frozen=True)
class Compiling:

    pass


@dataclass(frozen=True)
class Success:

    artifact_path: str | None = None


@dataclass(frozen=True)
class Failure:

    reason: str

    def __post_init__(self) -> None:

        if not isinstance(self.reason, str) or not self.reason.strip():
            raise ValueError("Failure.reason must be a non-empty string")


CompileState = Idle | Connecting | Compiling | Success | Failure


@dataclass(frozen=True)
class LanguageSpec:

    name: str
    rules_file: str | None
    compile_filename: str
    save_suggestion: str
    file_filter: str


@dataclass(frozen=True)
class TextStats:

    chars: int
    words: int
    lines: int

    def label(self) -> str:

        return f"Characters: {self.chars}    Words: {self.words}    Lines: {self.lines}"
