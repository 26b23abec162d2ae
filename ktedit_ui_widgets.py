"""Qt widgets: the editor surface, find bar, compile log and status chip."""

from __future__ import annotations

import bisect

from PyQt6.QtCore import pyqtSignal
from PyQt6.QtGui import QColor, QFont, QTextCursor
from PyQt6.QtWidgets import (
    QCheckBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPushButton,
    QSizePolicy,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)
from PyQt6.Qsci import QsciLexerCustom, QsciScintilla

from ktedit_core import Theme, default_rich_css, log_line_html
from ktedit_highlight import base_highlight, top_lexical, utf8_offsets
from ktedit_models import Category, RuleSet, Span, StyledText
from ktedit_rules import KOTLIN_RULES


STYLE_BY_CATEGORY = {
    Category.PLAIN: 0,
    Category.KEYWORD: 1,
    Category.TYPE: 2,
    Category.STRING: 3,
    Category.COMMENT: 4,
    Category.NUMBER: 5,
}

SEARCH_INDICATOR = 8
ERROR_INDICATOR = 9


class StyledTextLexer(QsciLexerCustom):
    """Paints base and lexical categories; overlays are indicators on the editor."""

    def __init__(self, parent: QsciScintilla):

        super().__init__(parent)
        self._rules: RuleSet | None = KOTLIN_RULES
        self._builtin = True

    def set_rules(self, rules: RuleSet | None, builtin: bool) -> None:

        self._rules = rules
        self._builtin = builtin
        editor = self.editor()
        if editor is not None:
            editor.recolor()

    def language(self) -> str:

        return "KtEdit"

    def description(self, style: int) -> str:

        for cat, idx in STYLE_BY_CATEGORY.items():
            if idx == style:
                return cat.value
        return ""

    def styleText(self, start: int, end: int) -> None:

        editor = self.editor()
        if editor is None:
            return
        text = editor.text()
        styled = base_highlight(text, self._rules, self._builtin)
        offsets = utf8_offsets(text)

        # Whole-document restyle; lexical state never has to be resumed mid-document.
        self.startStyling(0)
        for a, b, cats in styled.runs():
            self.setStyling(offsets[b] - offsets[a], STYLE_BY_CATEGORY[top_lexical(cats)])


class EditorWidget(QsciScintilla):

    def __init__(self, mono: QFont, parent: QWidget | None = None):

        super().__init__(parent)
        self._mono = mono
        self._lexer = StyledTextLexer(self)
        self._setup_base()
        self.setLexer(self._lexer)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

        for ind in (SEARCH_INDICATOR, ERROR_INDICATOR):
            self.indicatorDefine(QsciScintilla.IndicatorStyle.FullBoxIndicator, ind)
            self.setIndicatorDrawUnder(True, ind)

    def _setup_base(self) -> None:

        self.setUtf8(True)
        self.setFont(self._mono)
        self.setMarginsFont(self._mono)

        self.setMarginType(0, QsciScintilla.MarginType.NumberMargin)
        self.setMarginLineNumbers(0, True)
        self.setMarginWidth(0, "00000")

        self.setIndentationsUseTabs(False)
        self.setTabWidth(4)
        self.setAutoIndent(True)
        self.setBackspaceUnindents(True)
        self.setBraceMatching(QsciScintilla.BraceMatch.SloppyBraceMatch)

        self._lexer.setDefaultFont(self._mono)
        for style in STYLE_BY_CATEGORY.values():
            self._lexer.setFont(self._mono, style)

    def set_mono_font(self, mono: QFont) -> None:

        self._mono = mono
        self._setup_base()

    def set_rules(self, rules: RuleSet | None, builtin: bool) -> None:

        self._lexer.set_rules(rules, builtin)

    def apply_theme(self, theme: Theme) -> None:

        self.setPaper(theme.bg)
        self.setColor(theme.fg)

        self.setMarginsBackgroundColor(theme.margin_bg)
        self.setMarginsForegroundColor(theme.margin_fg)

        self.setCaretForegroundColor(theme.caret_fg)
        self.setCaretLineVisible(True)
        self.setCaretLineBackgroundColor(theme.caret_line)

        self.setSelectionBackgroundColor(theme.selection_bg)
        self.setSelectionForegroundColor(theme.selection_fg)

        self._lexer.setDefaultPaper(theme.bg)
        self._lexer.setDefaultColor(theme.fg)
        for cat, style in STYLE_BY_CATEGORY.items():
            self._lexer.setColor(theme.color_for(cat), style)
            self._lexer.setPaper(theme.bg, style)
        bold = QFont(self._mono)
        bold.setBold(True)
        self._lexer.setFont(bold, STYLE_BY_CATEGORY[Category.KEYWORD])

        for cat, ind in ((Category.SEARCH_MATCH, SEARCH_INDICATOR), (Category.ERROR_LINE, ERROR_INDICATOR)):
            self.setIndicatorForegroundColor(theme.color_for(cat), ind)
            self.SendScintilla(QsciScintilla.SCI_INDICSETALPHA, ind, 160)
        self.recolor()

    def _fill_indicator(self, indicator: int, spans: list[Span], offsets: list[int]) -> None:

        total = self.SendScintilla(QsciScintilla.SCI_GETLENGTH)
        self.SendScintilla(QsciScintilla.SCI_SETINDICATORCURRENT, indicator)
        self.SendScintilla(QsciScintilla.SCI_INDICATORCLEARRANGE, 0, total)
        last = len(offsets) - 1
        for s in spans:
            a = offsets[min(s.start, last)]
            b = offsets[min(s.end, last)]
            if b > a:
                self.SendScintilla(QsciScintilla.SCI_INDICATORFILLRANGE, a, b - a)

    def apply_overlays(self, styled: StyledText) -> None:
        """Paint search and error layers as indicators so keyword colours stay visible."""

        if styled.text != self.text():
            return
        offsets = utf8_offsets(styled.text)
        search = [s for s in styled.layers if s.category is Category.SEARCH_MATCH]
        errors = [s for s in styled.layers if s.category is Category.ERROR_LINE]
        self._fill_indicator(SEARCH_INDICATOR, search, offsets)
        self._fill_indicator(ERROR_INDICATOR, errors, offsets)

    def selection_chars(self) -> tuple[int, int]:

        offsets = utf8_offsets(self.text())
        a = self.SendScintilla(QsciScintilla.SCI_GETSELECTIONSTART)
        b = self.SendScintilla(QsciScintilla.SCI_GETSELECTIONEND)
        return bisect.bisect_left(offsets, a), bisect.bisect_left(offsets, b)

    def select_chars(self, start: int, end: int) -> None:

        offsets = utf8_offsets(self.text())
        last = len(offsets) - 1
        self.SendScintilla(QsciScintilla.SCI_SETSEL, offsets[min(start, last)], offsets[min(end, last)])

    def replace_document(self, text: str) -> None:
        """Swap the whole text as one undoable edit."""

        self.selectAll(True)
        self.replaceSelectedText(text)


class FindBar(QWidget):

    query_changed = pyqtSignal()
    find_next_clicked = pyqtSignal()
    replace_clicked = pyqtSignal()
    replace_all_clicked = pyqtSignal()

    def __init__(self, parent: QWidget | None = None):

        super().__init__(parent)
        self.find_edit = QLineEdit()
        self.find_edit.setPlaceholderText("Find")
        self.replace_edit = QLineEdit()
        self.replace_edit.setPlaceholderText("Replace with")
        self.check_case = QCheckBox("Case sensitive")
        self.check_whole_word = QCheckBox("Whole word")
        self.btn_find_next = QPushButton("Find Next")
        self.btn_replace = QPushButton("Replace")
        self.btn_replace_all = QPushButton("Replace All")

        lay = QHBoxLayout(self)
        lay.setContentsMargins(0, 0, 0, 0)
        for w in (
            self.find_edit,
            self.replace_edit,
            self.check_case,
            self.check_whole_word,
            self.btn_find_next,
            self.btn_replace,
            self.btn_replace_all,
        ):
            lay.addWidget(w)

        self.find_edit.textChanged.connect(lambda *_: self.query_changed.emit())
        self.check_case.stateChanged.connect(lambda *_: self.query_changed.emit())
        self.check_whole_word.stateChanged.connect(lambda *_: self.query_changed.emit())
        self.find_edit.returnPressed.connect(self.find_next_clicked.emit)
        self.btn_find_next.clicked.connect(self.find_next_clicked.emit)
        self.btn_replace.clicked.connect(self.replace_clicked.emit)
        self.btn_replace_all.clicked.connect(self.replace_all_clicked.emit)

    def query(self) -> str:

        return self.find_edit.text()

    def replacement(self) -> str:

        return self.replace_edit.text()

    def case_sensitive(self) -> bool:

        return self.check_case.isChecked()

    def whole_word(self) -> bool:

        return self.check_whole_word.isChecked()

    def set_options(self, query: str, case_sensitive: bool, whole_word: bool) -> None:

        self.find_edit.setText(query)
        self.check_case.setChecked(bool(case_sensitive))
        self.check_whole_word.setChecked(bool(whole_word))


class StatusChip(QLabel):

    def set_status(self, label: str, color: str) -> None:

        c = QColor(color)
        self.setText(label)
        self.setStyleSheet(
            f"QLabel {{ color: {c.name()}; background: rgba({c.red()}, {c.green()}, {c.blue()}, 30);"
            " border-radius: 6px; padding: 4px 10px; }"
        )


class CompileLogPanel(QWidget):

    def __init__(self, mono: QFont, parent: QWidget | None = None):

        super().__init__(parent)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self._error_color = "#c62828"

        self.text = QTextBrowser()
        self.text.setPlaceholderText("No output yet.")
        self.text.document().setDefaultStyleSheet(default_rich_css(mono))
        self.result = QLabel("")
        self.result.setWordWrap(True)

        lay = QVBoxLayout(self)
        lay.setContentsMargins(4, 4, 4, 4)
        lay.addWidget(self.text, 1)
        lay.addWidget(self.result, 0)

    def set_mono_font(self, mono: QFont) -> None:

        self.text.document().setDefaultStyleSheet(default_rich_css(mono))

    def set_error_color(self, color: QColor) -> None:

        self._error_color = color.name()

    def clear_log(self) -> None:

        self.text.clear()

    def append_line(self, line: str) -> None:

        cur = self.text.textCursor()
        cur.movePosition(QTextCursor.MoveOperation.End)
        cur.insertHtml(log_line_html(line, self._error_color))
        cur.insertBlock()
        self.text.setTextCursor(cur)
        self.text.moveCursor(QTextCursor.MoveOperation.End)

    def set_result(self, text: str, color: str) -> None:

        self.result.setText(text)
        self.result.setStyleSheet(f"QLabel {{ color: {color}; }}" if text else "")
