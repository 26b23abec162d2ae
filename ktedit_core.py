"""Core helpers and shared utilities."""

from __future__ import annotations

import html
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtGui import QColor, QFont, QFontDatabase
from PyQt6.QtWidgets import QApplication

from ktedit_models import Category


LOG = logging.getLogger("ktedit")

BRIDGE_HOST = "127.0.0.1"
BRIDGE_PORT = 8177


class KtEditError(Exception):

    pass


class ConfigLoadError(KtEditError):
    """A RuleSet or theme source could not be read or has the wrong shape."""


class HighlightRuleError(KtEditError):
    """One highlighting rule could not be compiled or applied."""


class BridgeUnreachable(KtEditError):

    def __init__(self, host: str = BRIDGE_HOST, port: int = BRIDGE_PORT, detail: str = ""):

        self.host = host
        self.port = port
        self.detail = detail
        super().__init__(f"Bridge not reachable at http://{host}:{port} (check adb reverse)")


class TransportError(KtEditError):
    """Compile request/response I/O failed; str() is the best text to show the user."""


def setup_logging() -> None:

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


KOTLIN_SAMPLE = 'fun main() {\n    println("Hello from KtEdit")\n}\n'


def decode_text_file_for_editor(data: bytes) -> tuple[str, str]:
    """Decode as UTF-8 (a leading BOM is dropped); undecodable bytes become U+FFFD."""

    if b"\x00" in data:
        raise ValueError("This looks like a binary file (contains NUL bytes).")
    try:
        return data.decode("utf-8-sig"), "utf-8-sig"
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace"), "utf-8 (replacement)"


MONO_FAMILIES = ("JetBrains Mono", "Menlo", "SF Mono", "DejaVu Sans Mono", "Liberation Mono", "Courier New")


def choose_mono_font(point_size: int) -> QFont:

    installed = set(QFontDatabase.families())
    family = next((name for name in MONO_FAMILIES if name in installed), None)
    f = QFont(family) if family else QFont()
    f.setPointSize(point_size)
    f.setStyleHint(QFont.StyleHint.Monospace)
    f.setFixedPitch(True)
    return f


# theme.json key for each highlight category; Plain text uses "fg".
CATEGORY_KEYS: dict[Category, str] = {
    Category.KEYWORD: "kw",
    Category.TYPE: "ty",
    Category.NUMBER: "num",
    Category.STRING: "str",
    Category.COMMENT: "com",
    Category.SEARCH_MATCH: "search_bg",
    Category.ERROR_LINE: "error_bg",
}

DEFAULT_THEMES: dict[str, dict[str, str]] = {
    "dark": {
        "bg": "#1e1e1e",
        "fg": "#d4d4d4",
        "margin_bg": "#252526",
        "margin_fg": "#9aa0a6",
        "caret_fg": "#d4d4d4",
        "caret_line": "#2a2d2e",
        "selection_bg": "#264f78",
        "selection_fg": "#ffffff",
        "kw": "#569cd6",
        "ty": "#4ec9b0",
        "num": "#b5cea8",
        "str": "#d69d85",
        "com": "#6a9955",
        "search_bg": "#b8a000",
        "error_bg": "#5a1d1d",
        "log_error": "#f48771",
    },
    "light": {
        "bg": "#ffffff",
        "fg": "#1e1e1e",
        "margin_bg": "#f3f3f3",
        "margin_fg": "#666666",
        "caret_fg": "#1e1e1e",
        "caret_line": "#f5f5f5",
        "selection_bg": "#add6ff",
        "selection_fg": "#000000",
        "kw": "#0000ff",
        "ty": "#267f99",
        "num": "#098658",
        "str": "#a31515",
        "com": "#008000",
        "search_bg": "#ffff00",
        "error_bg": "#ffe5e5",
        "log_error": "#c62828",
    },
}

THEME_MODES = ("auto", "dark", "light")


def ensure_theme_json(path: Path) -> None:

    if not path.exists():
        path.write_text(json.dumps(DEFAULT_THEMES, indent=2), encoding="utf-8")


@dataclass(frozen=True)
class Theme:
    """Editor chrome colours plus one colour per highlight category."""

    bg: QColor
    fg: QColor
    margin_bg: QColor
    margin_fg: QColor
    caret_fg: QColor
    caret_line: QColor
    selection_bg: QColor
    selection_fg: QColor
    log_error: QColor
    categories: dict[Category, QColor]

    def color_for(self, category: Category) -> QColor:

        return self.categories.get(category, self.fg)


def theme_from_dict(key: str, t: dict[str, Any]) -> Theme:
    """Build one palette; keys missing from `t` take the built-in default for `key`."""

    defaults = DEFAULT_THEMES[key]

    def qc(name: str) -> QColor:

        v = t.get(name, defaults[name])
        if not isinstance(v, str):
            raise ConfigLoadError(f"theme '{key}.{name}' must be a colour string")
        return QColor(v)

    return Theme(
        bg=qc("bg"),
        fg=qc("fg"),
        margin_bg=qc("margin_bg"),
        margin_fg=qc("margin_fg"),
        caret_fg=qc("caret_fg"),
        caret_line=qc("caret_line"),
        selection_bg=qc("selection_bg"),
        selection_fg=qc("selection_fg"),
        log_error=qc("log_error"),
        categories={cat: qc(name) for cat, name in CATEGORY_KEYS.items()},
    )


def read_palettes(path: Path) -> dict[str, Theme]:
    """Both palettes of a theme file, written with defaults first if it does not exist."""

    try:
        ensure_theme_json(path)
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigLoadError(f"cannot load theme file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigLoadError(f"{path} must hold a JSON object")

    palettes: dict[str, Theme] = {}
    for key in ("dark", "light"):
        section = data.get(key)
        if not isinstance(section, dict):
            raise ConfigLoadError(f"{path} must contain a '{key}' object")
        palettes[key] = theme_from_dict(key, section)
    return palettes


def normalize_theme_mode(mode: str | None) -> str:

    m = (mode or "").strip().lower()
    return m if m in THEME_MODES else "auto"


def _window_is_dark() -> bool:

    c = QApplication.palette().color(QApplication.palette().ColorRole.Window)
    return (c.red() * 0.2126 + c.green() * 0.7152 + c.blue() * 0.0722) < 128.0


class ThemeManager(QObject):
    """Owns the loaded palettes and announces whichever one is in effect."""

    theme_changed = pyqtSignal(object)

    def __init__(self, theme_path: Path, mode: str = "auto"):

        super().__init__()
        self._path = theme_path
        self._palettes = read_palettes(theme_path)
        self._mode = normalize_theme_mode(mode)
        self._shown: str | None = None

    @property
    def path(self) -> Path:

        return self._path

    @property
    def mode(self) -> str:

        return self._mode

    def palette_key(self) -> str:

        if self._mode != "auto":
            return self._mode
        return "dark" if _window_is_dark() else "light"

    def current_theme(self) -> Theme:

        key = self.palette_key()
        self._shown = key
        return self._palettes[key]

    def set_mode(self, mode: str) -> None:

        self._mode = normalize_theme_mode(mode)
        self._publish(force=False)

    def set_theme_path(self, path: Path) -> None:
        """Swap theme files; on ConfigLoadError the current palettes stay in place."""

        self._palettes = read_palettes(path)
        self._path = path
        self._publish(force=True)

    def refresh(self) -> None:

        self._publish(force=False)

    def _publish(self, force: bool) -> None:

        key = self.palette_key()
        if key == self._shown and not force:
            return
        self._shown = key
        LOG.debug("Theme %s from %s", key, self._path.name)
        self.theme_changed.emit(self._palettes[key])


def log_line_html(line: str, error_color: str) -> str:

    esc = html.escape(line)
    if "error" in line.lower():
        return f"<pre class='logline' style='color: {error_color};'>{esc}</pre>"
    return f"<pre class='logline'>{esc}</pre>"


def default_rich_css(mono: QFont) -> str:

    fam = mono.family().replace("'", "\\'")
    return (
        "pre { margin: 0; white-space: pre-wrap; }"
        f"pre, code, tt {{ font-family: '{fam}'; font-size: {mono.pointSize()}pt; }}"
    )
