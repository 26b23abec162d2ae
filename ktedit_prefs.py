"""Preferences and persistent settings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PyQt6.QtCore import QSettings

from ktedit_rules import KOTLIN_BUILTIN, language_for_name


def _clamp_int(value: object, default: int, lo: int, hi: int) -> int:

    try:
        v = int(value)
    except Exception:
        v = int(default)
    return max(int(lo), min(int(hi), v))


def _as_bool(value: object, default: bool) -> bool:

    # QSettings INI backends hand booleans back as "true"/"false" strings.
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("true", "1", "yes", "on"):
            return True
        if s in ("false", "0", "no", "off"):
            return False
        return default
    if isinstance(value, int):
        return bool(value)
    return default


class AppSettings:

    ORG = "KtEdit"
    APP = "KtEdit"

    K_GEOMETRY = "main/geometry"
    K_STATE = "main/windowState"

    K_EDITOR = "session/editorText"
    K_CURRENT_PATH = "session/currentPath"
    K_LAST_OPEN_PATH = "session/lastOpenPath"
    K_LANGUAGE = "session/language"
    K_FIND_TEXT = "session/findText"
    K_FIND_CASE = "session/findCaseSensitive"
    K_FIND_WHOLE_WORD = "session/findWholeWord"

    K_THEME_MODE = "appearance/themeMode"
    K_THEME_PATH = "appearance/themePath"
    K_UI_FONT_PT = "appearance/uiFontPt"
    K_EDITOR_FONT_PT = "appearance/editorFontPt"

    K_HEALTH_TIMEOUT_S = "bridge/healthTimeoutS"
    K_COMPILE_TIMEOUT_S = "bridge/compileTimeoutS"

    def __init__(self, path: Path | None = None):

        if path is None:
            self._s = QSettings(self.ORG, self.APP)
        else:
            self._s = QSettings(str(path), QSettings.Format.IniFormat)

    def set_value(self, key: str, value: Any) -> None:

        self._s.setValue(key, value)

    def get_value(self, key: str, default: Any = None) -> Any:

        return self._s.value(key, default)

    def sync(self) -> None:

        self._s.sync()

    def reset_all(self) -> None:

        keys = (
            self.K_GEOMETRY,
            self.K_STATE,
            self.K_EDITOR,
            self.K_CURRENT_PATH,
            self.K_LAST_OPEN_PATH,
            self.K_LANGUAGE,
            self.K_FIND_TEXT,
            self.K_FIND_CASE,
            self.K_FIND_WHOLE_WORD,
            self.K_THEME_MODE,
            self.K_THEME_PATH,
            self.K_UI_FONT_PT,
            self.K_EDITOR_FONT_PT,
            self.K_HEALTH_TIMEOUT_S,
            self.K_COMPILE_TIMEOUT_S,
        )
        for k in keys:
            self._s.remove(k)


@dataclass(frozen=True)
class PreferencesState:

    theme_mode: str
    theme_path: str
    ui_font_pt: int
    editor_font_pt: int

    health_timeout_s: int
    compile_timeout_s: int


@dataclass(frozen=True)
class SessionState:

    editor_text: str | None
    current_path: str
    language: str
    find_text: str
    find_case_sensitive: bool
    find_whole_word: bool


def _load_preferences_state(settings: AppSettings, *, default_ui_pt: int = 13, default_editor_pt: int = 12) -> PreferencesState:

    mode = settings.get_value(AppSettings.K_THEME_MODE, "auto")
    theme_path = settings.get_value(AppSettings.K_THEME_PATH, "")
    ui_pt = settings.get_value(AppSettings.K_UI_FONT_PT, default_ui_pt)
    ed_pt = settings.get_value(AppSettings.K_EDITOR_FONT_PT, default_editor_pt)
    health = settings.get_value(AppSettings.K_HEALTH_TIMEOUT_S, 2)
    compile_s = settings.get_value(AppSettings.K_COMPILE_TIMEOUT_S, 120)

    m = str(mode or "auto").strip().lower()
    return PreferencesState(
        theme_mode=m if m in ("auto", "dark", "light") else "auto",
        theme_path=str(theme_path or ""),
        ui_font_pt=_clamp_int(ui_pt, default_ui_pt, 8, 28),
        editor_font_pt=_clamp_int(ed_pt, default_editor_pt, 8, 28),
        health_timeout_s=_clamp_int(health, 2, 1, 30),
        compile_timeout_s=_clamp_int(compile_s, 120, 5, 600),
    )


def _save_preferences_state(settings: AppSettings, p: PreferencesState) -> None:

    settings.set_value(AppSettings.K_THEME_MODE, str(p.theme_mode or "auto"))
    settings.set_value(AppSettings.K_THEME_PATH, str(p.theme_path or "").strip())
    settings.set_value(AppSettings.K_UI_FONT_PT, int(p.ui_font_pt))
    settings.set_value(AppSettings.K_EDITOR_FONT_PT, int(p.editor_font_pt))
    settings.set_value(AppSettings.K_HEALTH_TIMEOUT_S, int(p.health_timeout_s))
    settings.set_value(AppSettings.K_COMPILE_TIMEOUT_S, int(p.compile_timeout_s))


def _load_session_state(settings: AppSettings) -> SessionState:

    txt = settings.get_value(AppSettings.K_EDITOR)
    path = settings.get_value(AppSettings.K_CURRENT_PATH, "")
    lang = settings.get_value(AppSettings.K_LANGUAGE, KOTLIN_BUILTIN)
    find = settings.get_value(AppSettings.K_FIND_TEXT, "")
    return SessionState(
        editor_text=txt if isinstance(txt, str) else None,
        current_path=str(path or ""),
        language=language_for_name(str(lang or "")).name,
        find_text=str(find or ""),
        find_case_sensitive=_as_bool(settings.get_value(AppSettings.K_FIND_CASE, False), False),
        find_whole_word=_as_bool(settings.get_value(AppSettings.K_FIND_WHOLE_WORD, False), False),
    )


def _save_session_state(settings: AppSettings, s: SessionState) -> None:

    if s.editor_text is not None:
        settings.set_value(AppSettings.K_EDITOR, s.editor_text)
    settings.set_value(AppSettings.K_CURRENT_PATH, str(s.current_path or ""))
    settings.set_value(AppSettings.K_LANGUAGE, language_for_name(s.language).name)
    settings.set_value(AppSettings.K_FIND_TEXT, str(s.find_text or ""))
    settings.set_value(AppSettings.K_FIND_CASE, bool(s.find_case_sensitive))
    settings.set_value(AppSettings.K_FIND_WHOLE_WORD, bool(s.find_whole_word))
