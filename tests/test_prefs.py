"""Tests for preferences and session persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from ktedit_prefs import (
    AppSettings,
    PreferencesState,
    SessionState,
    _as_bool,
    _clamp_int,
    _load_preferences_state,
    _load_session_state,
    _save_preferences_state,
    _save_session_state,
)
from ktedit_rules import KOTLIN_BUILTIN


@pytest.fixture
def settings(qapp, tmp_path: Path) -> AppSettings:
    return AppSettings(tmp_path / "ktedit.ini")


def test_clamp_int() -> None:
    assert _clamp_int("40", 12, 8, 28) == 28
    assert _clamp_int(3, 12, 8, 28) == 8
    assert _clamp_int("junk", 12, 8, 28) == 12


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), ("true", True), ("false", False), ("0", False), (1, True), ("maybe", False), (None, False)],
)
def test_as_bool(value: object, expected: bool) -> None:
    assert _as_bool(value, False) is expected


def test_preferences_defaults(settings: AppSettings) -> None:
    p = _load_preferences_state(settings)

    assert p == PreferencesState(
        theme_mode="auto",
        theme_path="",
        ui_font_pt=13,
        editor_font_pt=12,
        health_timeout_s=2,
        compile_timeout_s=120,
    )


def test_preferences_are_clamped(settings: AppSettings) -> None:
    settings.set_value(AppSettings.K_THEME_MODE, "Neon")
    settings.set_value(AppSettings.K_EDITOR_FONT_PT, 99)
    settings.set_value(AppSettings.K_HEALTH_TIMEOUT_S, 0)
    settings.set_value(AppSettings.K_COMPILE_TIMEOUT_S, 10_000)

    p = _load_preferences_state(settings)

    assert p.theme_mode == "auto"
    assert p.editor_font_pt == 28
    assert p.health_timeout_s == 1
    assert p.compile_timeout_s == 600


def test_preferences_round_trip_through_ini(tmp_path: Path, qapp) -> None:
    path = tmp_path / "prefs.ini"
    first = AppSettings(path)
    _save_preferences_state(first, PreferencesState("dark", "/tmp/theme.json", 14, 11, 5, 300))
    first.sync()

    p = _load_preferences_state(AppSettings(path))

    assert p == PreferencesState("dark", "/tmp/theme.json", 14, 11, 5, 300)


def test_session_state_reads_booleans_from_ini(tmp_path: Path, qapp) -> None:
    path = tmp_path / "session.ini"
    first = AppSettings(path)
    _save_session_state(
        first,
        SessionState(
            editor_text="fun main() {}\n",
            current_path="/tmp/Main.kt",
            language="Java (rules/java.json)",
            find_text="main",
            find_case_sensitive=True,
            find_whole_word=False,
        ),
    )
    first.sync()

    s = _load_session_state(AppSettings(path))

    assert s.editor_text == "fun main() {}\n"
    assert s.current_path == "/tmp/Main.kt"
    assert s.language == "Java (rules/java.json)"
    assert s.find_text == "main"
    assert s.find_case_sensitive is True
    assert s.find_whole_word is False


def test_unknown_language_falls_back(settings: AppSettings) -> None:
    settings.set_value(AppSettings.K_LANGUAGE, "Cobol")

    assert _load_session_state(settings).language == KOTLIN_BUILTIN


def test_reset_all(settings: AppSettings) -> None:
    settings.set_value(AppSettings.K_FIND_TEXT, "x")
    settings.reset_all()

    assert settings.get_value(AppSettings.K_FIND_TEXT) is None
    assert _load_session_state(settings).editor_text is None


def test_sync_writes_ini_file(tmp_path: Path, qapp) -> None:
    path = tmp_path / "flush.ini"
    s = AppSettings(path)
    s.set_value(AppSettings.K_FIND_TEXT, "needle")
    s.sync()

    assert "needle" in path.read_text(encoding="utf-8")
