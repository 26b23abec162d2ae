"""Main window and application wiring."""

from __future__ import annotations

import sys
from pathlib import Path

from PyQt6.QtCore import QEvent, Qt, QThread, QTimer
from PyQt6.QtGui import QAction, QKeySequence
from PyQt6.QtWidgets import (
    QApplication,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QDockWidget,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from ktedit_bridge import (
    BridgeClient,
    BridgeCompileWorker,
    BridgeHealthWorker,
    CompileSession,
    result_text,
    run_in_thread,
    status_label,
)
from ktedit_core import (
    KOTLIN_SAMPLE,
    LOG,
    ConfigLoadError,
    Theme,
    ThemeManager,
    choose_mono_font,
    decode_text_file_for_editor,
    setup_logging,
)
from ktedit_highlight import compose
from ktedit_models import CompileState, LanguageSpec, RuleSet
from ktedit_prefs import (
    AppSettings,
    PreferencesState,
    SessionState,
    _clamp_int,
    _load_preferences_state,
    _load_session_state,
    _save_preferences_state,
    _save_session_state,
)
from ktedit_rules import LANGUAGES, language_for_name, rules_for_language
from ktedit_search import find_next, replace_all, replace_selection, search_pattern, text_stats
from ktedit_ui_widgets import CompileLogPanel, EditorWidget, FindBar, StatusChip


class PreferencesDialog(QDialog):

    def __init__(self, parent: QWidget | None = None):

        super().__init__(parent)
        self.setWindowTitle("Preferences")

        self.comboThemeMode = QComboBox()
        self.comboThemeMode.addItems(["Auto", "Dark", "Light"])
        self.editThemePath = QLineEdit()
        self.btnBrowseTheme = QPushButton("Browse...")
        theme_row = QHBoxLayout()
        theme_row.addWidget(self.editThemePath, 1)
        theme_row.addWidget(self.btnBrowseTheme)

        self.spinUIFontPt = QSpinBox()
        self.spinUIFontPt.setRange(8, 28)
        self.spinEditorFontPt = QSpinBox()
        self.spinEditorFontPt.setRange(8, 28)
        self.spinHealthTimeout = QSpinBox()
        self.spinHealthTimeout.setRange(1, 30)
        self.spinHealthTimeout.setSuffix(" s")
        self.spinCompileTimeout = QSpinBox()
        self.spinCompileTimeout.setRange(5, 600)
        self.spinCompileTimeout.setSuffix(" s")

        form = QFormLayout()
        form.addRow("Theme", self.comboThemeMode)
        form.addRow("Theme file", theme_row)
        form.addRow("UI font size", self.spinUIFontPt)
        form.addRow("Editor font size", self.spinEditorFontPt)
        form.addRow("Bridge health timeout", self.spinHealthTimeout)
        form.addRow("Compile read timeout", self.spinCompileTimeout)

        self.buttonBox = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        lay = QVBoxLayout(self)
        lay.addLayout(form)
        lay.addWidget(self.buttonBox)

        self.buttonBox.accepted.connect(self.accept)
        self.buttonBox.rejected.connect(self.reject)
        self.btnBrowseTheme.clicked.connect(self._browse_theme)

    def _browse_theme(self) -> None:

        path, _ = QFileDialog.getOpenFileName(self, "Select theme.json", "", "JSON Files (*.json);;All Files (*)")
        if path:
            self.editThemePath.setText(path)

    @staticmethod
    def _mode_to_index(mode: str) -> int:

        m = (mode or "").strip().lower()
        if m == "dark":
            return 1
        if m == "light":
            return 2
        return 0

    @staticmethod
    def _index_to_mode(index: int) -> str:

        if index == 1:
            return "dark"
        if index == 2:
            return "light"
        return "auto"

    def set_preferences_state(self, p: PreferencesState) -> None:

        self.comboThemeMode.setCurrentIndex(self._mode_to_index(p.theme_mode))
        self.editThemePath.setText(p.theme_path or "")
        self.spinUIFontPt.setValue(int(p.ui_font_pt))
        self.spinEditorFontPt.setValue(int(p.editor_font_pt))
        self.spinHealthTimeout.setValue(int(p.health_timeout_s))
        self.spinCompileTimeout.setValue(int(p.compile_timeout_s))

    def preferences_state(self) -> PreferencesState:

        return PreferencesState(
            theme_mode=self._index_to_mode(int(self.comboThemeMode.currentIndex())),
            theme_path=(self.editThemePath.text() or "").strip(),
            ui_font_pt=int(self.spinUIFontPt.value()),
            editor_font_pt=int(self.spinEditorFontPt.value()),
            health_timeout_s=int(self.spinHealthTimeout.value()),
            compile_timeout_s=int(self.spinCompileTimeout.value()),
        )


class MainWindow(QMainWindow):

    def __init__(self, theme_mgr: ThemeManager, client: BridgeClient, settings: AppSettings):

        super().__init__()
        self.setWindowTitle("KtEdit")
        self._theme_mgr = theme_mgr
        self._client = client
        self._settings = settings
        self._current_path: Path | None = None

        self._language: LanguageSpec = LANGUAGES[0]
        self._rules: RuleSet | None = rules_for_language(self._language)

        self._session = CompileSession(self)
        self._health_thread: QThread | None = None
        self._health_worker: BridgeHealthWorker | None = None
        self._compile_thread: QThread | None = None
        self._compile_worker: BridgeCompileWorker | None = None

        self._overlay_timer = QTimer(self)
        self._overlay_timer.setSingleShot(True)
        self._overlay_timer.timeout.connect(self._refresh_overlays)

        self._ui_font_pt = 13
        self._editor_font_pt = 12
        mono = choose_mono_font(self._editor_font_pt)

        self.editor = EditorWidget(mono)
        self.editor.setText(KOTLIN_SAMPLE)
        self.find_bar = FindBar()
        self.log_panel = CompileLogPanel(mono)

        central = QWidget()
        lay = QVBoxLayout(central)
        lay.setContentsMargins(6, 6, 6, 6)
        lay.addWidget(self.find_bar)
        lay.addWidget(self.editor, 1)
        self.setCentralWidget(central)

        self.dock_log = QDockWidget("Compilation Output", self)
        self.dock_log.setObjectName("dock_compilation_output")
        self.dock_log.setWidget(self.log_panel)
        self.addDockWidget(Qt.DockWidgetArea.BottomDockWidgetArea, self.dock_log)

        self.status_chip = StatusChip()
        self.stats_label = QLabel("")
        self.statusBar().addPermanentWidget(self.stats_label)
        self.statusBar().addPermanentWidget(self.status_chip)

        self.language_combo = QComboBox()
        self.language_combo.addItems([lang.name for lang in LANGUAGES])

        self._build_actions()

        self._default_geometry = self.saveGeometry()
        self._default_state = self.saveState()

        self._apply_appearance_from_settings()

        self._session.state_changed.connect(self._on_state_changed)
        self._session.connection_changed.connect(lambda *_: self._on_state_changed(self._session.state))
        self._session.line_received.connect(self.log_panel.append_line)
        self._session.diagnostics_changed.connect(lambda *_: self._schedule_overlays())

        self.editor.textChanged.connect(self._on_text_changed)
        self.find_bar.query_changed.connect(self._schedule_overlays)
        self.find_bar.find_next_clicked.connect(self.find_next)
        self.find_bar.replace_clicked.connect(self.replace_one)
        self.find_bar.replace_all_clicked.connect(self.replace_all)
        self.language_combo.currentTextChanged.connect(self._on_language_changed)

        self._theme_mgr.theme_changed.connect(self._on_theme_changed)
        self._on_theme_changed(self._theme_mgr.current_theme())

        self._apply_saved_session()
        self._restore_layout(use_defaults=False)
        self._on_state_changed(self._session.state)
        self._on_text_changed()

    def _build_actions(self) -> None:

        tb = self.addToolBar("Main")
        tb.setObjectName("toolbar_main")
        menu_file = self.menuBar().addMenu("&File")
        menu_edit = self.menuBar().addMenu("&Edit")
        menu_bridge = self.menuBar().addMenu("&Bridge")

        def act(text: str, slot, shortcut: QKeySequence.StandardKey | str | None = None) -> QAction:

            a = QAction(text, self)
            if shortcut is not None:
                a.setShortcut(QKeySequence(shortcut))
            a.triggered.connect(lambda *_: slot())
            return a

        self.actionNew = act("New", self.new_document, QKeySequence.StandardKey.New)
        self.actionOpen = act("Open...", self.open_source_file, QKeySequence.StandardKey.Open)
        self.actionSave = act("Save", self.save_source_file, QKeySequence.StandardKey.Save)
        self.actionSaveAs = act("Save As...", lambda: self.save_source_file(ask=True), QKeySequence.StandardKey.SaveAs)
        self.actionPreferences = act("Preferences...", self.open_preferences)
        self.actionResetSession = act("Reset Layout && Session", self.reset_layout_and_session)
        self.actionQuit = act("Quit", self.close, QKeySequence.StandardKey.Quit)
        for a in (self.actionNew, self.actionOpen, self.actionSave, self.actionSaveAs):
            menu_file.addAction(a)
        menu_file.addSeparator()
        menu_file.addAction(self.actionPreferences)
        menu_file.addAction(self.actionResetSession)
        menu_file.addSeparator()
        menu_file.addAction(self.actionQuit)

        self.actionUndo = act("Undo", self.editor.undo, QKeySequence.StandardKey.Undo)
        self.actionRedo = act("Redo", self.editor.redo, QKeySequence.StandardKey.Redo)
        self.actionCut = act("Cut", self.editor.cut)
        self.actionCopy = act("Copy", self.editor.copy)
        self.actionPaste = act("Paste", self.editor.paste)
        self.actionFind = act("Find", self.find_bar.find_edit.setFocus, QKeySequence.StandardKey.Find)
        for a in (self.actionUndo, self.actionRedo, self.actionCut, self.actionCopy, self.actionPaste, self.actionFind):
            menu_edit.addAction(a)

        self.actionConnect = act("Connect (ADB)", self.connect_bridge)
        self.actionCompile = act("Compile", self.start_compile, "Ctrl+B")
        menu_bridge.addAction(self.actionConnect)
        menu_bridge.addAction(self.actionCompile)

        for a in (self.actionNew, self.actionOpen, self.actionSave):
            tb.addAction(a)
        tb.addSeparator()
        tb.addWidget(self.language_combo)
        tb.addSeparator()
        tb.addAction(self.actionConnect)
        tb.addAction(self.actionCompile)

    def _apply_appearance_from_settings(self) -> None:

        p = _load_preferences_state(self._settings, default_ui_pt=self._ui_font_pt, default_editor_pt=self._editor_font_pt)

        self._theme_mgr.set_mode(str(p.theme_mode or "auto"))
        wanted = Path(p.theme_path).expanduser() if p.theme_path.strip() else None
        if wanted is not None and wanted != self._theme_mgr.path:
            try:
                self._theme_mgr.set_theme_path(wanted)
            except ConfigLoadError as e:
                LOG.warning("Keeping current theme: %s", e)
                self.statusBar().showMessage(f"Theme load failed: {e}", 7000)

        self._ui_font_pt = int(p.ui_font_pt)
        self._editor_font_pt = int(p.editor_font_pt)
        self._client.health_timeout_s = float(p.health_timeout_s)
        self._client.compile_timeout_s = float(p.compile_timeout_s)

        app = QApplication.instance()
        if app is not None:
            f = app.font()
            f.setPointSize(self._ui_font_pt)
            app.setFont(f)

        mono = choose_mono_font(self._editor_font_pt)
        self.editor.set_mono_font(mono)
        self.log_panel.set_mono_font(mono)
        self._on_theme_changed(self._theme_mgr.current_theme())

    def open_preferences(self) -> None:

        dlg = PreferencesDialog(self)
        dlg.set_preferences_state(
            _load_preferences_state(self._settings, default_ui_pt=self._ui_font_pt, default_editor_pt=self._editor_font_pt)
        )
        if dlg.exec() != QDialog.DialogCode.Accepted:
            return
        _save_preferences_state(self._settings, dlg.preferences_state())
        self._apply_appearance_from_settings()

    def _on_theme_changed(self, theme: Theme) -> None:

        self.editor.apply_theme(theme)
        self.log_panel.set_error_color(theme.log_error)
        self._refresh_overlays()

    def changeEvent(self, event):

        if event.type() in (QEvent.Type.PaletteChange, QEvent.Type.ApplicationPaletteChange):
            self._theme_mgr.refresh()
        super().changeEvent(event)

    # Highlighting

    def _on_language_changed(self, name: str) -> None:

        lang = language_for_name(name)
        if lang == self._language:
            return
        self._language = lang
        self._rules = rules_for_language(lang)
        if lang.rules_file is not None and self._rules is None:
            self.statusBar().showMessage(f"No highlighting rules for {lang.name}; showing plain text", 7000)
        self.editor.set_rules(self._rules, builtin=lang.rules_file is None)
        self._schedule_overlays()

    def _on_text_changed(self) -> None:

        self.stats_label.setText(text_stats(self.editor.text()).label())
        self._schedule_overlays()

    def _schedule_overlays(self) -> None:

        self._overlay_timer.start(80)

    def _refresh_overlays(self) -> None:

        text = self.editor.text()
        styled = compose(
            text,
            self._rules,
            builtin=self._language.rules_file is None,
            query=self.find_bar.query(),
            case_sensitive=self.find_bar.case_sensitive(),
            whole_word=self.find_bar.whole_word(),
            error_lines=self._session.error_lines(),
        )
        self.editor.apply_overlays(styled)

    # Find / replace

    def _pattern(self):

        return search_pattern(self.find_bar.query(), self.find_bar.case_sensitive(), self.find_bar.whole_word())

    def find_next(self) -> None:

        rx = self._pattern()
        if rx is None:
            return
        _, sel_end = self.editor.selection_chars()
        hit = find_next(self.editor.text(), rx, sel_end)
        if hit is None:
            self.statusBar().showMessage("No matches", 3000)
            return
        self.editor.select_chars(*hit)

    def replace_one(self) -> None:

        sel_start, sel_end = self.editor.selection_chars()
        res = replace_selection(self.editor.text(), sel_start, sel_end, self._pattern(), self.find_bar.replacement())
        if res is None:
            return
        _, new_start, _ = res
        self.editor.replaceSelectedText(self.find_bar.replacement())
        self.editor.select_chars(new_start, new_start + len(self.find_bar.replacement()))

    def replace_all(self) -> None:

        new_text, count = replace_all(self.editor.text(), self._pattern(), self.find_bar.replacement())
        if count:
            self.editor.replace_document(new_text)
            self.editor.select_chars(0, 0)
        self.statusBar().showMessage(f"Replaced {count} occurrence(s)", 4000)

    # Bridge

    def connect_bridge(self) -> None:

        if self._health_thread is not None or not self._session.begin_connect():
            return

        worker = self._health_worker = BridgeHealthWorker(self._client)
        self._session.attach_health_worker(worker)
        self._health_thread = run_in_thread(
            worker, (worker.connected, worker.failed), self, on_finished=self._on_health_thread_finished
        )

    def _on_health_thread_finished(self) -> None:

        self._health_thread = None
        self._health_worker = None

    def start_compile(self) -> None:

        if self._compile_thread is not None or not self._session.begin_compile():
            return

        self.log_panel.clear_log()
        worker = self._compile_worker = BridgeCompileWorker(self._client, self._language.compile_filename, self.editor.text())
        self._session.attach_compile_worker(worker)
        self._compile_thread = run_in_thread(
            worker, (worker.finished,), self, on_finished=self._on_compile_thread_finished
        )

    def _on_compile_thread_finished(self) -> None:

        self._compile_thread = None
        self._compile_worker = None

    def _on_state_changed(self, state: CompileState) -> None:

        label, color = status_label(state, self._session.connected)
        self.status_chip.set_status(label, color)
        self.log_panel.set_result(result_text(state), color)
        self.actionCompile.setEnabled(self._session.can_compile())

    # Files and session

    def new_document(self) -> None:

        self.editor.replace_document("")
        self._current_path = None
        self.setWindowTitle("KtEdit")

    def _suggest_open_source_path(self) -> str:

        v = self._settings.get_value(AppSettings.K_LAST_OPEN_PATH, "")
        if not isinstance(v, str) or not v.strip():
            return ""
        p = Path(v).expanduser()
        if p.exists():
            return str(p)
        if p.parent.exists() and p.parent.is_dir():
            return str(p.parent)
        return ""

    def open_source_file(self) -> None:

        path_str, _ = QFileDialog.getOpenFileName(
            self,
            "Open source file",
            self._suggest_open_source_path(),
            self._language.file_filter,
        )
        if not path_str:
            return

        path = Path(path_str).expanduser()
        try:
            data = path.read_bytes()
            if len(data) > 5_000_000:
                raise ValueError("File is too large to load into the editor (> 5 MB).")
            text, enc = decode_text_file_for_editor(data)
        except Exception as e:
            LOG.exception("Failed to open source file: %s", path)
            QMessageBox.critical(self, "Open failed", f"Could not open:\n{path}\n\n{e}")
            self.statusBar().showMessage("Open failed", 7000)
            return

        self._current_path = path
        self._settings.set_value(AppSettings.K_LAST_OPEN_PATH, str(path))
        self.editor.replace_document(text)
        self.setWindowTitle(f"KtEdit — {path.name}")
        self.statusBar().showMessage(f"Loaded {path.name} ({enc}, {len(text)} chars)", 6000)

    def save_source_file(self, ask: bool = False) -> None:

        path = self._current_path
        if path is None or ask:
            start = str(path) if path is not None else self._language.save_suggestion
            path_str, _ = QFileDialog.getSaveFileName(self, "Save source file", start, self._language.file_filter)
            if not path_str:
                return
            path = Path(path_str).expanduser()

        try:
            path.write_text(self.editor.text(), encoding="utf-8")
        except OSError as e:
            LOG.exception("Failed to save source file: %s", path)
            QMessageBox.critical(self, "Save failed", f"Could not save:\n{path}\n\n{e}")
            return

        self._current_path = path
        self._settings.set_value(AppSettings.K_LAST_OPEN_PATH, str(path))
        self.setWindowTitle(f"KtEdit — {path.name}")
        self.statusBar().showMessage(f"Saved {path.name}", 4000)

    def _apply_saved_session(self) -> None:

        s = _load_session_state(self._settings)
        if s.editor_text:
            self.editor.setText(s.editor_text)
        if s.current_path:
            self._current_path = Path(s.current_path)
            self.setWindowTitle(f"KtEdit — {self._current_path.name}")
        self.find_bar.set_options(s.find_text, s.find_case_sensitive, s.find_whole_word)
        self.language_combo.setCurrentText(s.language)

    def _save_session_values(self) -> None:

        _save_session_state(
            self._settings,
            SessionState(
                editor_text=self.editor.text(),
                current_path=str(self._current_path or ""),
                language=self._language.name,
                find_text=self.find_bar.query(),
                find_case_sensitive=self.find_bar.case_sensitive(),
                find_whole_word=self.find_bar.whole_word(),
            ),
        )
        LOG.debug("Saved session editor_len=%d language=%s", len(self.editor.text()), self._language.name)

    def _save_layout_now(self) -> None:

        self._settings.set_value(AppSettings.K_GEOMETRY, self.saveGeometry())
        self._settings.set_value(AppSettings.K_STATE, self.saveState())

    def _restore_layout(self, use_defaults: bool) -> None:

        if use_defaults:
            self.restoreGeometry(self._default_geometry)
            self.restoreState(self._default_state)
            return

        geom = self._settings.get_value(AppSettings.K_GEOMETRY)
        st = self._settings.get_value(AppSettings.K_STATE)
        if geom is not None:
            self.restoreGeometry(geom)
        if st is not None:
            self.restoreState(st)

    def reset_layout_and_session(self) -> None:

        self._settings.reset_all()
        self._restore_layout(use_defaults=True)
        self.editor.replace_document(KOTLIN_SAMPLE)
        self._current_path = None
        self.find_bar.set_options("", False, False)
        self.language_combo.setCurrentText(LANGUAGES[0].name)
        self.setWindowTitle("KtEdit")
        self.statusBar().showMessage("Reset", 5000)

    def closeEvent(self, event):

        for th in (self._health_thread, self._compile_thread):
            if th is not None and th.isRunning():
                th.quit()
                th.wait(2000)

        self._save_layout_now()
        self._save_session_values()
        self._settings.sync()
        super().closeEvent(event)


def main():
    """Run the Qt application."""
    setup_logging()
    app = QApplication(sys.argv)

    settings = AppSettings()
    prefs = _load_preferences_state(settings, default_ui_pt=13, default_editor_pt=12)
    f = app.font()
    f.setPointSize(_clamp_int(prefs.ui_font_pt, 13, 8, 28))
    app.setFont(f)

    theme_mgr = ThemeManager(Path(__file__).with_name("theme.json"), mode=prefs.theme_mode)
    client = BridgeClient(health_timeout_s=prefs.health_timeout_s, compile_timeout_s=prefs.compile_timeout_s)

    w = MainWindow(theme_mgr, client, settings)
    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
