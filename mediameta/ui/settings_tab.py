from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QComboBox, QFileDialog, QFormLayout, QGroupBox, QHBoxLayout, QLabel, QLineEdit, QMessageBox, QPushButton,
    QVBoxLayout, QWidget,
)

from mediameta.core.config import Config, DEFAULT_VISION_MODEL
from mediameta.core.logging_setup import configure_logging
from mediameta.db.manager import DatabaseManager
from mediameta.vision import VisionClient

log = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


class DatabaseSelectorWidget(QWidget):
    """Settings section for selecting/creating a database file.

    Signals
    -------
    databaseSelected(str): emitted after user picks an existing DB file.
    databaseCreated(str):  emitted after user defines a new DB file to create.
    """
    databaseSelected = Signal(str)
    databaseCreated = Signal(str)

    FILE_FILTER = "SQLite Databases (*.db *.sqlite *.sqlite3);;All Files (*)"

    def __init__(self, parent: QWidget | None = None, *, show_create_button: bool = True):
        super().__init__(parent)

        self._current_path_edit = QLineEdit(self)
        self._current_path_edit.setReadOnly(True)
        self._current_path_edit.setPlaceholderText("No database selected")

        self._btn_change = QPushButton("Change…", self)
        self._btn_change.clicked.connect(self._on_change_clicked)

        self._btn_new = QPushButton("New…", self)
        self._btn_new.clicked.connect(self._on_new_clicked)
        self._btn_new.setVisible(show_create_button)

        row = QHBoxLayout(self)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(QLabel("Current Database:", self))
        row.addWidget(self._current_path_edit, stretch=1)
        row.addWidget(self._btn_change)
        if show_create_button:
            row.addWidget(self._btn_new)

    # --- Public API --------------------------------------------------------

    def set_current_path(self, path: str | Path | None) -> None:
        """Update the displayed path (does not emit signals)."""
        if not path:
            self._current_path_edit.clear()
            return
        self._current_path_edit.setText(str(Path(path)))

    def current_path(self) -> str:
        return self._current_path_edit.text().strip()

    # --- Slots -------------------------------------------------------------

    def _start_dir(self) -> str:
        return str(Path(self.current_path()).parent) if self.current_path() else ""

    def _on_change_clicked(self) -> None:
        fname, _ = QFileDialog.getOpenFileName(self, "Open Database", self._start_dir(), self.FILE_FILTER)
        if not fname:
            return
        p = Path(fname)
        if not p.is_file():
            QMessageBox.warning(self, "Invalid File", "Please select an existing database file.")
            return
        self.set_current_path(p)
        self.databaseSelected.emit(str(p))

    def _on_new_clicked(self) -> None:
        fname, _ = QFileDialog.getSaveFileName(self, "Create New Database", self._start_dir(), self.FILE_FILTER)
        if not fname:
            return
        p = Path(fname)
        if p.exists():
            QMessageBox.warning(self, "File Exists", f"“{p.name}” already exists. Use Change… to open it.")
            return
        # The manager creates the file and runs the migrations.
        self.set_current_path(p)
        self.databaseCreated.emit(str(p))


class SettingsTab(QWidget):
    """ Database file, vision call-out and logging. The API key stays in memory for this session only. """
    reloadedDatabase = Signal()

    def __init__(self, dbm: DatabaseManager, cfg: Config) -> None:
        super().__init__()
        self._dbm = dbm
        self._cfg = cfg

        root = QVBoxLayout(self)

        # Database
        grp_db = QGroupBox("Database")
        form = QFormLayout(grp_db)
        self.db_section = DatabaseSelectorWidget(self, show_create_button=True)
        self.db_section.set_current_path(self._dbm.path)
        self.db_section.databaseSelected.connect(self._on_db_selected)
        self.db_section.databaseCreated.connect(self._on_db_created)
        form.addRow(self.db_section)
        root.addWidget(grp_db)

        # Vision
        grp_vision = QGroupBox("Vision Auto-fill")
        form = QFormLayout(grp_vision)
        self.api_key_edit = QLineEdit()
        self.api_key_edit.setEchoMode(QLineEdit.Password)
        self.api_key_edit.setPlaceholderText("Not saved; needed again after restart")
        form.addRow("API key", self.api_key_edit)
        self.model_edit = QLineEdit(cfg.vision_model or DEFAULT_VISION_MODEL)
        self.model_edit.editingFinished.connect(self._on_model_changed)
        form.addRow("Model", self.model_edit)
        root.addWidget(grp_vision)

        # Logging
        grp_log = QGroupBox("Logging")
        form = QFormLayout(grp_log)
        self.level_box = QComboBox()
        self.level_box.addItems(LOG_LEVELS)
        self.level_box.setCurrentText(cfg.log_level if cfg.log_level in LOG_LEVELS else "INFO")
        self.level_box.currentTextChanged.connect(self._on_level_changed)
        form.addRow("Level", self.level_box)
        root.addWidget(grp_log)

        root.addStretch(1)

    # --- Public API --------------------------------------------------------

    def vision_client(self) -> Optional[VisionClient]:
        key = self.api_key_edit.text().strip()
        if not key:
            return None
        return VisionClient(key, self._cfg.vision_model or DEFAULT_VISION_MODEL)

    # --- Slots -------------------------------------------------------------

    def _on_model_changed(self) -> None:
        self._cfg.vision_model = self.model_edit.text().strip() or DEFAULT_VISION_MODEL

    def _on_level_changed(self, level: str) -> None:
        self._cfg.log_level = level
        configure_logging(level)

    def _on_db_selected(self, path: str) -> None:
        if self._dbm.path is not None and Path(path) == self._dbm.path:
            return
        self._dbm.dispose()
        self._dbm.open(Path(path), create_if_missing=False)
        self._cfg.last_db_path = path
        self.reloadedDatabase.emit()

    def _on_db_created(self, path: str) -> None:
        self._dbm.dispose()
        self._dbm.open(Path(path), create_if_missing=True)
        self._cfg.last_db_path = path
        self.reloadedDatabase.emit()
