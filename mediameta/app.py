from __future__ import annotations

import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from PySide6.QtCore import QByteArray, QCoreApplication
from PySide6.QtWidgets import QApplication

from .core.config import APP, ORG, load_config, save_config
from .core.identity import LocalIdentityProvider
from .core.logging_setup import configure_logging
from .db.manager import DatabaseManager
from .storage import DatabaseObjectStore
from .ui.main_window import MainWindow

log = logging.getLogger(__name__)

DEFAULT_DB = Path.home() / "MediaMetadata" / "library.db"


def main() -> None:
    app = QApplication(sys.argv)
    # Set QSettings identity BEFORE any settings access
    QCoreApplication.setOrganizationName(ORG)
    QCoreApplication.setApplicationName(APP)
    try:
        QCoreApplication.setApplicationVersion(version("mediameta"))
    except PackageNotFoundError:
        pass

    # Load user prefs (QSettings-backed)
    cfg = load_config()
    configure_logging(cfg.log_level)

    # Open database (last used or default) and remember it
    db = DatabaseManager()
    db_path = Path(cfg.last_db_path if cfg.last_db_path else DEFAULT_DB)
    db.open(db_path, create_if_missing=True)
    cfg.last_db_path = str(db_path)

    identity = LocalIdentityProvider(cfg)
    store = DatabaseObjectStore(db)

    win = MainWindow(cfg=cfg, dbm=db, store=store, identity=identity)
    if cfg.ui.geometry.get("main"):
        win.restoreGeometry(QByteArray.fromHex(cfg.ui.geometry["main"].encode("ascii")))
    win.show()

    # Persist settings on quit
    def persist():
        cfg.last_db_path = str(db.path) if db.path else cfg.last_db_path
        cfg.ui.geometry["main"] = bytes(win.saveGeometry().toHex()).decode("ascii")
        save_config(cfg)

    app.aboutToQuit.connect(persist)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
