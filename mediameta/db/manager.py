from __future__ import annotations

import logging
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

log = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _sqlite_url(path: Path) -> str:
    p = path.resolve()
    return f"sqlite:///{p.as_posix()}"


def _apply_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, conn_rec):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys = ON;")
        cur.execute("PRAGMA journal_mode = WAL;")
        cur.execute("PRAGMA synchronous = NORMAL;")
        cur.execute("PRAGMA temp_store = MEMORY;")
        cur.close()


def _alembic_cfg(db_url: str) -> Config:
    """Programmatic config; the migrations ship inside the package so no alembic.ini is needed at runtime."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def _is_empty(db_path: Path) -> bool:
    with sqlite3.connect(db_path) as con:
        cur = con.execute(
            "SELECT count(*) FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )
        return cur.fetchone()[0] == 0


def _backup_db_file(path: Path) -> Path | None:
    """Create a timestamped backup beside the DB. Returns backup path or None."""
    if not path.exists():
        return None
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = path.with_suffix(path.suffix + f".bak.{ts}")
    shutil.copy2(path, backup_path)
    return backup_path


def _ensure_upgraded(db_path: Path, *, do_backup: bool = True) -> None:
    """Ensure SQLite DB at db_path is migrated to Alembic 'head'.

    - Brand-new or empty file: build the schema, no backup.
    - Already at head: nothing to do.
    - Unversioned but populated: stamp to head.
    - Behind: backup, then upgrade.
    """
    db_url = _sqlite_url(db_path)
    cfg = _alembic_cfg(db_url)
    script = ScriptDirectory.from_config(cfg)

    if not db_path.exists() or _is_empty(db_path):
        log.info("Creating schema in %s", db_path)
        command.upgrade(cfg, "head")
        return

    engine = create_engine(db_url, future=True)
    try:
        with engine.connect() as conn:
            current_rev = MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()

    heads = set(script.get_heads())

    if current_rev is None:
        log.info("Stamping unversioned database %s to head", db_path)
        command.stamp(cfg, "head")
        return

    if current_rev in heads:
        return

    if do_backup:
        backup = _backup_db_file(db_path)
        log.info("Backed up %s to %s before migrating", db_path, backup)
    command.upgrade(cfg, "head")


class DatabaseManager:
    """
    Holds the current SQLAlchemy engine and session factory for the app.
    Call .open(path) at startup or when user chooses a file. Constructed once in app.main and
    handed to every service that needs it.
    """

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._Session: Optional[sessionmaker[Session]] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._Session is not None

    def open(self, path: Path, *, create_if_missing: bool = True) -> None:
        if not create_if_missing and not path.exists():
            raise FileNotFoundError(f"Database not found: {path}")
        _ensure_parent_dir(path)

        # Always ensure schema is current before Engine/Session creation.
        _ensure_upgraded(path, do_backup=True)

        url = _sqlite_url(path)
        engine = create_engine(url, future=True)
        _apply_sqlite_pragmas(engine)

        # Swap in atomically
        self.dispose()
        self._engine = engine
        self._Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
        self._path = path
        log.info("Opened database %s", path)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._Session = None
        self._path = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context-managed session for transactional work."""
        if self._Session is None:
            raise RuntimeError("Database not opened. Call DatabaseManager.open() first.")
        s = self._Session()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()
