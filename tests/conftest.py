import os
from contextlib import contextmanager
from io import BytesIO

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PIL import Image as PILImage
from PySide6.QtWidgets import QInputDialog, QMessageBox
from sqlalchemy import event, Engine, create_engine
from sqlalchemy.orm import sessionmaker

from mediameta.db.manager import DatabaseManager
from mediameta.db.models import Base, Template, Category, Image
from mediameta.schema import dump_fields, make_field
from mediameta.storage import DatabaseObjectStore


# --- SQLite tuning for tests --------------------------------------------------
@event.listens_for(Engine, "connect")
def _sqlite_enable_fk(dbapi_connection, _):
    # RESTRICT foreign keys only fire with this on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


# --- Database Fixtures -----------------------------------------------------------------
@pytest.fixture()
def session():
    """Fresh session per test."""
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, future=True, expire_on_commit=False)
    with session() as s:
        yield s
        s.rollback()  # clean even if the test forgot


@pytest.fixture()
def dbm(session, monkeypatch):
    """ A DatabaseManager whose sessions are all the test session. """
    @contextmanager
    def fake_session(self):
        yield session

    monkeypatch.setattr(DatabaseManager, "session", fake_session)
    return DatabaseManager()


@pytest.fixture()
def store(dbm):
    now = {"t": 1_700_000_000.0}
    st = DatabaseObjectStore(dbm, secret=b"test-secret", clock=lambda: now["t"])
    st.now = now  # tests move the clock through this
    return st


# --- Helper fixtures for creating rows ----------------------------------------
@pytest.fixture()
def product_fields():
    return [
        make_field("weight", "number"),
        make_field("specs", "group", children=[
            make_field("color", "select", options=["red", "blue"]),
            make_field("notes", "text"),
        ]),
    ]


@pytest.fixture()
def make_template(session):
    def _mk(name: str = "Product", fields=()) -> Template:
        t = Template(name=name, fields_json=dump_fields(list(fields)))
        session.add(t)
        session.flush()
        return t

    return _mk


@pytest.fixture()
def make_category(session):
    def _mk(name: str, template: Template) -> Category:
        c = Category(name=name, template_id=template.id)
        session.add(c)
        session.flush()
        return c

    return _mk


@pytest.fixture()
def make_image(session):
    def _mk(category: Category, file_name: str = "a.png", *, sequence: int = 0, metadata_json: str = "{}",
            is_active: bool = True) -> Image:
        img = Image(category_id=category.id, storage_key=f"media-files/{category.name}/{sequence}-{file_name}",
                    file_name=file_name, mime_type="image/png", bytes_size=0, metadata_json=metadata_json,
                    is_active=is_active, sequence=sequence)
        session.add(img)
        session.flush()
        return img

    return _mk


@pytest.fixture()
def png_bytes():
    def _png(w: int = 20, h: int = 12, color=(0, 128, 0)) -> bytes:
        buf = BytesIO()
        PILImage.new("RGB", (w, h), color).save(buf, format="PNG")
        return buf.getvalue()

    return _png


# --- UI patching fixtures ------------------
@pytest.fixture()
def set_dialog_text(monkeypatch):
    """ Set the text for the next item in the dialog entry box. """

    def set_text(name):
        def get_text_cycle(*args, **kwargs):
            return name, True

        monkeypatch.setattr(QInputDialog, "getText", staticmethod(get_text_cycle))

    return set_text


@pytest.fixture()
def warnings_shown(monkeypatch):
    """ Collect QMessageBox.warning calls instead of showing them; questions answer Yes. """
    shown = []
    monkeypatch.setattr(QMessageBox, "warning", staticmethod(lambda parent, title, text, *a, **k: shown.append(text)))
    monkeypatch.setattr(QMessageBox, "information",
                        staticmethod(lambda parent, title, text, *a, **k: shown.append(text)))
    monkeypatch.setattr(QMessageBox, "question", staticmethod(lambda *a, **k: QMessageBox.Yes))
    return shown
