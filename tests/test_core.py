import logging

import pytest
from PySide6.QtCore import QSettings

from mediameta.core import config
from mediameta.core.batch import BatchResult, run
from mediameta.core.logging_setup import configure_logging


def test_run_collects_per_item_outcomes(caplog):
    def half(n):
        if n == 0:
            raise ZeroDivisionError("zero")
        return 10 // n

    result = run([5, 0, 2], half, label="number")

    assert result.succeeded == [2, 5]
    assert [f.item for f in result.failed] == [0]
    assert not result.ok
    assert result.summary() == "2 succeeded, 1 failed"
    assert "number 0 failed" in caplog.text


def test_empty_batch_is_ok():
    assert BatchResult().ok


@pytest.fixture()
def ini_settings(tmp_path, monkeypatch):
    path = str(tmp_path / "settings.ini")
    monkeypatch.setattr(config, "_s", lambda: QSettings(path, QSettings.IniFormat))


def test_config_round_trip(ini_settings):
    cfg = config.load_config()
    assert cfg.vision_model == config.DEFAULT_VISION_MODEL
    assert cfg.user.groups == []

    cfg.last_db_path = "/tmp/library.db"
    cfg.log_level = "DEBUG"
    cfg.user.name = "ari"
    cfg.user.groups = ["ADMINS"]
    cfg.ui.geometry["main"] = "abcd"
    config.save_config(cfg)

    again = config.load_config()
    assert again.last_db_path == "/tmp/library.db"
    assert again.log_level == "DEBUG"
    assert again.user.name == "ari"
    assert again.user.groups == ["ADMINS"]
    assert again.ui.geometry == {"main": "abcd"}


def test_config_has_no_api_key_field():
    assert not any("key" in name for name in config.Config.model_fields)


def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    before = len(root.handlers)
    configure_logging("debug")
    configure_logging("WARNING")
    assert len(root.handlers) <= before + 1
    assert root.level == logging.WARNING
    configure_logging("nonsense")
    assert root.level == logging.INFO
