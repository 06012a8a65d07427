from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field
from PySide6.QtCore import QSettings

# QSettings scope
ORG = "PersonalApps"
APP = "Media Metadata"

DEFAULT_VISION_MODEL = "gpt-4o-mini"


class UIState(BaseModel):
    geometry: dict = Field(default_factory=dict)
    splitterSizes: dict = Field(default_factory=dict)


class UserState(BaseModel):
    name: str = ""
    groups: list[str] = Field(default_factory=list)


class Config(BaseModel):
    """ Persisted settings. The vision API key is deliberately not a field here. """
    ui: UIState = Field(default_factory=UIState)
    last_db_path: str = ""
    log_level: str = "INFO"
    vision_model: str = DEFAULT_VISION_MODEL
    user: UserState = Field(default_factory=UserState)


def _s() -> QSettings:
    return QSettings(ORG, APP)


def _read_json(s: QSettings, key: str, default: Any) -> Any:
    raw = s.value(key, "")
    if isinstance(raw, (dict, list)):
        return raw  # some backends can store native types
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _write_json(s: QSettings, key: str, obj: dict | list) -> None:
    s.setValue(key, json.dumps(obj, ensure_ascii=False))


def load_config() -> Config:
    s = _s()

    # --- UI ---
    s.beginGroup("ui")
    geometry = _read_json(s, "geometry", {})
    splitter_sizes = _read_json(s, "splitterSizes", {})
    s.endGroup()

    # --- Database ---
    s.beginGroup("db")
    last_db_path = str(s.value("last_path", "", str))
    s.endGroup()

    # --- App ---
    s.beginGroup("app")
    log_level = str(s.value("log_level", "INFO", str))
    vision_model = str(s.value("vision_model", DEFAULT_VISION_MODEL, str)) or DEFAULT_VISION_MODEL
    s.endGroup()

    # --- User ---
    s.beginGroup("user")
    user_name = str(s.value("name", "", str))
    user_groups = _read_json(s, "groups", [])
    s.endGroup()

    return Config(
        ui=UIState(geometry=geometry, splitterSizes=splitter_sizes),
        last_db_path=last_db_path,
        log_level=log_level,
        vision_model=vision_model,
        user=UserState(name=user_name, groups=list(user_groups) if isinstance(user_groups, list) else []),
    )


def save_config(cfg: Config) -> None:
    s = _s()

    # --- UI ---
    s.beginGroup("ui")
    _write_json(s, "geometry", dict(cfg.ui.geometry))
    _write_json(s, "splitterSizes", dict(cfg.ui.splitterSizes))
    s.endGroup()

    # --- Database ---
    s.beginGroup("db")
    s.setValue("last_path", cfg.last_db_path)
    s.endGroup()

    # --- App ---
    s.beginGroup("app")
    s.setValue("log_level", cfg.log_level)
    s.setValue("vision_model", cfg.vision_model)
    s.endGroup()

    # --- User ---
    s.beginGroup("user")
    s.setValue("name", cfg.user.name)
    _write_json(s, "groups", list(cfg.user.groups))
    s.endGroup()
