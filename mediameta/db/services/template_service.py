from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError

from mediameta.core.identity import Permissions
from mediameta.db.manager import DatabaseManager
from mediameta.db.models import Template
from mediameta.db.repositories import TemplateRepo
from mediameta.schema import FieldDefinition, dump_fields, validate_fields

log = logging.getLogger(__name__)


# Domain errors
class TemplateNotFound(Exception): ...


class TemplateInUse(Exception):
    def __init__(self, name: str, count: int):
        self.name = name
        self.count = count
        super().__init__(f"Template '{name}' is used by {count} categor{'y' if count == 1 else 'ies'}")


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Template name must not be empty")
    return name


class TemplateService:
    def __init__(self, db: DatabaseManager, permissions: Optional[Permissions] = None):
        self.db = db
        self.permissions = permissions
        self.repo = TemplateRepo()

    def _require_admin(self, action: str) -> None:
        if self.permissions is not None:
            self.permissions.require_admin(action)

    def _get(self, s, template_id: int) -> Template:
        t = self.repo.get(s, template_id)
        if t is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        return t

    # ---------- reads ----------
    def list_templates(self) -> list[Template]:
        with self.db.session() as s:
            return self.repo.list(s)

    def get_template(self, template_id: int) -> Template:
        with self.db.session() as s:
            return self._get(s, template_id)

    def get_fields(self, template_id: int) -> list[FieldDefinition]:
        """ Parsed field tree; a malformed stored blob reads as no fields. """
        with self.db.session() as s:
            return self._get(s, template_id).fields

    # ---------- writes ----------
    def create_template(self, name: str, fields: Sequence[FieldDefinition] = ()) -> int:
        self._require_admin("create templates")
        name = _clean_name(name)
        validate_fields(fields)
        with self.db.session() as s:
            t = self.repo.create(s, name, dump_fields(fields))
            log.info("Created template %r (%d)", name, t.id)
            return t.id

    def update_template(self, template_id: int, *, name: Optional[str] = None,
                        fields: Optional[Sequence[FieldDefinition]] = None) -> None:
        """ Rename and/or replace the whole field sequence. Existing image metadata is left untouched. """
        self._require_admin("edit templates")
        if name is not None:
            name = _clean_name(name)
        if fields is not None:
            validate_fields(fields)
        with self.db.session() as s:
            t = self._get(s, template_id)
            self.repo.update(s, t, name=name, fields_json=dump_fields(fields) if fields is not None else None)

    # ---------- referential gate ----------
    def usage_count(self, template_id: int) -> int:
        with self.db.session() as s:
            return self.repo.category_count(s, template_id)

    def can_delete(self, template_id: int) -> bool:
        return self.usage_count(template_id) == 0

    def delete_template(self, template_id: int) -> None:
        """
        Raises
        ------
        TemplateInUse
            while any category references the template. Checked first, and enforced again by the
            RESTRICT foreign key in case a category was added in between.
        """
        self._require_admin("delete templates")
        with self.db.session() as s:
            t = self._get(s, template_id)
            name = t.name
            count = self.repo.category_count(s, template_id)
            if count:
                raise TemplateInUse(name, count)
            try:
                self.repo.delete(s, t)
            except IntegrityError as e:
                s.rollback()
                raise TemplateInUse(name, self.repo.category_count(s, template_id)) from e
        log.info("Deleted template %r (%d)", name, template_id)
