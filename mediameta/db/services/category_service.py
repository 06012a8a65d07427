from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from mediameta.core.identity import Permissions
from mediameta.db.manager import DatabaseManager
from mediameta.db.models import Category
from mediameta.db.repositories import CategoryRepo, TemplateRepo

from .template_service import TemplateNotFound

log = logging.getLogger(__name__)


# Domain errors
class CategoryNotFound(Exception): ...


class CategoryInUse(Exception):
    def __init__(self, name: str, count: int):
        self.name = name
        self.count = count
        super().__init__(f"Category '{name}' is used by {count} image(s)")


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Category name must not be empty")
    return name


class CategoryService:
    def __init__(self, db: DatabaseManager, permissions: Optional[Permissions] = None):
        self.db = db
        self.permissions = permissions
        self.repo = CategoryRepo()
        self.template_repo = TemplateRepo()

    def _require_admin(self, action: str) -> None:
        if self.permissions is not None:
            self.permissions.require_admin(action)

    def _get(self, s, category_id: int) -> Category:
        c = self.repo.get(s, category_id)
        if c is None:
            raise CategoryNotFound(f"Category {category_id} not found")
        return c

    def _check_template(self, s, template_id: int) -> None:
        if self.template_repo.get(s, template_id) is None:
            raise TemplateNotFound(f"Template {template_id} not found")

    # ---------- reads ----------
    def list_categories(self, template_id: Optional[int] = None) -> list[Category]:
        with self.db.session() as s:
            return self.repo.list(s, template_id)

    def get_category(self, category_id: int) -> Category:
        with self.db.session() as s:
            return self._get(s, category_id)

    def image_counts(self) -> dict[int, int]:
        with self.db.session() as s:
            return self.repo.image_counts(s)

    # ---------- writes ----------
    def create_category(self, name: str, template_id: int) -> int:
        self._require_admin("create categories")
        name = _clean_name(name)
        with self.db.session() as s:
            self._check_template(s, template_id)
            c = self.repo.create(s, name, template_id)
            log.info("Created category %r (%d) on template %d", name, c.id, template_id)
            return c.id

    def update_category(self, category_id: int, *, name: Optional[str] = None,
                        template_id: Optional[int] = None) -> None:
        self._require_admin("edit categories")
        if name is not None:
            name = _clean_name(name)
        with self.db.session() as s:
            c = self._get(s, category_id)
            if template_id is not None:
                self._check_template(s, template_id)
            self.repo.update(s, c, name=name, template_id=template_id)

    # ---------- referential gate ----------
    def usage_count(self, category_id: int) -> int:
        with self.db.session() as s:
            return self.repo.image_count(s, category_id)

    def can_delete(self, category_id: int) -> bool:
        return self.usage_count(category_id) == 0

    def delete_category(self, category_id: int) -> None:
        """
        Raises
        ------
        CategoryInUse
            while any image references the category, carrying the exact count.
        """
        self._require_admin("delete categories")
        with self.db.session() as s:
            c = self._get(s, category_id)
            name = c.name
            count = self.repo.image_count(s, category_id)
            if count:
                raise CategoryInUse(name, count)
            try:
                self.repo.delete(s, c)
            except IntegrityError as e:
                s.rollback()
                raise CategoryInUse(name, self.repo.image_count(s, category_id)) from e
        log.info("Deleted category %r (%d)", name, category_id)
