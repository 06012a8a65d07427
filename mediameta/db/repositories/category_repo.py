from __future__ import annotations
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from mediameta.db.models import Category, Image


class CategoryRepo:
    """Low-level data access for categories."""

    # ---------- reads ----------
    def get(self, s: Session, category_id: int) -> Optional[Category]:
        return s.get(Category, category_id)

    def list(self, s: Session, template_id: Optional[int] = None) -> list[Category]:
        stmt = select(Category)
        if template_id is not None:
            stmt = stmt.where(Category.template_id == template_id)
        return list(s.execute(stmt.order_by(Category.name, Category.id)).scalars().all())

    def image_count(self, s: Session, category_id: int) -> int:
        return s.execute(
            select(func.count()).select_from(Image).where(Image.category_id == category_id)
        ).scalar_one()

    def image_counts(self, s: Session) -> dict[int, int]:
        """ Return {category_id: image count}, zero for empty categories. """
        stmt = select(Image.category_id, func.count()).group_by(Image.category_id)
        out = {cid: cnt for cid, cnt in s.execute(stmt).all()}
        for cid in s.execute(select(Category.id)).scalars().all():
            out.setdefault(cid, 0)
        return out

    # ---------- writes ----------
    def create(self, s: Session, name: str, template_id: int) -> Category:
        c = Category(name=name, template_id=template_id)
        s.add(c)
        s.flush()
        return c

    def update(self, s: Session, category: Category, *, name: str | None = None,
               template_id: int | None = None) -> Category:
        if name is not None:
            category.name = name
        if template_id is not None:
            category.template_id = template_id
        s.flush()
        return category

    def delete(self, s: Session, category: Category) -> None:
        s.delete(category)
        s.flush()
