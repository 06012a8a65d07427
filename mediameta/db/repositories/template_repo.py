from __future__ import annotations
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from mediameta.db.models import Template, Category


class TemplateRepo:
    """Low-level data access for templates."""

    # ---------- reads ----------
    def get(self, s: Session, template_id: int) -> Optional[Template]:
        return s.get(Template, template_id)

    def list(self, s: Session) -> list[Template]:
        return list(s.execute(select(Template).order_by(Template.name, Template.id)).scalars().all())

    def category_count(self, s: Session, template_id: int) -> int:
        """ Number of categories bound to the template. """
        return s.execute(
            select(func.count()).select_from(Category).where(Category.template_id == template_id)
        ).scalar_one()

    # ---------- writes ----------
    def create(self, s: Session, name: str, fields_json: str) -> Template:
        t = Template(name=name, fields_json=fields_json)
        s.add(t)
        s.flush()
        return t

    def update(self, s: Session, template: Template, *, name: str | None = None,
               fields_json: str | None = None) -> Template:
        if name is not None:
            template.name = name
        if fields_json is not None:
            template.fields_json = fields_json
        s.flush()
        return template

    def delete(self, s: Session, template: Template) -> None:
        s.delete(template)
        s.flush()
