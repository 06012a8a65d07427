from __future__ import annotations
from typing import List

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mediameta.schema import FieldDefinition, parse_fields
from .mixins import Base, TimestampMixin


class Template(TimestampMixin, Base):
    """ A named metadata schema. The field tree is kept as a JSON text blob and parsed on every read. """
    __tablename__ = "template"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    fields_json: Mapped[str] = mapped_column("fields", Text, nullable=False, default="[]")

    # Deletion is guarded by ON DELETE RESTRICT; the ORM must not null out the children itself.
    categories: Mapped[List["Category"]] = relationship(
        back_populates="template",
        passive_deletes="all",
        order_by="Category.name",
    )

    @property
    def fields(self) -> list[FieldDefinition]:
        return parse_fields(self.fields_json)

    def __repr__(self) -> str:
        return f"<Template id={self.id} name='{self.name}'>"
