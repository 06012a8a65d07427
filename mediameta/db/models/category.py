from __future__ import annotations
from typing import List

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .mixins import Base, TimestampMixin


class Category(TimestampMixin, Base):
    __tablename__ = "category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("template.id", ondelete="RESTRICT"), nullable=False
    )

    template: Mapped["Template"] = relationship(back_populates="categories")
    images: Mapped[List["Image"]] = relationship(
        back_populates="category",
        passive_deletes="all",
        order_by="Image.sequence",
    )

    __table_args__ = (
        Index("idx_category_template", "template_id"),
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} name='{self.name}' template={self.template_id}>"
