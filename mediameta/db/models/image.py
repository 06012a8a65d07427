from __future__ import annotations
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mediameta.schema import parse_metadata
from .mixins import Base, TimestampMixin


class Image(TimestampMixin, Base):
    """ One stored asset (still or short video). The bytes live in the object store under storage_key. """
    __tablename__ = "image"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    storage_key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    bytes_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    width_px: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height_px: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("category.id", ondelete="RESTRICT"), nullable=False
    )
    metadata_json: Mapped[str] = mapped_column("metadata", Text, nullable=False, default="{}")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    category: Mapped["Category"] = relationship(back_populates="images")

    __table_args__ = (
        Index("idx_image_category_seq", "category_id", "sequence"),
    )

    @property
    def metadata_values(self) -> dict[str, Any]:
        return parse_metadata(self.metadata_json)

    @property
    def is_video(self) -> bool:
        return bool(self.mime_type and self.mime_type.startswith("video/"))

    def __repr__(self) -> str:
        return f"<Image id={self.id} key='{self.storage_key}' seq={self.sequence} active={self.is_active}>"
