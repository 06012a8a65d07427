from __future__ import annotations
from typing import Optional

from sqlalchemy import Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column, deferred
from sqlalchemy.types import JSON

from .mixins import Base, TimestampMixin


class StoredObject(TimestampMixin, Base):
    """
    Object-store payloads keyed by storage key.
    Use deferred() so listings don't fetch large blobs unless explicitly accessed.
    """
    __tablename__ = "stored_object"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    content_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    bytes_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    data: Mapped[bytes] = deferred(
        mapped_column(LargeBinary, nullable=False)
    )

    def __repr__(self) -> str:
        return f"<StoredObject key='{self.key}' size={self.bytes_size}>"
