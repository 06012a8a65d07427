from __future__ import annotations
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from mediameta.db.models import Image


class ImageRepo:
    def get(self, s: Session, image_id: int) -> Image | None:
        return s.get(Image, image_id)

    def list_for_category(self, s: Session, category_id: int, *, active_only: bool = False) -> list[Image]:
        stmt = select(Image).where(Image.category_id == category_id)
        if active_only:
            stmt = stmt.where(Image.is_active.is_(True))
        return list(s.execute(stmt.order_by(Image.sequence, Image.id)).scalars().all())

    def next_sequence(self, s: Session, category_id: int) -> int:
        max_seq = s.execute(
            select(Image.sequence).where(Image.category_id == category_id).order_by(Image.sequence.desc())
        ).scalars().first()
        return (max_seq if max_seq is not None else -1) + 1

    def create(self, s: Session, *, category_id: int, storage_key: str, file_name: str, mime: Optional[str],
               size: int, width: Optional[int], height: Optional[int], metadata_json: str,
               is_active: bool, sequence: int) -> Image:
        img = Image(category_id=category_id, storage_key=storage_key, file_name=file_name, mime_type=mime,
                    bytes_size=size, width_px=width, height_px=height, metadata_json=metadata_json,
                    is_active=is_active, sequence=sequence)
        s.add(img)
        s.flush()
        return img

    def set_sequence(self, s: Session, image_id: int, category_id: int, sequence: int) -> bool:
        """ Returns False when the image does not exist in that category. """
        res = s.execute(update(Image)
            .where(Image.id == image_id, Image.category_id == category_id)
            .values(sequence=sequence)
        )
        return res.rowcount > 0

    def delete(self, s: Session, image: Image) -> None:
        s.delete(image)
        s.flush()
