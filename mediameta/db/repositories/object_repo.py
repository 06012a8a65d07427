from __future__ import annotations
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from mediameta.db.models import StoredObject


class StoredObjectRepo:
    def get(self, s: Session, key: str) -> Optional[StoredObject]:
        return s.get(StoredObject, key)

    def keys_with_prefix(self, s: Session, prefix: str) -> list[str]:
        return list(s.execute(
            select(StoredObject.key).where(StoredObject.key.startswith(prefix, autoescape=True)).order_by(StoredObject.key)
        ).scalars().all())

    def upsert(self, s: Session, key: str, data: bytes, attributes: dict[str, str],
               content_type: Optional[str]) -> StoredObject:
        obj = s.get(StoredObject, key)
        if obj is None:
            obj = StoredObject(key=key)
            s.add(obj)
        obj.data = data
        obj.bytes_size = len(data)
        obj.attributes = dict(attributes)
        obj.content_type = content_type
        s.flush()
        return obj

    def delete(self, s: Session, key: str) -> bool:
        obj = s.get(StoredObject, key)
        if obj is None:
            return False
        s.delete(obj)
        s.flush()
        return True
