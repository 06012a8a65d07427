from __future__ import annotations

import logging
import mimetypes
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Callable, Iterable, Optional, Sequence

from PIL import Image as PILImage, UnidentifiedImageError

from mediameta.core.batch import BatchResult, run
from mediameta.core.identity import Permissions
from mediameta.db.manager import DatabaseManager
from mediameta.db.models import Image
from mediameta.db.repositories import CategoryRepo, ImageRepo
from mediameta.schema import (
    CollisionPolicy, FieldDefinition, coerce_metadata, dump_metadata, encode_attributes, format_read_view,
)
from mediameta.storage.object_store import DEFAULT_TTL, ObjectNotFound, ObjectStore

from .category_service import CategoryNotFound

log = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
KEY_PREFIX = "media-files"
THUMB_SIZE = (256, 256)


# Domain errors
class ImageNotFound(Exception): ...
class UploadTooLarge(ValueError): ...
class UnsupportedMediaType(ValueError): ...


@dataclass
class PendingUpload:
    """ One queued file with the metadata filled in for it before saving. """
    file_name: str
    data: bytes
    metadata: dict[str, Any] = field(default_factory=dict)
    content_type: Optional[str] = None

    def __str__(self) -> str:
        return self.file_name


def guess_mime(file_name: str, content_type: Optional[str] = None) -> str:
    mime = content_type or mimetypes.guess_type(file_name)[0]
    if not mime or not (mime.startswith("image/") or mime.startswith("video/")):
        raise UnsupportedMediaType(f"{file_name}: only images and videos can be uploaded (got {mime or 'unknown'})")
    return mime


def storage_key(category_name: str, file_name: str, epoch_ms: int) -> str:
    return f"{KEY_PREFIX}/{category_name}/{epoch_ms}-{file_name}"


def _dimensions(data: bytes) -> tuple[Optional[int], Optional[int]]:
    try:
        with PILImage.open(BytesIO(data)) as im:
            return im.size
    except (UnidentifiedImageError, OSError):
        return None, None


class ImageService:
    """
    Upload, annotate, toggle and reorder images. Every write keeps the stored object's attribute
    set in step with the row: metadata under sanitized keys plus ``is-active`` and ``sequence``.
    """

    def __init__(self, db: DatabaseManager, store: ObjectStore, permissions: Optional[Permissions] = None, *,
                 policy: CollisionPolicy = CollisionPolicy.RAISE, clock: Callable[[], float] = time.time):
        self.db = db
        self.store = store
        self.permissions = permissions
        self.policy = policy
        self._clock = clock
        self.repo = ImageRepo()
        self.category_repo = CategoryRepo()

    def _require_user(self) -> None:
        if self.permissions is not None:
            self.permissions.require_user()

    def _get(self, s, image_id: int) -> Image:
        img = self.repo.get(s, image_id)
        if img is None:
            raise ImageNotFound(f"Image {image_id} not found")
        return img

    def _fields_for_category(self, s, category_id: int) -> list[FieldDefinition]:
        c = self.category_repo.get(s, category_id)
        if c is None:
            raise CategoryNotFound(f"Category {category_id} not found")
        return c.template.fields

    def _free_key(self, category_name: str, file_name: str) -> str:
        ms = int(self._clock() * 1000)
        while True:
            key = storage_key(category_name, file_name, ms)
            try:
                self.store.head(key)
            except ObjectNotFound:
                return key
            ms += 1

    # ---------- reads ----------
    def get_image(self, image_id: int) -> Image:
        with self.db.session() as s:
            return self._get(s, image_id)

    def list_images(self, category_id: int, *, active_only: bool = False) -> list[Image]:
        with self.db.session() as s:
            return self.repo.list_for_category(s, category_id, active_only=active_only)

    def fields_for_image(self, image_id: int) -> list[FieldDefinition]:
        with self.db.session() as s:
            return self._fields_for_category(s, self._get(s, image_id).category_id)

    def fields_for_category(self, category_id: int) -> list[FieldDefinition]:
        with self.db.session() as s:
            return self._fields_for_category(s, category_id)

    def read_view(self, image_id: int) -> list[str]:
        """ 'path: value' lines for the gallery, N/A where nothing is stored. """
        with self.db.session() as s:
            img = self._get(s, image_id)
            fields = self._fields_for_category(s, img.category_id)
            return format_read_view(fields, img.metadata_json)

    def get_bytes(self, image_id: int) -> bytes:
        with self.db.session() as s:
            key = self._get(s, image_id).storage_key
        return self.store.get(key)

    def thumbnail_bytes(self, image_id: int) -> Optional[bytes]:
        """ A 256px PNG for stills; None for videos and anything Pillow cannot read. """
        with self.db.session() as s:
            img = self._get(s, image_id)
            key, is_video = img.storage_key, img.is_video
        if is_video:
            return None
        try:
            with PILImage.open(BytesIO(self.store.get(key))) as im:
                im = im.copy()
                im.thumbnail(THUMB_SIZE)
                buf = BytesIO()
                im.save(buf, format="PNG")
                return buf.getvalue()
        except (UnidentifiedImageError, OSError) as e:
            log.warning("No thumbnail for image %d: %s", image_id, e)
            return None

    def download_url(self, image_id: int, ttl: int = DEFAULT_TTL) -> str:
        self._require_user()
        with self.db.session() as s:
            key = self._get(s, image_id).storage_key
        return self.store.signed_url(key, ttl)

    # ---------- upload ----------
    def upload(self, category_id: int, file_name: str, data: bytes, metadata: Optional[dict[str, Any]] = None,
               *, content_type: Optional[str] = None) -> int:
        """
        Store the bytes and create the Image row at the end of the category.

        Raises
        ------
        UploadTooLarge, UnsupportedMediaType
            before anything is written.
        MetadataValidationError, AttributeKeyCollision
            if the metadata does not fit the category's template.
        """
        self._require_user()
        if len(data) > MAX_UPLOAD_BYTES:
            raise UploadTooLarge(f"{file_name}: {len(data)} bytes exceeds the {MAX_UPLOAD_BYTES} byte limit")
        mime = guess_mime(file_name, content_type)

        with self.db.session() as s:
            fields = self._fields_for_category(s, category_id)
            category_name = self.category_repo.get(s, category_id).name
            sequence = self.repo.next_sequence(s, category_id)

        values = coerce_metadata(fields, metadata or {})
        attrs = encode_attributes(values, is_active=True, sequence=sequence, policy=self.policy)
        width, height = (None, None) if mime.startswith("video/") else _dimensions(data)

        key = self.store.put(self._free_key(category_name, file_name), data, attrs, mime)
        try:
            with self.db.session() as s:
                img = self.repo.create(s, category_id=category_id, storage_key=key, file_name=file_name, mime=mime,
                                       size=len(data), width=width, height=height,
                                       metadata_json=dump_metadata(values), is_active=True, sequence=sequence)
                image_id = img.id
        except Exception:
            self.store.delete(key)
            raise
        log.info("Uploaded %s as image %d", key, image_id)
        return image_id

    def upload_batch(self, category_id: int, items: Iterable[PendingUpload]) -> BatchResult[int]:
        """ Upload each pending file in order. Earlier successes stay when a later one fails. """
        return run(items, lambda p: self.upload(category_id, p.file_name, p.data, p.metadata,
                                                content_type=p.content_type), label="upload")

    # ---------- edits ----------
    def _write(self, image_id: int, *, metadata: Optional[dict[str, Any]] = None,
               is_active: Optional[bool] = None) -> None:
        with self.db.session() as s:
            img = self._get(s, image_id)
            fields = self._fields_for_category(s, img.category_id)
            key, sequence = img.storage_key, img.sequence
            values = coerce_metadata(fields, metadata) if metadata is not None else img.metadata_values
            active = img.is_active if is_active is None else bool(is_active)

        attrs = encode_attributes(values, is_active=active, sequence=sequence, policy=self.policy)
        previous = self.store.head(key)
        self.store.set_attributes(key, attrs)
        try:
            with self.db.session() as s:
                img = self._get(s, image_id)
                img.metadata_json = dump_metadata(values)
                img.is_active = active
        except Exception:
            self.store.set_attributes(key, previous)
            raise

    def update_metadata(self, image_id: int, metadata: dict[str, Any]) -> None:
        self._require_user()
        self._write(image_id, metadata=metadata)

    def set_active(self, image_id: int, is_active: bool) -> None:
        self._require_user()
        self._write(image_id, is_active=is_active)

    def save_sequence(self, category_id: int, ordered_ids: Sequence[int]) -> BatchResult[int]:
        """ Give each image its index in ordered_ids. Each image is written on its own. """
        self._require_user()

        def _one(pair: tuple[int, int]) -> int:
            seq, image_id = pair
            missing = ImageNotFound(f"Image {image_id} is not in category {category_id}")
            with self.db.session() as s:
                img = self._get(s, image_id)
                if img.category_id != category_id:
                    raise missing
                key, values, active = img.storage_key, img.metadata_values, img.is_active

            attrs = encode_attributes(values, is_active=active, sequence=seq, policy=self.policy)
            previous = self.store.head(key)
            self.store.set_attributes(key, attrs)
            try:
                with self.db.session() as s:
                    if not self.repo.set_sequence(s, image_id, category_id, seq):
                        raise missing
            except Exception:
                self.store.set_attributes(key, previous)
                raise
            return image_id

        return run(list(enumerate(ordered_ids)), _one, label="sequence")

    def delete_image(self, image_id: int) -> None:
        """ Remove the stored bytes, then the row. """
        self._require_user()
        with self.db.session() as s:
            img = self._get(s, image_id)
            key = img.storage_key
        if not self.store.delete(key):
            log.warning("Stored object %s was already gone", key)
        with self.db.session() as s:
            img = self.repo.get(s, image_id)
            if img is not None:
                self.repo.delete(s, img)
        log.info("Deleted image %d (%s)", image_id, key)
