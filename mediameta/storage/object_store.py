"""
Blob storage for uploaded media.

``DatabaseObjectStore`` keeps the bytes in the ``stored_object`` table of the open database, with a
small string attribute set per object. Reads outside the app go through signed URLs of the form
``mediameta://objects/<key>?expires=<epoch s>&signature=<hex>``.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
import secrets
import time
from typing import Mapping, Optional, Protocol
from urllib.parse import parse_qs, quote, unquote, urlsplit

from mediameta.db.manager import DatabaseManager
from mediameta.db.repositories import StoredObjectRepo

log = logging.getLogger(__name__)

URL_SCHEME = "mediameta"
URL_HOST = "objects"
MAX_ATTRIBUTE_BYTES = 2048
DEFAULT_TTL = 300

_ATTR_KEY = re.compile(r"^[a-z0-9-]+$")


class ObjectStoreError(Exception): ...
class ObjectNotFound(ObjectStoreError, KeyError): ...
class SignedUrlError(ObjectStoreError): ...


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, attributes: Mapping[str, str],
            content_type: Optional[str] = None) -> str: ...
    def get(self, key: str) -> bytes: ...
    def head(self, key: str) -> dict[str, str]: ...
    def set_attributes(self, key: str, attributes: Mapping[str, str]) -> None: ...
    def delete(self, key: str) -> bool: ...
    def signed_url(self, key: str, ttl: int = DEFAULT_TTL) -> str: ...


def check_attributes(attributes: Mapping[str, str]) -> dict[str, str]:
    """ Raise ObjectStoreError unless every key is [a-z0-9-]+, every value a str, and the set fits the budget. """
    for k, v in attributes.items():
        if not isinstance(k, str) or not _ATTR_KEY.match(k):
            raise ObjectStoreError(f"Invalid attribute key {k!r}; allowed characters are a-z, 0-9 and '-'")
        if not isinstance(v, str):
            raise ObjectStoreError(f"Attribute {k!r} must be a string, got {type(v).__name__}")
    size = len(json.dumps(dict(attributes), ensure_ascii=False).encode("utf-8"))
    if size > MAX_ATTRIBUTE_BYTES:
        raise ObjectStoreError(f"Attributes take {size} bytes; the limit is {MAX_ATTRIBUTE_BYTES}")
    return dict(attributes)


class DatabaseObjectStore:
    def __init__(self, db: DatabaseManager, secret: bytes | None = None, *, clock=time.time):
        self.db = db
        self.repo = StoredObjectRepo()
        self._secret = secret or secrets.token_bytes(32)
        self._clock = clock

    # ---------- objects ----------
    def put(self, key: str, data: bytes, attributes: Mapping[str, str],
            content_type: Optional[str] = None) -> str:
        if not key:
            raise ObjectStoreError("Storage key must not be empty")
        attrs = check_attributes(attributes)
        with self.db.session() as s:
            self.repo.upsert(s, key, bytes(data), attrs, content_type)
        log.debug("Stored %s (%d bytes)", key, len(data))
        return key

    def get(self, key: str) -> bytes:
        with self.db.session() as s:
            obj = self.repo.get(s, key)
            if obj is None:
                raise ObjectNotFound(key)
            return bytes(obj.data)

    def head(self, key: str) -> dict[str, str]:
        with self.db.session() as s:
            obj = self.repo.get(s, key)
            if obj is None:
                raise ObjectNotFound(key)
            return dict(obj.attributes or {})

    def set_attributes(self, key: str, attributes: Mapping[str, str]) -> None:
        """ Replace the attribute set without touching the bytes. """
        attrs = check_attributes(attributes)
        with self.db.session() as s:
            obj = self.repo.get(s, key)
            if obj is None:
                raise ObjectNotFound(key)
            obj.attributes = attrs

    def delete(self, key: str) -> bool:
        with self.db.session() as s:
            return self.repo.delete(s, key)

    def keys(self, prefix: str = "") -> list[str]:
        with self.db.session() as s:
            return self.repo.keys_with_prefix(s, prefix)

    # ---------- signed urls ----------
    def _sign(self, key: str, expires: int) -> str:
        msg = f"{key}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()

    def signed_url(self, key: str, ttl: int = DEFAULT_TTL) -> str:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        expires = int(self._clock()) + int(ttl)
        return f"{URL_SCHEME}://{URL_HOST}/{quote(key, safe='')}?expires={expires}&signature={self._sign(key, expires)}"

    def verify_url(self, url: str) -> str:
        """ Return the key a signed URL points at. Raises SignedUrlError if tampered with or expired. """
        parts = urlsplit(url)
        if parts.scheme != URL_SCHEME or parts.netloc != URL_HOST:
            raise SignedUrlError(f"Not an object URL: {url}")
        key = unquote(parts.path.lstrip("/"))
        query = parse_qs(parts.query)
        try:
            expires = int(query["expires"][0])
            signature = query["signature"][0]
        except (KeyError, IndexError, ValueError):
            raise SignedUrlError("Signed URL is missing expires/signature") from None
        if not hmac.compare_digest(signature, self._sign(key, expires)):
            raise SignedUrlError("Signed URL signature does not match")
        if self._clock() > expires:
            raise SignedUrlError("Signed URL has expired")
        return key

    def open_signed_url(self, url: str) -> bytes:
        return self.get(self.verify_url(url))
