from .object_store import (
    DatabaseObjectStore, ObjectNotFound, ObjectStore, ObjectStoreError, SignedUrlError,
    MAX_ATTRIBUTE_BYTES,
)
