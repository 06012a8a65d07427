"""
Transcoding between metadata instances and the attribute set attached to a stored object.

Stored-object attributes only allow lowercase ``[a-z0-9-]`` keys and string values, so every
metadata path is sanitized on the way out. Sanitizing is lossy: ``Weight_kg`` and ``Weight-kg``
both become ``weight-kg``. There is no decode direction; the JSON metadata on the Image row
stays the canonical copy.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable, Mapping

IS_ACTIVE_KEY = "is-active"
SEQUENCE_KEY = "sequence"
RESERVED_KEYS = frozenset({IS_ACTIVE_KEY, SEQUENCE_KEY})

_INVALID_CHARS = re.compile(r"[^a-z0-9]")


class AttributeKeyCollision(ValueError):
    """ Two metadata keys (or a metadata key and a reserved key) sanitize to the same attribute key. """

    def __init__(self, clashes: Mapping[str, list[str]]):
        self.clashes = {k: list(v) for k, v in clashes.items()}
        parts = [f"{', '.join(repr(o) for o in originals)} -> '{key}'" for key, originals in self.clashes.items()]
        super().__init__("Metadata keys collide as storage attribute keys: " + "; ".join(parts))


class CollisionPolicy(str, Enum):
    RAISE = "raise"
    SUFFIX = "suffix"


def sanitize_key(key: str) -> str:
    """ Lowercase and replace every character outside [a-z0-9] with '-'. """
    return _INVALID_CHARS.sub("-", key.lower())


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def find_collisions(keys: Iterable[str]) -> dict[str, list[str]]:
    """ Return {sanitized: [original, ...]} for every sanitized key produced by more than one original. """
    groups: dict[str, list[str]] = {}
    for k in keys:
        groups.setdefault(sanitize_key(k), []).append(k)
    return {s: originals for s, originals in groups.items() if len(originals) > 1}


def encode_attributes(
        metadata: Mapping[str, Any],
        *,
        is_active: bool | None = None,
        sequence: int | None = None,
        policy: CollisionPolicy = CollisionPolicy.RAISE,
) -> dict[str, str]:
    """ Build the stored-object attribute set for one Image.

    Parameters
    ----------
    metadata : Mapping
        The flat metadata instance (dotted path -> value).
    is_active, sequence : optional
        Image flags, written under the reserved keys when given.
    policy : CollisionPolicy
        RAISE rejects the write on any collision. SUFFIX keeps the first key as-is and appends
        -2, -3, ... to later ones in input order.

    Raises
    ------
    AttributeKeyCollision
        under RAISE when keys collide, and under any policy when a metadata key lands on a reserved key.
    """
    reserved_hits = {sanitize_key(k): [k] for k in metadata if sanitize_key(k) in RESERVED_KEYS}
    if reserved_hits:
        raise AttributeKeyCollision(reserved_hits)

    if policy is CollisionPolicy.RAISE:
        clashes = find_collisions(metadata)
        if clashes:
            raise AttributeKeyCollision(clashes)

    taken = {sanitize_key(k) for k in metadata} | RESERVED_KEYS
    out: dict[str, str] = {}
    for key, value in metadata.items():
        target = sanitize_key(key)
        if target in out:
            n = 2
            while f"{target}-{n}" in out or f"{target}-{n}" in taken:
                n += 1
            target = f"{target}-{n}"
        out[target] = format_value(value)

    if is_active is not None:
        out[IS_ACTIVE_KEY] = format_value(bool(is_active))
    if sequence is not None:
        out[SEQUENCE_KEY] = str(int(sequence))
    return out
