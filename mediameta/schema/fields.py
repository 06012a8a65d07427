from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Annotated, Any, Callable, Iterator, Literal, Sequence, Union

from jsonschema.validators import Draft202012Validator
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .codec import RESERVED_KEYS, AttributeKeyCollision, find_collisions, sanitize_key
from .field_schema import FIELDS_SCHEMA

log = logging.getLogger(__name__)

PATH_SEP = "."


class FieldKind(str, Enum):
    text = "text"
    number = "number"
    date = "date"
    select = "select"
    group = "group"


# Domain errors
class FieldSchemaError(ValueError): ...
class DuplicateFieldName(FieldSchemaError): ...
class FieldPathError(ValueError): ...


# ---------- Field definitions ----------
class _FieldBase(BaseModel):
    """ Common shape of every node in a template's field tree. The name is both the label and the path segment. """
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field name must not be empty")
        if PATH_SEP in v:
            raise ValueError(f"Field name {v!r} must not contain '{PATH_SEP}'")
        return v

    @property
    def kind(self) -> FieldKind:
        return FieldKind(self.type)

    @property
    def is_group(self) -> bool:
        return False


class TextField(_FieldBase):
    type: Literal["text"] = "text"


class NumberField(_FieldBase):
    type: Literal["number"] = "number"


class DateField(_FieldBase):
    type: Literal["date"] = "date"


class SelectField(_FieldBase):
    type: Literal["select"] = "select"
    options: tuple[str, ...] = ()


class GroupField(_FieldBase):
    """ A container; only its descendant leaves carry values. Children serialize under 'fields'. """
    type: Literal["group"] = "group"
    children: tuple["FieldDefinition", ...] = Field(default=(), alias="fields")

    @property
    def is_group(self) -> bool:
        return True


FieldDefinition = Annotated[
    Union[TextField, NumberField, DateField, SelectField, GroupField],
    Field(discriminator="type"),
]
GroupField.model_rebuild()

_FIELD_LIST = TypeAdapter(list[FieldDefinition])
_FIELD_ONE = TypeAdapter(FieldDefinition)


def make_field(name: str, kind: FieldKind | str, *, options: Sequence[str] = (),
               children: Sequence[FieldDefinition] = ()) -> FieldDefinition:
    """ Build a field of the given kind; options/children are dropped for kinds that do not carry them. """
    kind = FieldKind(kind)
    data: dict[str, Any] = {"name": name, "type": kind.value}
    if kind is FieldKind.select:
        data["options"] = [o for o in (opt.strip() for opt in options) if o]
    elif kind is FieldKind.group:
        data["fields"] = list(children)
    return _FIELD_ONE.validate_python(data)


# ---------- (De)serialization ----------
def _normalise(node: Any) -> Any:
    """ Accept 'kind'/'children' as spellings of 'type'/'fields'; drop options/fields on kinds that do not carry them. """
    if isinstance(node, list):
        return [_normalise(n) for n in node]
    if not isinstance(node, dict):
        return node
    out = dict(node)
    if "kind" in out and "type" not in out:
        out["type"] = out.pop("kind")
    if "children" in out and "fields" not in out:
        out["fields"] = out.pop("children")
    if out.get("type") != FieldKind.select.value:
        out.pop("options", None)
    if out.get("type") != FieldKind.group.value:
        out.pop("fields", None)
    if "fields" in out:
        out["fields"] = _normalise(out["fields"])
    return out


def load_fields(data: str | list) -> list[FieldDefinition]:
    """ Strictly load a field list from JSON text or decoded JSON.

    Parameters
    ----------
    data : str or list
        The stored blob or the already decoded list.

    Raises
    ------
    FieldSchemaError
        if the data is not valid JSON or does not follow the field schema.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise FieldSchemaError(f"Template fields are not valid JSON: {e}") from e

    data = _normalise(data)
    validator = Draft202012Validator(FIELDS_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        lines = []
        for e in errors:
            loc = "/".join(map(str, e.path)) or "<root>"
            lines.append(f"- at {loc}: {e.message}")
        raise FieldSchemaError("Invalid template fields:\n" + "\n".join(lines))

    try:
        return _FIELD_LIST.validate_python(data)
    except ValidationError as e:
        raise FieldSchemaError(str(e)) from e


def parse_fields(blob: str | None) -> list[FieldDefinition]:
    """ Read path for stored templates: malformed blobs give an empty field list and a warning. """
    if not blob:
        return []
    try:
        return load_fields(blob)
    except FieldSchemaError as e:
        log.warning("Ignoring malformed template fields: %s", e)
        return []


def dump_fields(fields: Sequence[FieldDefinition]) -> str:
    return json.dumps(_FIELD_LIST.dump_python(list(fields), mode="json", by_alias=True), ensure_ascii=False)


# ---------- Paths ----------
def split_path(path: str | Sequence[str] | None) -> list[str]:
    if not path:
        return []
    if isinstance(path, str):
        return path.split(PATH_SEP)
    return list(path)


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}{PATH_SEP}{name}" if prefix else name


def resolve(fields: Sequence[FieldDefinition], path: str | Sequence[str]) -> FieldDefinition | None:
    """ Walk the path segments through the children lists. Returns None when any segment is missing. """
    segments = split_path(path)
    if not segments:
        return None
    level: Sequence[FieldDefinition] = fields
    node: FieldDefinition | None = None
    for seg in segments:
        if node is not None:
            if not node.is_group:
                return None
            level = node.children
        node = next((f for f in level if f.name == seg), None)
        if node is None:
            return None
    return node


def leaf_paths(fields: Sequence[FieldDefinition], prefix: str = "") -> Iterator[tuple[str, FieldDefinition]]:
    """ Yield (dotted path, field) for every value-carrying field, depth first, in order. """
    for f in fields:
        path = join_path(prefix, f.name)
        if f.is_group:
            yield from leaf_paths(f.children, path)
        else:
            yield path, f


# ---------- Tree edits (always return a new list) ----------
def _rebuild(fields: Sequence[FieldDefinition], segments: list[str],
             fn: Callable[[list[FieldDefinition]], list[FieldDefinition]]) -> list[FieldDefinition]:
    if not segments:
        return fn(list(fields))
    head, rest = segments[0], segments[1:]
    out: list[FieldDefinition] = []
    found = False
    for f in fields:
        if not found and f.name == head:
            if not f.is_group:
                raise FieldPathError(f"'{head}' is a {f.type} field and cannot hold children")
            f = f.model_copy(update={"children": tuple(_rebuild(f.children, rest, fn))})
            found = True
        out.append(f)
    if not found:
        raise FieldPathError(f"No field named '{head}'")
    return out


def add_child(fields: Sequence[FieldDefinition], parent_path: str | Sequence[str] | None,
              new_field: FieldDefinition) -> list[FieldDefinition]:
    """ Append new_field to the group at parent_path (root if empty). """
    return _rebuild(fields, split_path(parent_path), lambda kids: kids + [new_field])


def remove_child(fields: Sequence[FieldDefinition], parent_path: str | Sequence[str] | None,
                 index: int) -> list[FieldDefinition]:
    """ Remove one child. Stored metadata under the removed subtree is left alone. """
    def _drop(kids: list[FieldDefinition]) -> list[FieldDefinition]:
        if not 0 <= index < len(kids):
            raise FieldPathError(f"No child at index {index}")
        return kids[:index] + kids[index + 1:]
    return _rebuild(fields, split_path(parent_path), _drop)


def replace_child(fields: Sequence[FieldDefinition], parent_path: str | Sequence[str] | None,
                  index: int, new_field: FieldDefinition) -> list[FieldDefinition]:
    def _swap(kids: list[FieldDefinition]) -> list[FieldDefinition]:
        if not 0 <= index < len(kids):
            raise FieldPathError(f"No child at index {index}")
        kids[index] = new_field
        return kids
    return _rebuild(fields, split_path(parent_path), _swap)


def move_child(fields: Sequence[FieldDefinition], parent_path: str | Sequence[str] | None,
               old_index: int, new_index: int) -> list[FieldDefinition]:
    def _move(kids: list[FieldDefinition]) -> list[FieldDefinition]:
        if not 0 <= old_index < len(kids):
            raise FieldPathError(f"No child at index {old_index}")
        f = kids.pop(old_index)
        kids.insert(max(0, min(new_index, len(kids))), f)
        return kids
    return _rebuild(fields, split_path(parent_path), _move)


# ---------- Edit-time validation ----------
def _check_unique(fields: Sequence[FieldDefinition], prefix: str) -> None:
    seen: set[str] = set()
    for f in fields:
        if f.name in seen:
            where = prefix or "<root>"
            raise DuplicateFieldName(f"Duplicate field name '{f.name}' under {where}")
        seen.add(f.name)
        if f.is_group:
            _check_unique(f.children, join_path(prefix, f.name))


def validate_fields(fields: Sequence[FieldDefinition]) -> None:
    """ Checks run when a template is saved.

    Raises
    ------
    DuplicateFieldName
        if two siblings share a name.
    AttributeKeyCollision
        if two leaf paths map to the same storage attribute key, or one maps to a reserved key.
    """
    _check_unique(fields, "")
    paths = [p for p, _ in leaf_paths(fields)]
    clashes = find_collisions(paths)
    for p in paths:
        if sanitize_key(p) in RESERVED_KEYS:
            clashes.setdefault(sanitize_key(p), []).append(p)
    if clashes:
        raise AttributeKeyCollision(clashes)
