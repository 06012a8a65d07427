from __future__ import annotations

import json
import logging
import math
from typing import Any, Mapping, Sequence

from .fields import FieldDefinition, FieldKind, join_path, resolve

log = logging.getLogger(__name__)

Metadata = Mapping[str, Any]


class FieldValueError(ValueError):
    """ A value does not fit the kind of the field at path. """

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class MetadataValidationError(ValueError):
    def __init__(self, errors: Sequence[FieldValueError]):
        self.errors = list(errors)
        super().__init__("Invalid metadata:\n" + "\n".join(f"- {e}" for e in self.errors))


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """ Turn nested objects into dotted keys; {'specs': {'color': 'red'}} -> {'specs.color': 'red'}. """
    out: dict[str, Any] = {}
    for k, v in data.items():
        path = join_path(prefix, str(k))
        if isinstance(v, Mapping):
            out.update(flatten(v, path))
        else:
            out[path] = v
    return out


def parse_metadata(blob: str | bytes | Mapping[str, Any] | None) -> dict[str, Any]:
    """ Parse a stored metadata blob. Anything unreadable gives an empty instance and a logged warning. """
    if blob is None or blob == "" or blob == b"":
        return {}
    if isinstance(blob, Mapping):
        return flatten(blob)
    try:
        data = json.loads(blob)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log.warning("Ignoring malformed metadata blob: %s", e)
        return {}
    if not isinstance(data, dict):
        log.warning("Ignoring metadata blob that is a %s, not an object", type(data).__name__)
        return {}
    return flatten(data)


def dump_metadata(metadata: Metadata) -> str:
    return json.dumps(dict(metadata), ensure_ascii=False)


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def with_value(metadata: Metadata, path: str, value: Any) -> dict[str, Any]:
    """ Copy of metadata with path set; the input mapping is left untouched. """
    new = dict(metadata)
    new[path] = value
    return new


def _to_number(path: str, value: Any) -> int | float | None:
    if is_empty(value):
        return None
    if isinstance(value, bool):
        raise FieldValueError(path, "expected a number, got a boolean")
    if isinstance(value, (int, float)):
        num = value
    else:
        text = str(value).strip()
        try:
            num = int(text)
        except ValueError:
            try:
                num = float(text)
            except ValueError:
                raise FieldValueError(path, f"{text!r} is not a number") from None
    if isinstance(num, float) and not math.isfinite(num):
        raise FieldValueError(path, f"{value!r} is not a finite number")
    return num


def coerce_value(field: FieldDefinition, value: Any, path: str | None = None) -> Any:
    """ Convert an edited value to what gets stored for this field's kind.

    Empty input on a number or select field stores None, never 0 or NaN.
    """
    path = path or field.name
    match field.kind:
        case FieldKind.number:
            return _to_number(path, value)
        case FieldKind.select:
            if is_empty(value):
                return None
            choice = str(value)
            if choice not in field.options:
                raise FieldValueError(path, f"{choice!r} is not one of {list(field.options)}")
            return choice
        case FieldKind.text | FieldKind.date:
            return None if value is None else str(value)
        case FieldKind.group:
            raise FieldValueError(path, "a group has no value of its own")
    raise FieldValueError(path, f"unknown field kind {field.type!r}")


def coerce_metadata(fields: Sequence[FieldDefinition], metadata: Metadata) -> dict[str, Any]:
    """ Validate a whole instance before it is written. Keys without a matching leaf are kept as they are. """
    out: dict[str, Any] = {}
    errors: list[FieldValueError] = []
    for path, value in metadata.items():
        field = resolve(fields, path)
        if field is None or field.is_group:
            out[path] = value
            continue
        try:
            out[path] = coerce_value(field, value, path)
        except FieldValueError as e:
            errors.append(e)
    if errors:
        raise MetadataValidationError(errors)
    return out
