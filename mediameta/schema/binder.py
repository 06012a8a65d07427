"""
Schema-driven form binding.

``render`` walks a template's field tree against one metadata instance and produces a
UI-neutral description (``GroupBlock``/``Control``) plus one edit handler per leaf path.
Handlers never mutate the instance they were given; each edit produces a new mapping which
is handed to ``on_change``. The Qt widgets in ``mediameta.ui.metadata_form`` are built
from this description, and the gallery text comes from ``read_view``.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence, Union

from .codec import format_value
from .fields import PATH_SEP, FieldDefinition, FieldKind, join_path, leaf_paths
from .metadata import Metadata, coerce_value, is_empty, parse_metadata, with_value

NOT_AVAILABLE = "N/A"

OnChange = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class Control:
    path: str
    label: str
    kind: FieldKind
    value: Any
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class GroupBlock:
    path: str
    label: str
    children: tuple[Union[Control, "GroupBlock"], ...]


Node = Union[Control, GroupBlock]


@dataclass(frozen=True)
class ReadLine:
    path: str
    text: str

    def __str__(self) -> str:
        return f"{self.path}: {self.text}"


def display_value(field: FieldDefinition, value: Any) -> Any:
    """ What a control shows for a stored value. Empty numbers show as '', never '0'. """
    match field.kind:
        case FieldKind.number:
            return "" if is_empty(value) else format_value(value)
        case FieldKind.select:
            return None if is_empty(value) else str(value)
        case _:
            return "" if value is None else str(value)


class Form:
    """ The bound form for one metadata instance. """

    def __init__(self, fields: Sequence[FieldDefinition], metadata: Metadata, path_prefix: str = "",
                 on_change: OnChange | None = None) -> None:
        self.fields = list(fields)
        self.path_prefix = path_prefix.rstrip(PATH_SEP)
        self.on_change = on_change
        self._metadata: dict[str, Any] = dict(metadata)
        self._leaves = dict(leaf_paths(self.fields, self.path_prefix))
        self.controls: tuple[Node, ...] = tuple(self._build(self.fields, self.path_prefix))
        self.handlers: dict[str, Callable[[Any], dict[str, Any]]] = {
            path: partial(self.edit, path) for path in self._leaves
        }

    @property
    def metadata(self) -> Mapping[str, Any]:
        return MappingProxyType(self._metadata)

    def values(self) -> dict[str, Any]:
        return dict(self._metadata)

    def _build(self, fields: Sequence[FieldDefinition], prefix: str) -> list[Node]:
        nodes: list[Node] = []
        for f in fields:
            path = join_path(prefix, f.name)
            if f.is_group:
                nodes.append(GroupBlock(path=path, label=f.name, children=tuple(self._build(f.children, path))))
            else:
                nodes.append(self._control(path, f))
        return nodes

    def _control(self, path: str, field: FieldDefinition) -> Control:
        options = field.options if field.kind is FieldKind.select else ()
        return Control(path=path, label=field.name, kind=field.kind,
                       value=display_value(field, self._metadata.get(path)), options=options)

    def edit(self, path: str, raw: Any) -> dict[str, Any]:
        """ Apply one control edit.

        Raises
        ------
        KeyError
            if path is not a leaf of this form.
        FieldValueError
            if raw does not fit the field kind; the form keeps its previous instance.
        """
        field = self._leaves[path]
        new = with_value(self._metadata, path, coerce_value(field, raw, path))
        self._metadata = new
        if self.on_change is not None:
            self.on_change(dict(new))
        return dict(new)

    def rerender(self) -> "Form":
        return Form(self.fields, self._metadata, self.path_prefix, self.on_change)


def render(fields: Sequence[FieldDefinition], metadata: Metadata, path_prefix: str = "",
           on_change: OnChange | None = None) -> Form:
    return Form(fields, metadata, path_prefix, on_change)


def read_view(fields: Sequence[FieldDefinition],
              metadata: Metadata | str | bytes | None) -> list[ReadLine]:
    """ Read-only walk for the gallery: one line per leaf, N/A for anything missing. """
    metadata = parse_metadata(metadata)
    lines = []
    for path, _field in leaf_paths(fields):
        value = metadata.get(path)
        lines.append(ReadLine(path, NOT_AVAILABLE if is_empty(value) else format_value(value)))
    return lines


def format_read_view(fields: Sequence[FieldDefinition], metadata: Metadata | str | bytes | None) -> list[str]:
    return [str(line) for line in read_view(fields, metadata)]
