from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from PySide6.QtCore import Signal
from PySide6.QtGui import QDoubleValidator
from PySide6.QtWidgets import QComboBox, QFormLayout, QGroupBox, QLabel, QLineEdit, QVBoxLayout, QWidget

from mediameta.schema import Control, FieldDefinition, FieldKind, FieldValueError, Form, GroupBlock, render

log = logging.getLogger(__name__)

_INVALID_STYLE = "border: 1px solid #c0392b;"


class MetadataForm(QWidget):
    """
    Editor for one metadata instance, laid out from a template's field tree.

    Signals
    -------
    metadataChanged(dict): emitted with the new instance after every accepted edit.
    """
    metadataChanged = Signal(dict)

    def __init__(self, fields: Sequence[FieldDefinition] = (), metadata: Optional[dict[str, Any]] = None,
                 parent: QWidget | None = None, *, read_only: bool = False) -> None:
        super().__init__(parent)
        self._read_only = read_only
        self._widgets: dict[str, QWidget] = {}
        self._form: Form = render(fields, metadata or {})

        self._root = QVBoxLayout(self)
        self._root.setContentsMargins(0, 0, 0, 0)
        self._body: QWidget | None = None
        self._build()

    # --- Public API --------------------------------------------------------

    def set_form(self, fields: Sequence[FieldDefinition], metadata: Optional[dict[str, Any]] = None) -> None:
        self._form = render(fields, metadata or {})
        self._build()

    def metadata(self) -> dict[str, Any]:
        return self._form.values()

    def widget(self, path: str) -> QWidget:
        return self._widgets[path]

    def paths(self) -> list[str]:
        return list(self._widgets)

    # --- Building ----------------------------------------------------------

    def _build(self) -> None:
        if self._body is not None:
            self._root.removeWidget(self._body)
            self._body.deleteLater()
        self._widgets.clear()

        self._body = QWidget(self)
        layout = QFormLayout(self._body)
        if not self._form.controls:
            layout.addRow(QLabel("This template has no fields."))
        for node in self._form.controls:
            self._add_node(layout, node)
        self._root.addWidget(self._body)

    def _add_node(self, layout: QFormLayout, node: GroupBlock | Control) -> None:
        if isinstance(node, GroupBlock):
            box = QGroupBox(node.label, self._body)
            inner = QFormLayout(box)
            for child in node.children:
                self._add_node(inner, child)
            layout.addRow(box)
            return
        w = self._make_control(node)
        w.setEnabled(not self._read_only)
        self._widgets[node.path] = w
        layout.addRow(node.label, w)

    def _make_control(self, c: Control) -> QWidget:
        match c.kind:
            case FieldKind.select:
                box = QComboBox(self._body)
                box.addItem("")  # no value
                box.addItems(list(c.options))
                if c.value is not None:
                    box.setCurrentIndex(max(0, box.findText(c.value)))
                box.currentIndexChanged.connect(
                    lambda _i, path=c.path, b=box: self._on_edit(path, b.currentText() or None, b)
                )
                return box
            case FieldKind.number:
                edit = QLineEdit(self._body)
                edit.setValidator(QDoubleValidator(edit))
                edit.setText(c.value)
            case FieldKind.date:
                edit = QLineEdit(self._body)
                edit.setPlaceholderText("YYYY-MM-DD")
                edit.setText(c.value)
            case _:
                edit = QLineEdit(self._body)
                edit.setText(c.value)
        # connected after the initial text so building the form emits nothing
        edit.textChanged.connect(lambda text, path=c.path, e=edit: self._on_edit(path, text, e))
        return edit

    # --- Slots -------------------------------------------------------------

    def _on_edit(self, path: str, raw: Any, w: QWidget) -> None:
        try:
            new = self._form.handlers[path](raw)
        except FieldValueError as e:
            w.setStyleSheet(_INVALID_STYLE)
            w.setToolTip(str(e))
            log.debug("Rejected edit: %s", e)
            return
        w.setStyleSheet("")
        w.setToolTip("")
        self.metadataChanged.emit(new)
