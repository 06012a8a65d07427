from __future__ import annotations

import logging
from typing import Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QComboBox, QDialog, QDialogButtonBox, QFormLayout, QHBoxLayout, QLabel, QLineEdit, QListWidget,
    QListWidgetItem, QMessageBox, QPushButton, QSplitter, QTreeWidget, QTreeWidgetItem, QVBoxLayout, QWidget,
)

from mediameta.core.identity import PermissionDenied
from mediameta.db.services import TemplateInUse, TemplateService
from mediameta.schema import (
    AttributeKeyCollision, FieldDefinition, FieldKind, FieldSchemaError, add_child, join_path, make_field,
    remove_child, replace_child, resolve,
)

log = logging.getLogger(__name__)

ROLE_PARENT = Qt.UserRole
ROLE_INDEX = Qt.UserRole + 1


class FieldDialog(QDialog):
    """ Name / kind / options editor for one field. Children of a group are kept when it is edited. """

    def __init__(self, parent: QWidget | None = None, field: Optional[FieldDefinition] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Edit Field" if field else "Add Field")
        self._original = field

        self.name_edit = QLineEdit(self)
        self.kind_box = QComboBox(self)
        self.kind_box.addItems([k.value for k in FieldKind])
        self.options_edit = QLineEdit(self)
        self.options_edit.setPlaceholderText("Comma separated, select fields only")

        if field is not None:
            self.name_edit.setText(field.name)
            self.kind_box.setCurrentText(field.kind.value)
            if field.kind is FieldKind.select:
                self.options_edit.setText(", ".join(field.options))

        self.kind_box.currentTextChanged.connect(self._sync_options)
        self._sync_options(self.kind_box.currentText())

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel, parent=self)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        form = QFormLayout(self)
        form.addRow("Name", self.name_edit)
        form.addRow("Type", self.kind_box)
        form.addRow("Options", self.options_edit)
        form.addRow(buttons)

    def _sync_options(self, kind: str) -> None:
        self.options_edit.setEnabled(kind == FieldKind.select.value)

    def field(self) -> FieldDefinition:
        kind = FieldKind(self.kind_box.currentText())
        children = self._original.children if self._original is not None and self._original.is_group else ()
        return make_field(self.name_edit.text(), kind, options=self.options_edit.text().split(","),
                          children=children)

    @classmethod
    def get_field(cls, parent: QWidget | None, field: Optional[FieldDefinition] = None) -> Optional[FieldDefinition]:
        dlg = cls(parent, field)
        if dlg.exec() != QDialog.Accepted:
            return None
        try:
            return dlg.field()
        except ValueError as e:
            QMessageBox.warning(parent, "Invalid field", str(e))
            return None


class TemplateTab(QWidget):
    """
    Left: template list.
    Right: name and field tree of the selected template, edited as a working copy until saved.
    """
    templatesChanged = Signal()

    def __init__(self, service: TemplateService, *, can_edit: bool = True) -> None:
        super().__init__()
        self._service = service
        self._current_id: Optional[int] = None
        self._fields: list[FieldDefinition] = []

        splitter = QSplitter(Qt.Horizontal, self)

        # Left: list + new/delete
        left = QWidget()
        ll = QVBoxLayout(left)
        self.list = QListWidget()
        self.list.currentItemChanged.connect(self._on_template_selected)
        ll.addWidget(self.list)
        row = QHBoxLayout()
        self.btn_new = QPushButton("New")
        self.btn_new.clicked.connect(self._new_template)
        self.btn_delete = QPushButton("Delete")
        self.btn_delete.clicked.connect(self._delete_template)
        row.addWidget(self.btn_new)
        row.addWidget(self.btn_delete)
        ll.addLayout(row)
        splitter.addWidget(left)

        # Right: editor
        right = QWidget()
        rl = QVBoxLayout(right)
        name_row = QHBoxLayout()
        name_row.addWidget(QLabel("Name:"))
        self.name_edit = QLineEdit()
        name_row.addWidget(self.name_edit, 1)
        rl.addLayout(name_row)

        self.tree = QTreeWidget()
        self.tree.setHeaderLabels(["Field", "Type", "Options"])
        rl.addWidget(self.tree, 1)

        btns = QHBoxLayout()
        self.btn_add = QPushButton("Add Field")
        self.btn_add.clicked.connect(self._add_field)
        self.btn_add_child = QPushButton("Add Child")
        self.btn_add_child.clicked.connect(self._add_child_field)
        self.btn_edit = QPushButton("Edit")
        self.btn_edit.clicked.connect(self._edit_field)
        self.btn_remove = QPushButton("Remove")
        self.btn_remove.clicked.connect(self._remove_field)
        self.btn_save = QPushButton("Save")
        self.btn_save.clicked.connect(self.save)
        for b in (self.btn_add, self.btn_add_child, self.btn_edit, self.btn_remove):
            btns.addWidget(b)
        btns.addStretch(1)
        btns.addWidget(self.btn_save)
        rl.addLayout(btns)
        splitter.addWidget(right)
        splitter.setSizes([260, 740])

        lay = QVBoxLayout(self)
        lay.addWidget(splitter)

        self.set_editable(can_edit)
        self.reload()

    # --- Public API --------------------------------------------------------

    def set_editable(self, editable: bool) -> None:
        for w in (self.btn_new, self.btn_delete, self.btn_add, self.btn_add_child, self.btn_edit,
                  self.btn_remove, self.btn_save):
            w.setEnabled(editable)
        self.name_edit.setReadOnly(not editable)

    def reload(self) -> None:
        keep = self._current_id
        self.list.blockSignals(True)
        self.list.clear()
        for t in self._service.list_templates():
            item = QListWidgetItem(t.name)
            item.setData(Qt.UserRole, t.id)
            self.list.addItem(item)
            if t.id == keep:
                self.list.setCurrentItem(item)
        self.list.blockSignals(False)
        if self.list.currentItem() is None:
            self._show(None)

    def fields(self) -> list[FieldDefinition]:
        return list(self._fields)

    def set_fields(self, fields: list[FieldDefinition]) -> None:
        self._fields = list(fields)
        self._rebuild_tree()

    # --- Tree --------------------------------------------------------------

    def _show(self, template_id: Optional[int]) -> None:
        self._current_id = template_id
        if template_id is None:
            self.name_edit.clear()
            self.set_fields([])
            return
        t = self._service.get_template(template_id)
        self.name_edit.setText(t.name)
        self.set_fields(self._service.get_fields(template_id))

    def _rebuild_tree(self) -> None:
        self.tree.clear()

        def _add(parent_item, fields, parent_path: str) -> None:
            for i, f in enumerate(fields):
                opts = ", ".join(f.options) if f.kind is FieldKind.select else ""
                item = QTreeWidgetItem([f.name, f.kind.value, opts])
                item.setData(0, ROLE_PARENT, parent_path)
                item.setData(0, ROLE_INDEX, i)
                if parent_item is None:
                    self.tree.addTopLevelItem(item)
                else:
                    parent_item.addChild(item)
                if f.is_group:
                    _add(item, f.children, join_path(parent_path, f.name))

        _add(None, self._fields, "")
        self.tree.expandAll()

    def _selected(self) -> Optional[tuple[str, int, QTreeWidgetItem]]:
        item = self.tree.currentItem()
        if item is None:
            return None
        return item.data(0, ROLE_PARENT) or "", int(item.data(0, ROLE_INDEX)), item

    def _selected_field(self) -> Optional[tuple[str, int, FieldDefinition]]:
        sel = self._selected()
        if sel is None:
            return None
        parent_path, index, item = sel
        field = resolve(self._fields, join_path(parent_path, item.text(0)))
        return (parent_path, index, field) if field is not None else None

    # --- Slots -------------------------------------------------------------

    def _on_template_selected(self, current: QListWidgetItem | None, _prev=None) -> None:
        self._show(current.data(Qt.UserRole) if current is not None else None)

    def _add_field(self) -> None:
        f = FieldDialog.get_field(self)
        if f is not None:
            self.set_fields(add_child(self._fields, "", f))

    def _add_child_field(self) -> None:
        sel = self._selected_field()
        if sel is None or not sel[2].is_group:
            QMessageBox.information(self, "Add Child", "Select a group field first.")
            return
        parent_path, _index, group = sel
        f = FieldDialog.get_field(self)
        if f is not None:
            self.set_fields(add_child(self._fields, join_path(parent_path, group.name), f))

    def _edit_field(self) -> None:
        sel = self._selected_field()
        if sel is None:
            return
        parent_path, index, field = sel
        f = FieldDialog.get_field(self, field)
        if f is not None:
            self.set_fields(replace_child(self._fields, parent_path, index, f))

    def _remove_field(self) -> None:
        sel = self._selected()
        if sel is None:
            return
        parent_path, index, _item = sel
        self.set_fields(remove_child(self._fields, parent_path, index))

    def _new_template(self) -> None:
        self._current_id = None
        self.list.setCurrentRow(-1)
        self.name_edit.setText("New template")
        self.set_fields([])

    def save(self) -> Optional[int]:
        name = self.name_edit.text()
        try:
            if self._current_id is None:
                self._current_id = self._service.create_template(name, self._fields)
            else:
                self._service.update_template(self._current_id, name=name, fields=self._fields)
        except (FieldSchemaError, AttributeKeyCollision, PermissionDenied, ValueError) as e:
            QMessageBox.warning(self, "Cannot save template", str(e))
            return None
        self.reload()
        self.templatesChanged.emit()
        return self._current_id

    def _delete_template(self) -> None:
        if self._current_id is None:
            return
        resp = QMessageBox.question(self, "Delete Template", f"Delete template “{self.name_edit.text()}”?",
                                    QMessageBox.Yes | QMessageBox.No, QMessageBox.No)
        if resp != QMessageBox.Yes:
            return
        try:
            self._service.delete_template(self._current_id)
        except (TemplateInUse, PermissionDenied) as e:
            QMessageBox.warning(self, "Cannot delete template", str(e))
            return
        self._current_id = None
        self.reload()
        self.templatesChanged.emit()
