from __future__ import annotations

from typing import Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QAbstractItemView, QHBoxLayout, QInputDialog, QMessageBox, QPushButton, QTableWidget, QTableWidgetItem,
    QVBoxLayout, QWidget,
)

from mediameta.core.identity import PermissionDenied
from mediameta.db.services import CategoryInUse, CategoryService, TemplateNotFound, TemplateService


class CategoryTab(QWidget):
    """ Table of categories with their template and image count. """
    categoriesChanged = Signal()

    COLUMNS = ["Name", "Template", "Images"]

    def __init__(self, service: CategoryService, template_service: TemplateService, *, can_edit: bool = True) -> None:
        super().__init__()
        self._service = service
        self._templates = template_service

        self.table = QTableWidget(0, len(self.COLUMNS))
        self.table.setHorizontalHeaderLabels(self.COLUMNS)
        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SingleSelection)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.horizontalHeader().setStretchLastSection(True)

        self.btn_new = QPushButton("New…")
        self.btn_new.clicked.connect(self._new_category)
        self.btn_rename = QPushButton("Rename…")
        self.btn_rename.clicked.connect(self._rename_category)
        self.btn_template = QPushButton("Change Template…")
        self.btn_template.clicked.connect(self._change_template)
        self.btn_delete = QPushButton("Delete")
        self.btn_delete.clicked.connect(self._delete_category)

        row = QHBoxLayout()
        for b in (self.btn_new, self.btn_rename, self.btn_template, self.btn_delete):
            row.addWidget(b)
        row.addStretch(1)

        lay = QVBoxLayout(self)
        lay.addWidget(self.table, 1)
        lay.addLayout(row)

        self.set_editable(can_edit)
        self.reload()

    def set_editable(self, editable: bool) -> None:
        for b in (self.btn_new, self.btn_rename, self.btn_template, self.btn_delete):
            b.setEnabled(editable)

    def reload(self) -> None:
        names = {t.id: t.name for t in self._templates.list_templates()}
        counts = self._service.image_counts()
        cats = self._service.list_categories()
        self.table.setRowCount(len(cats))
        for r, c in enumerate(cats):
            name = QTableWidgetItem(c.name)
            name.setData(Qt.UserRole, c.id)
            self.table.setItem(r, 0, name)
            self.table.setItem(r, 1, QTableWidgetItem(names.get(c.template_id, "?")))
            self.table.setItem(r, 2, QTableWidgetItem(str(counts.get(c.id, 0))))

    def selected_id(self) -> Optional[int]:
        row = self.table.currentRow()
        if row < 0 or self.table.item(row, 0) is None:
            return None
        return self.table.item(row, 0).data(Qt.UserRole)

    def _pick_template(self, title: str) -> Optional[int]:
        templates = self._templates.list_templates()
        if not templates:
            QMessageBox.information(self, title, "Create a template first.")
            return None
        labels = [f"{t.name} (#{t.id})" for t in templates]
        choice, ok = QInputDialog.getItem(self, title, "Template:", labels, 0, False)
        if not ok or choice not in labels:
            return None
        return templates[labels.index(choice)].id

    def _run(self, title: str, fn) -> bool:
        try:
            fn()
        except (CategoryInUse, TemplateNotFound, PermissionDenied, ValueError) as e:
            QMessageBox.warning(self, title, str(e))
            return False
        self.reload()
        self.categoriesChanged.emit()
        return True

    # --- Slots -------------------------------------------------------------

    def _new_category(self) -> None:
        name, ok = QInputDialog.getText(self, "New Category", "Name:")
        if not ok or not name.strip():
            return
        template_id = self._pick_template("New Category")
        if template_id is None:
            return
        self._run("New Category", lambda: self._service.create_category(name, template_id))

    def _rename_category(self) -> None:
        cid = self.selected_id()
        if cid is None:
            return
        name, ok = QInputDialog.getText(self, "Rename Category", "Name:")
        if ok and name.strip():
            self._run("Rename Category", lambda: self._service.update_category(cid, name=name))

    def _change_template(self) -> None:
        cid = self.selected_id()
        if cid is None:
            return
        template_id = self._pick_template("Change Template")
        if template_id is not None:
            self._run("Change Template", lambda: self._service.update_category(cid, template_id=template_id))

    def _delete_category(self) -> None:
        cid = self.selected_id()
        if cid is None:
            return
        resp = QMessageBox.question(self, "Delete Category", "Delete the selected category?",
                                    QMessageBox.Yes | QMessageBox.No, QMessageBox.No)
        if resp == QMessageBox.Yes:
            self._run("Cannot delete category", lambda: self._service.delete_category(cid))
