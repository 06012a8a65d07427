from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from PySide6.QtCore import Qt, QSize
from PySide6.QtGui import QGuiApplication, QIcon, QPixmap
from PySide6.QtWidgets import (
    QComboBox, QFileDialog, QGroupBox, QHBoxLayout, QLabel, QListWidget, QListWidgetItem, QMessageBox,
    QPushButton, QSplitter, QStyle, QVBoxLayout, QWidget,
)

from mediameta.core.identity import PermissionDenied
from mediameta.db.services import CategoryService, ImageNotFound, ImageService, PendingUpload
from mediameta.schema import AttributeKeyCollision, MetadataValidationError
from mediameta.storage import ObjectStoreError
from mediameta.vision import VisionClient, annotate_batch

from .metadata_form import MetadataForm

log = logging.getLogger(__name__)

VisionFactory = Callable[[], Optional[VisionClient]]

_EDIT_ERRORS = (MetadataValidationError, AttributeKeyCollision, ObjectStoreError, PermissionDenied, ImageNotFound)


class GalleryList(QListWidget):
    """
    Icon grid of a category's images in sequence order.
    Stores per-item:
      - Qt.UserRole -> image_id (int)
    The check box of an item is the image's active flag.
    """

    def __init__(self, on_reordered: Callable[[List[int]], None], parent=None):
        super().__init__(parent)
        self.setViewMode(QListWidget.IconMode)
        self.setIconSize(QSize(128, 128))
        self.setResizeMode(QListWidget.Adjust)
        self.setMovement(QListWidget.Snap)
        self.setDragDropMode(QListWidget.InternalMove)
        self.setDefaultDropAction(Qt.MoveAction)
        self._on_reordered = on_reordered

    def image_ids(self) -> List[int]:
        return [self.item(i).data(Qt.UserRole) for i in range(self.count())]

    def dropEvent(self, event):
        super().dropEvent(event)
        self._on_reordered(self.image_ids())


class ImagesTab(QWidget):
    """
    Left: category picker and gallery; the read view of the selected image below it.
    Right: metadata editor for the selected image, and the upload queue with a form per pending file.
    """

    def __init__(self, service: ImageService, category_service: CategoryService,
                 vision_factory: VisionFactory | None = None) -> None:
        super().__init__()
        self._service = service
        self._categories = category_service
        self._vision_factory = vision_factory or (lambda: None)

        self._current_category_id: Optional[int] = None
        self._selected_image_id: Optional[int] = None
        self._edited: Optional[dict] = None
        self._pending: list[PendingUpload] = []

        splitter = QSplitter(Qt.Horizontal, self)

        # Left: category + gallery + read view
        left = QWidget()
        ll = QVBoxLayout(left)
        self.category_box = QComboBox()
        self.category_box.currentIndexChanged.connect(self._on_category_changed)
        ll.addWidget(self.category_box)

        self.gallery = GalleryList(on_reordered=self._on_reordered)
        self.gallery.itemClicked.connect(self._on_image_clicked)
        self.gallery.itemChanged.connect(self._on_item_changed)
        ll.addWidget(self.gallery, 1)

        self.read_view = QLabel("No image selected")
        self.read_view.setTextInteractionFlags(Qt.TextSelectableByMouse)
        self.read_view.setStyleSheet("color: #888; padding: 4px;")
        ll.addWidget(self.read_view)

        row = QHBoxLayout()
        self.btn_download = QPushButton("Copy Download Link")
        self.btn_download.clicked.connect(self._copy_download_url)
        self.btn_delete = QPushButton("Delete")
        self.btn_delete.clicked.connect(self._delete_image)
        row.addWidget(self.btn_download)
        row.addWidget(self.btn_delete)
        row.addStretch(1)
        ll.addLayout(row)
        splitter.addWidget(left)

        # Right: editor + upload queue
        right = QWidget()
        rl = QVBoxLayout(right)

        grp_edit = QGroupBox("Metadata")
        el = QVBoxLayout(grp_edit)
        self.editor = MetadataForm()
        self.editor.metadataChanged.connect(self._on_metadata_edited)
        el.addWidget(self.editor)
        self.btn_save = QPushButton("Save Metadata")
        self.btn_save.clicked.connect(self._save_metadata)
        self.btn_save.setEnabled(False)
        el.addWidget(self.btn_save)
        rl.addWidget(grp_edit)

        grp_upload = QGroupBox("Upload")
        ul = QVBoxLayout(grp_upload)
        self.pending_list = QListWidget()
        self.pending_list.currentRowChanged.connect(self._on_pending_selected)
        ul.addWidget(self.pending_list)
        self.pending_form = MetadataForm()
        self.pending_form.metadataChanged.connect(self._on_pending_edited)
        ul.addWidget(self.pending_form)
        urow = QHBoxLayout()
        self.btn_add = QPushButton("Add Files…")
        self.btn_add.clicked.connect(self._add_files)
        self.btn_autofill = QPushButton("Auto-fill")
        self.btn_autofill.clicked.connect(self.autofill)
        self.btn_save_all = QPushButton("Save All")
        self.btn_save_all.clicked.connect(self.save_all)
        for b in (self.btn_add, self.btn_autofill, self.btn_save_all):
            urow.addWidget(b)
        urow.addStretch(1)
        ul.addLayout(urow)
        rl.addWidget(grp_upload, 1)

        splitter.addWidget(right)
        splitter.setSizes([600, 400])

        lay = QVBoxLayout(self)
        lay.addWidget(splitter)

        self.reload()

    # --- Public API --------------------------------------------------------

    def reload(self) -> None:
        """ Refill the category picker, keeping the current category where it still exists. """
        keep = self._current_category_id
        self.category_box.blockSignals(True)
        self.category_box.clear()
        counts = self._categories.image_counts()
        for c in self._categories.list_categories():
            self.category_box.addItem(f"{c.name} ({counts.get(c.id, 0)})", c.id)
        idx = self.category_box.findData(keep) if keep is not None else -1
        self.category_box.setCurrentIndex(idx if idx >= 0 else (0 if self.category_box.count() else -1))
        self.category_box.blockSignals(False)
        self._on_category_changed(self.category_box.currentIndex())

    def add_pending(self, file_name: str, data: bytes) -> PendingUpload:
        p = PendingUpload(file_name=file_name, data=data)
        self._pending.append(p)
        self.pending_list.addItem(file_name)
        self.pending_list.setCurrentRow(len(self._pending) - 1)
        return p

    def pending(self) -> list[PendingUpload]:
        return list(self._pending)

    # --- Gallery -----------------------------------------------------------

    def _on_category_changed(self, index: int) -> None:
        self._current_category_id = self.category_box.itemData(index) if index >= 0 else None
        fields = self._service.fields_for_category(self._current_category_id) \
            if self._current_category_id is not None else []
        self.pending_form.set_form(fields, self._current_pending().metadata if self._current_pending() else {})
        self._reload_gallery()

    def _reload_gallery(self) -> None:
        self.gallery.blockSignals(True)
        self.gallery.clear()
        self._select_image(None)
        if self._current_category_id is not None:
            for img in self._service.list_images(self._current_category_id):
                pm = QPixmap()
                tb = self._service.thumbnail_bytes(img.id)
                if tb:
                    pm.loadFromData(tb)
                icon = QIcon(pm) if not pm.isNull() else self.style().standardIcon(QStyle.SP_FileIcon)
                li = QListWidgetItem(icon, img.file_name)
                li.setData(Qt.UserRole, img.id)
                li.setFlags(li.flags() | Qt.ItemIsUserCheckable)
                li.setCheckState(Qt.Checked if img.is_active else Qt.Unchecked)
                self.gallery.addItem(li)
        self.gallery.blockSignals(False)

    def _select_image(self, image_id: Optional[int]) -> None:
        self._selected_image_id = image_id
        self._edited = None
        self.btn_save.setEnabled(False)
        if image_id is None:
            self.read_view.setText("No image selected")
            self.editor.set_form([], {})
            return
        img = self._service.get_image(image_id)
        self.read_view.setText("\n".join(self._service.read_view(image_id)))
        self.editor.set_form(self._service.fields_for_image(image_id), img.metadata_values)

    def _on_image_clicked(self, item: QListWidgetItem) -> None:
        self._select_image(item.data(Qt.UserRole))

    def _on_item_changed(self, item: QListWidgetItem) -> None:
        image_id = item.data(Qt.UserRole)
        checked = item.checkState() == Qt.Checked
        try:
            self._service.set_active(image_id, checked)
        except _EDIT_ERRORS as e:
            QMessageBox.warning(self, "Cannot change image", str(e))
            self.gallery.blockSignals(True)
            item.setCheckState(Qt.Unchecked if checked else Qt.Checked)
            self.gallery.blockSignals(False)

    def _on_reordered(self, ordered_image_ids: List[int]) -> None:
        """ Persist the dropped order as the new sequence. """
        if self._current_category_id is None or not ordered_image_ids:
            return
        try:
            result = self._service.save_sequence(self._current_category_id, ordered_image_ids)
        except PermissionDenied as e:
            QMessageBox.warning(self, "Reorder", str(e))
            self._reload_gallery()
            return
        if not result.ok:
            QMessageBox.warning(self, "Reorder", "Some images were not reordered:\n"
                                + "\n".join(str(f) for f in result.failed))
            self._reload_gallery()

    # --- Editing -----------------------------------------------------------

    def _on_metadata_edited(self, metadata: dict) -> None:
        self._edited = metadata
        self.btn_save.setEnabled(self._selected_image_id is not None)

    def _save_metadata(self) -> None:
        if self._selected_image_id is None or self._edited is None:
            return
        try:
            self._service.update_metadata(self._selected_image_id, self._edited)
        except _EDIT_ERRORS as e:
            QMessageBox.warning(self, "Cannot save metadata", str(e))
            return
        self._select_image(self._selected_image_id)

    def _copy_download_url(self) -> None:
        if self._selected_image_id is None:
            return
        try:
            url = self._service.download_url(self._selected_image_id)
        except _EDIT_ERRORS as e:
            QMessageBox.warning(self, "Cannot get download link", str(e))
            return
        QGuiApplication.clipboard().setText(url)

    def _delete_image(self) -> None:
        if self._selected_image_id is None:
            return
        resp = QMessageBox.question(self, "Delete Image", "Delete the selected image and its file?",
                                    QMessageBox.Yes | QMessageBox.No, QMessageBox.No)
        if resp != QMessageBox.Yes:
            return
        try:
            self._service.delete_image(self._selected_image_id)
        except _EDIT_ERRORS as e:
            QMessageBox.warning(self, "Cannot delete image", str(e))
            return
        self._reload_gallery()

    # --- Upload queue ------------------------------------------------------

    def _current_pending(self) -> Optional[PendingUpload]:
        row = self.pending_list.currentRow()
        return self._pending[row] if 0 <= row < len(self._pending) else None

    def _on_pending_selected(self, _row: int) -> None:
        p = self._current_pending()
        fields = self._service.fields_for_category(self._current_category_id) \
            if self._current_category_id is not None else []
        self.pending_form.set_form(fields, p.metadata if p else {})

    def _on_pending_edited(self, metadata: dict) -> None:
        p = self._current_pending()
        if p is not None:
            p.metadata = metadata

    def _add_files(self) -> None:
        if self._current_category_id is None:
            QMessageBox.information(self, "Select category", "Select a category to upload into.")
            return
        files, _ = QFileDialog.getOpenFileNames(
            self, "Add Files", "", "Media (*.png *.jpg *.jpeg *.webp *.gif *.mp4 *.mov *.webm);;All Files (*)"
        )
        for f in files:
            p = Path(f)
            self.add_pending(p.name, p.read_bytes())

    def autofill(self) -> None:
        if not self._pending or self._current_category_id is None:
            return
        client = self._vision_factory()
        if client is None:
            QMessageBox.information(self, "Auto-fill", "Set a vision API key in Settings first.")
            return
        fields = self._service.fields_for_category(self._current_category_id)
        try:
            result = annotate_batch(client, self._pending, fields)
        finally:
            client.close()
        self._on_pending_selected(self.pending_list.currentRow())
        if not result.ok:
            QMessageBox.warning(self, "Auto-fill", "\n".join(str(f) for f in result.failed))

    def save_all(self) -> None:
        if not self._pending or self._current_category_id is None:
            return
        result = self._service.upload_batch(self._current_category_id, self._pending)
        failed = {id(f.item) for f in result.failed}
        self._pending = [p for p in self._pending if id(p) in failed]
        self.pending_list.clear()
        self.pending_list.addItems([p.file_name for p in self._pending])
        self.reload()
        if not result.ok:
            QMessageBox.warning(self, "Upload", f"{result.summary()}:\n" + "\n".join(str(f) for f in result.failed))
