from __future__ import annotations

import logging

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QInputDialog, QLabel, QMainWindow, QTabWidget, QToolBar

from mediameta.core.config import Config
from mediameta.core.identity import ADMIN_GROUP, LocalIdentityProvider, Permissions
from mediameta.db.manager import DatabaseManager
from mediameta.db.services import CategoryService, ImageService, TemplateService
from mediameta.storage import ObjectStore

from .category_tab import CategoryTab
from .image_tab import ImagesTab
from .settings_tab import SettingsTab
from .template_tab import TemplateTab

log = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """ The admin console: templates, categories and images over the open database. """

    def __init__(self, cfg: Config, dbm: DatabaseManager, store: ObjectStore,
                 identity: LocalIdentityProvider) -> None:
        super().__init__()
        self.setWindowTitle("Media Metadata")
        self.resize(1200, 800)

        self.config = cfg
        self.dbm = dbm
        self.identity = identity
        self.permissions = Permissions(identity)

        self._tabs = QTabWidget()
        self.setCentralWidget(self._tabs)

        # Tabs
        self.settings_tab = SettingsTab(self.dbm, cfg)
        template_service = TemplateService(self.dbm, self.permissions)
        category_service = CategoryService(self.dbm, self.permissions)
        self.templates_tab = TemplateTab(template_service)
        self.categories_tab = CategoryTab(category_service, template_service)
        self.images_tab = ImagesTab(ImageService(self.dbm, store, self.permissions), category_service,
                                    vision_factory=self.settings_tab.vision_client)

        self.templates_tab.templatesChanged.connect(self.categories_tab.reload)
        self.templates_tab.templatesChanged.connect(self.images_tab.reload)
        self.categories_tab.categoriesChanged.connect(self.images_tab.reload)
        self.settings_tab.reloadedDatabase.connect(self.reload)

        self._tabs.addTab(self.templates_tab, "Templates")
        self._tabs.addTab(self.categories_tab, "Categories")
        self._tabs.addTab(self.images_tab, "Images")
        self._tabs.addTab(self.settings_tab, "Settings")

        # Toolbar actions
        tb = QToolBar("Main")
        tb.setMovable(False)
        self.addToolBar(Qt.TopToolBarArea, tb)
        self._user_label = QLabel()
        tb.addWidget(self._user_label)
        self.act_sign_in = QAction("Sign In…", self)
        self.act_sign_in.triggered.connect(self.sign_in)
        tb.addAction(self.act_sign_in)
        self.act_sign_out = QAction("Sign Out", self)
        self.act_sign_out.triggered.connect(self.sign_out)
        tb.addAction(self.act_sign_out)

        self._apply_identity()

    def reload(self) -> None:
        self.templates_tab.reload()
        self.categories_tab.reload()
        self.images_tab.reload()

    def _apply_identity(self) -> None:
        user = self.identity.current_user()
        admin = self.permissions.can_manage_templates()
        self.templates_tab.set_editable(admin)
        self.categories_tab.set_editable(admin)
        self.images_tab.setEnabled(user is not None)
        self._user_label.setText(f"  {user.name}{' (admin)' if admin else ''}  " if user else "  Not signed in  ")
        self.act_sign_in.setVisible(user is None)
        self.act_sign_out.setVisible(user is not None)

    def sign_in(self) -> None:
        name, ok = QInputDialog.getText(self, "Sign In", "User name:")
        if not ok or not name.strip():
            return
        groups_text, ok = QInputDialog.getText(self, "Sign In", "Groups (comma separated):", text=ADMIN_GROUP)
        groups = [g.strip() for g in groups_text.split(",") if g.strip()] if ok else []
        self.identity.sign_in(name, groups)
        self._apply_identity()

    def sign_out(self) -> None:
        self.identity.sign_out()
        self._apply_identity()
