"""
NAM Installer - GUI (PySide6)
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Optional

from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtGui import QColor, QFont, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSplitter,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from install_pipeline import Installer, InstallInProgressError
from installer_config import InstallRequest
from name_codec import SelectionKind
from option_tree import OptionTreeError
from progress import InstallPhase

DEFAULT_PLUGINS_DIR = str(Path.home() / "Documents" / "SimCity 4" / "Plugins")
POLL_INTERVAL_MS = 300

KEY_ROLE = Qt.UserRole
KIND_ROLE = Qt.UserRole + 1


# ── Main Window ───────────────────────────────────────────────────────

class MainWindow(QMainWindow):
    # Signal used to safely append log messages from the install thread.
    # Qt automatically queues cross-thread signal emissions to the main thread.
    _log_message = Signal(str)

    def __init__(
        self,
        installer_factory: Callable[[Callable[[str], None]], Installer],
        logger: logging.Logger | None = None,
    ):
        super().__init__()
        self._logger = logger or logging.getLogger("naminstaller")
        self.installer: Optional[Installer] = None
        self._updating_checks = False
        self._seen_copied = 0

        self._build_ui()
        self._log_message.connect(self.log_text.appendPlainText)

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(POLL_INTERVAL_MS)
        self._poll_timer.timeout.connect(self._poll_progress)

        try:
            self.installer = installer_factory(self._append_log)
        except (OptionTreeError, OSError, ValueError) as e:
            self._logger.exception("Could not load installation files")
            QMessageBox.critical(self, "Installation Files Missing", str(e))
            self.install_btn.setEnabled(False)
            self.setWindowTitle("NAM Installer")
            return

        self.setWindowTitle(self.installer.config.window_title)
        self._populate_tree()

    def _build_ui(self):
        self.setMinimumSize(1100, 700)
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        # ── Destination row ───────────────────────────────────────────
        dest_group = QGroupBox("Plugins Folder")
        dest_layout = QHBoxLayout(dest_group)
        self.dest_edit = QLineEdit(DEFAULT_PLUGINS_DIR)
        dest_layout.addWidget(self.dest_edit, 1)
        browse_btn = QPushButton("Browse...")
        browse_btn.clicked.connect(self._browse_destination)
        dest_layout.addWidget(browse_btn)
        main_layout.addWidget(dest_group)

        # ── Splitter: options | info ──────────────────────────────────
        splitter = QSplitter(Qt.Horizontal)

        self.tree = QTreeWidget()
        self.tree.setHeaderLabels(["Component"])
        self.tree.itemChanged.connect(self._on_item_changed)
        self.tree.itemSelectionChanged.connect(self._on_selection_changed)
        splitter.addWidget(self.tree)

        info_widget = QWidget()
        info_layout = QVBoxLayout(info_widget)
        info_layout.setContentsMargins(0, 0, 0, 0)
        self.image_label = QLabel()
        self.image_label.setAlignment(Qt.AlignCenter)
        self.image_label.setMinimumHeight(160)
        info_layout.addWidget(self.image_label)
        self.docs_text = QPlainTextEdit()
        self.docs_text.setReadOnly(True)
        info_layout.addWidget(self.docs_text, 1)
        splitter.addWidget(info_widget)

        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)
        main_layout.addWidget(splitter, 1)

        # ── Progress ──────────────────────────────────────────────────
        self.clean_progress = QProgressBar()
        self.clean_progress.setFormat("Cleaning %v / %m")
        main_layout.addWidget(self.clean_progress)
        self.install_progress = QProgressBar()
        self.install_progress.setFormat("Installing %v / %m")
        main_layout.addWidget(self.install_progress)

        action_row = QHBoxLayout()
        action_row.addStretch()
        self.install_btn = QPushButton("Install")
        self.install_btn.clicked.connect(self._install)
        action_row.addWidget(self.install_btn)
        main_layout.addLayout(action_row)

        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Consolas", 9))
        self.log_text.setMaximumBlockCount(5000)
        self.log_text.setMaximumHeight(160)
        main_layout.addWidget(self.log_text)

    def _append_log(self, msg: str):
        self._logger.info(msg)
        self._log_message.emit(msg)  # thread-safe: Qt queues this to the main thread

    # ── Option tree ───────────────────────────────────────────────────

    def _populate_tree(self):
        self._updating_checks = True
        self.tree.clear()
        root = self._add_item(self.tree, self.installer.tree_as_dict())
        root.setExpanded(True)
        self._updating_checks = False

    def _add_item(self, parent, node: dict) -> QTreeWidgetItem:
        kind = SelectionKind(node["radio_check"])
        item = QTreeWidgetItem(parent, [node["name"]])
        item.setData(0, KEY_ROLE, node["key"])
        item.setData(0, KIND_ROLE, kind.value)
        item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
        item.setCheckState(0, Qt.Checked if kind.default_checked else Qt.Unchecked)
        if kind.is_locked:
            item.setFlags(item.flags() & ~Qt.ItemIsUserCheckable)
            item.setForeground(0, QColor("#757575"))
        for child in node["children"]:
            self._add_item(item, child)
        return item

    @staticmethod
    def _kind(item: QTreeWidgetItem) -> SelectionKind:
        return SelectionKind(item.data(0, KIND_ROLE))

    def _is_radio(self, item: QTreeWidgetItem) -> bool:
        parent = item.parent()
        if parent is not None and self._kind(parent) is SelectionKind.RADIO_FOLDER:
            return True
        return self._kind(item).is_radio

    def _on_item_changed(self, item: QTreeWidgetItem, column: int):
        if self._updating_checks or item.checkState(0) != Qt.Checked:
            return
        if not self._is_radio(item):
            return
        parent = item.parent() or self.tree.invisibleRootItem()
        self._updating_checks = True
        for i in range(parent.childCount()):
            sibling = parent.child(i)
            if sibling is not item and self._is_radio(sibling):
                sibling.setCheckState(0, Qt.Unchecked)
        self._updating_checks = False

    def _selected_keys(self) -> list[str]:
        keys: list[str] = []

        def visit(item: QTreeWidgetItem):
            if item.checkState(0) != Qt.Checked:
                return  # unchecked folders exclude their children
            keys.append(item.data(0, KEY_ROLE))
            for i in range(item.childCount()):
                visit(item.child(i))

        root = self.tree.invisibleRootItem()
        for i in range(root.childCount()):
            visit(root.child(i))
        return keys

    def _on_selection_changed(self):
        items = self.tree.selectedItems()
        if not items or self.installer is None:
            return
        key = items[0].data(0, KEY_ROLE)
        self.docs_text.setPlainText(self.installer.option_docs(key))
        image = self.installer.option_image(key)
        pixmap = QPixmap()
        if image and pixmap.loadFromData(image):
            self.image_label.setPixmap(
                pixmap.scaled(320, 160, Qt.KeepAspectRatio, Qt.SmoothTransformation)
            )
        else:
            self.image_label.clear()

    # ── Install ───────────────────────────────────────────────────────

    def _browse_destination(self):
        d = QFileDialog.getExistingDirectory(self, "Select Plugins Folder", self.dest_edit.text())
        if d:
            self.dest_edit.setText(d)

    def _install(self):
        if self.installer is None:
            return
        try:
            request = InstallRequest(
                files_to_install=self._selected_keys(), location=self.dest_edit.text()
            )
            snapshot = self.installer.start_install(request)
        except InstallInProgressError as e:
            QMessageBox.warning(self, "Operation in Progress", str(e))
            return
        except ValueError as e:
            QMessageBox.warning(self, "Invalid Plugins Folder", str(e))
            return

        self._seen_copied = 0
        self._show_progress(snapshot)
        self.install_btn.setEnabled(False)
        self._poll_timer.start()

    def _show_progress(self, snap):
        self.clean_progress.setRange(0, max(snap.cleaning_max, 1))
        self.clean_progress.setValue(snap.cleaning_count)
        self.install_progress.setRange(0, max(snap.installed_max, 1))
        self.install_progress.setValue(snap.installed_count)

    def _poll_progress(self):
        snap = self.installer.progress()
        self._show_progress(snap)
        for name in snap.files_copied[self._seen_copied:]:
            self.log_text.appendPlainText(f"  Installed: {name}")
        self._seen_copied = len(snap.files_copied)

        if snap.phase is InstallPhase.IDLE:
            self._poll_timer.stop()
            self.install_btn.setEnabled(True)
            if snap.files_skipped:
                QMessageBox.warning(
                    self,
                    "Installation Finished",
                    f"{snap.files_skipped} component(s) could not be fully installed. "
                    "See the log for details.",
                )
            else:
                QMessageBox.information(self, "Installation Finished", "The installation is complete.")

    # ── Close ─────────────────────────────────────────────────────────

    def closeEvent(self, event):
        if self.installer and self.installer.tracker.busy:
            reply = QMessageBox.question(
                self,
                "Operation in Progress",
                "The installation is still running. Quit anyway?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                event.ignore()
                return
        event.accept()


# ── Entry Point ───────────────────────────────────────────────────────

def main(
    logger: logging.Logger | None = None,
    *,
    installer_factory: Callable[[Callable[[str], None]], Installer],
):
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    window = MainWindow(installer_factory, logger=logger)
    window.show()

    sys.exit(app.exec())
