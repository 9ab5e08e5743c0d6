import sys

from PySide6.QtCore import QLocale, Qt
from PySide6.QtGui import QAction, QColor, QIcon, QPalette
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMenu,
    QMessageBox,
    QPushButton,
    QStyle,
    QVBoxLayout,
    QWidget,
)

from core import (
    DesktopFileError,
    ProcessSpawnError,
    TerminalUnavailableError,
    list_desktop_apps,
)
from execline import ExecError

APP_NAME = "AppBoard"
LAUNCH_ERRORS = (ExecError, DesktopFileError, TerminalUnavailableError, ProcessSpawnError)


def entry_icon(icon_name, fallback):
    icon = QIcon()
    if icon_name:
        icon = QIcon.fromTheme(icon_name)
        if icon.isNull() and icon_name.startswith("/"):
            icon = QIcon(icon_name)
    if icon.isNull():
        icon = fallback
    return icon


class AppBoard(QWidget):
    def __init__(self, locale=None):
        super().__init__()
        self.setWindowTitle(APP_NAME)
        self.setMinimumSize(640, 560)

        self.locale = locale or QLocale.system().name()
        self.apps = []
        self.fallback_icon = self.style().standardIcon(QStyle.SP_DesktopIcon)

        main_layout = QVBoxLayout(self)
        main_layout.setContentsMargins(24, 24, 24, 24)
        main_layout.setSpacing(12)

        header = QHBoxLayout()
        title = QLabel(APP_NAME)
        title.setObjectName("title")
        header.addWidget(title)
        header.addStretch()
        reload_button = QPushButton("Reload")
        reload_button.setObjectName("secondaryButton")
        reload_button.clicked.connect(self.load_apps)
        header.addWidget(reload_button)
        main_layout.addLayout(header)

        self.filter_input = QLineEdit()
        self.filter_input.setPlaceholderText("Search apps")
        self.filter_input.textChanged.connect(self.refresh_list)
        main_layout.addWidget(self.filter_input)

        self.list_widget = QListWidget()
        self.list_widget.setContextMenuPolicy(Qt.CustomContextMenu)
        self.list_widget.customContextMenuRequested.connect(self._show_menu)
        self.list_widget.itemActivated.connect(lambda item: self.launch(item.data(Qt.UserRole)))
        main_layout.addWidget(self.list_widget, 1)

        self.status_label = QLabel()
        self.status_label.setObjectName("status")
        main_layout.addWidget(self.status_label)

        self.load_apps()

    def load_apps(self):
        self.apps = list_desktop_apps()
        self.refresh_list(self.filter_input.text())

    def refresh_list(self, text):
        filter_text = text.lower().strip()
        self.list_widget.clear()
        for desktop_file in self.apps:
            name = desktop_file.display_name(self.locale)
            comment = desktop_file.comment(self.locale)
            keywords = " ".join(desktop_file.keywords(self.locale)).lower()
            if filter_text and not any(filter_text in field for field in (name.lower(), comment.lower(), keywords)):
                continue
            item = QListWidgetItem(entry_icon(desktop_file.icon_name(self.locale), self.fallback_icon), name)
            if comment:
                item.setToolTip(comment)
            item.setData(Qt.UserRole, desktop_file)
            self.list_widget.addItem(item)

        if self.list_widget.count():
            self.list_widget.setCurrentRow(0)
        self.status_label.setText(f"{self.list_widget.count()} of {len(self.apps)} applications")

    def _show_menu(self, position):
        item = self.list_widget.itemAt(position)
        if not item:
            return
        desktop_file = item.data(Qt.UserRole)
        menu = QMenu(self)
        open_action = QAction("Open", menu)
        open_action.triggered.connect(lambda: self.launch(desktop_file))
        menu.addAction(open_action)

        actions = list(desktop_file.by_action())
        if actions:
            menu.addSeparator()
        for desktop_action in actions:
            menu_action = QAction(
                entry_icon(desktop_action.icon_name(self.locale), QIcon()),
                desktop_action.display_name(self.locale),
                menu,
            )
            menu_action.triggered.connect(
                lambda checked=False, target=desktop_action: self.launch(target)
            )
            menu.addAction(menu_action)
        menu.exec(self.list_widget.viewport().mapToGlobal(position))

    def launch(self, target):
        if target is None:
            return
        try:
            if hasattr(target, "start_application"):
                target.start_application(locale=self.locale)
            else:
                target.start(locale=self.locale)
        except LAUNCH_ERRORS as exc:
            QMessageBox.critical(self, "Launch failed", str(exc))


def apply_theme(app):
    app.setStyle("Fusion")
    palette = app.palette()
    palette.setColor(QPalette.Window, QColor("#f5f2ec"))
    palette.setColor(QPalette.WindowText, QColor("#1f1f1f"))
    palette.setColor(QPalette.Base, QColor("#ffffff"))
    palette.setColor(QPalette.Button, QColor("#ffffff"))
    palette.setColor(QPalette.ButtonText, QColor("#1f1f1f"))
    palette.setColor(QPalette.Highlight, QColor("#b55a30"))
    palette.setColor(QPalette.HighlightedText, QColor("#ffffff"))
    app.setPalette(palette)

    app.setStyleSheet(
        """
        QLabel#title {
            font-size: 26px;
            font-weight: 600;
        }
        QLabel#status {
            color: #5c5a56;
        }
        QListWidget {
            border: 1px solid #e0d6c9;
            border-radius: 12px;
            padding: 6px;
        }
        QListWidget::item {
            padding: 6px;
        }
        QPushButton#secondaryButton {
            background: #ffffff;
            border: 1px solid #d2c9bc;
            border-radius: 10px;
            padding: 8px 16px;
            font-weight: 600;
        }
        QPushButton#secondaryButton:hover {
            background: #f0e8dd;
        }
        """
    )


def main():
    app = QApplication(sys.argv)
    apply_theme(app)
    window = AppBoard()
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
