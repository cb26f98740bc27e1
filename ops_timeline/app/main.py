"""
Main entry point for the Operations Timeline application.
"""
import logging
import sys

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor, QPalette
from PySide6.QtWidgets import QApplication, QMessageBox

from ..core import (
    Board,
    LocalDataProvider,
    StoreHandle,
    TimelineError,
    load_settings,
)
from .main_window import MainWindow

logger = logging.getLogger(__name__)


def _dark_palette() -> QPalette:
    palette = QPalette()
    palette.setColor(QPalette.ColorRole.Window, QColor(53, 53, 53))
    palette.setColor(QPalette.ColorRole.WindowText, Qt.GlobalColor.white)
    palette.setColor(QPalette.ColorRole.Base, QColor(25, 25, 25))
    palette.setColor(QPalette.ColorRole.AlternateBase, QColor(53, 53, 53))
    palette.setColor(QPalette.ColorRole.ToolTipBase, Qt.GlobalColor.white)
    palette.setColor(QPalette.ColorRole.ToolTipText, Qt.GlobalColor.white)
    palette.setColor(QPalette.ColorRole.Text, Qt.GlobalColor.white)
    palette.setColor(QPalette.ColorRole.Button, QColor(53, 53, 53))
    palette.setColor(QPalette.ColorRole.ButtonText, Qt.GlobalColor.white)
    palette.setColor(QPalette.ColorRole.BrightText, Qt.GlobalColor.red)
    palette.setColor(QPalette.ColorRole.Link, QColor(42, 130, 218))
    palette.setColor(QPalette.ColorRole.Highlight, QColor(42, 130, 218))
    palette.setColor(QPalette.ColorRole.HighlightedText, Qt.GlobalColor.black)
    return palette


def main():
    """Run the Operations Timeline application."""
    settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    app = QApplication(sys.argv)

    app.setApplicationName("Operations Timeline")
    app.setOrganizationName("OpsTimeline")
    app.setApplicationVersion("1.0.0")

    app.setStyle("Fusion")
    app.setPalette(_dark_palette())

    # One shared database handle for the whole process
    handle = StoreHandle(settings.resolved_db_path(), seed_demo=settings.seed_demo)
    board = Board(LocalDataProvider(handle), handle=handle, settings=settings)

    try:
        board.load()
    except TimelineError as e:
        logger.exception("Failed to open database %s", settings.resolved_db_path())
        QMessageBox.critical(None, "Database Error", f"Failed to open the database:\n{e}")
        sys.exit(1)

    window = MainWindow(board)
    window.show()

    exit_code = app.exec()
    handle.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
