"""
Application Entry Point.

This module contains the main() function and cleanup logic for the admin
client.
"""

import os
import sys

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from PySide6.QtCore import QSettings  # noqa: E402
from PySide6.QtWidgets import QApplication  # noqa: E402

from atelier.app.constants import (  # noqa: E402
    DEFAULT_DB_NAME,
    DEFAULT_WINDOW_HEIGHT,
    DEFAULT_WINDOW_WIDTH,
    WINDOW_SETTINGS_APP,
    WINDOW_SETTINGS_KEY,
    WINDOW_TITLE,
)
from atelier.core.logging_config import (  # noqa: E402
    get_logger,
    setup_logging,
    shutdown_logging,
)
from atelier.core.paths import get_user_data_path  # noqa: E402
from atelier.services.content_store import ContentStore  # noqa: E402

logger = get_logger(__name__)


def main() -> None:
    """Application entry point."""
    from atelier.gui.site_content_editor import SiteContentEditor

    setup_logging(debug_mode=os.environ.get("ATELIER_DEBUG") == "1")

    store = None
    try:
        logger.info("Starting Application...")

        app = QApplication(sys.argv)
        app.setOrganizationName(WINDOW_SETTINGS_KEY)
        app.setApplicationName(WINDOW_SETTINGS_APP)

        if "--reset-settings" in sys.argv:
            print("Resetting Application Settings...")
            settings = QSettings(WINDOW_SETTINGS_KEY, WINDOW_SETTINGS_APP)
            settings.clear()
            settings.sync()

        db_path = os.environ.get("ATELIER_DB_PATH") or get_user_data_path(
            DEFAULT_DB_NAME
        )
        store = ContentStore(db_path)
        store.connect()

        window = SiteContentEditor(store)
        window.setWindowTitle(WINDOW_TITLE)
        window.resize(DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT)
        window.show()

        logger.info("Entering Event Loop...")
        exit_code = app.exec()
        cleanup_app(store)
        sys.exit(exit_code)
    except Exception:
        logger.exception("CRITICAL: Unhandled exception in main application loop")
        cleanup_app(store)
        sys.exit(1)


def cleanup_app(store: "ContentStore | None" = None) -> None:
    """Performs global cleanup operations before exit."""
    if store is not None:
        store.close()
    logger.info("Shutting down logging.")
    shutdown_logging()
