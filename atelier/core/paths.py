"""
Location of per-user files: the content database, uploaded media and logs.

``ATELIER_DATA_DIR`` overrides the platform default.
"""

import os
import sys
from pathlib import Path

APP_DIR_NAME = "AtelierCMS"


def _platform_data_root() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming")
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    return Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")


def get_user_data_path(filename: str = "") -> str:
    """
    Returns ``filename`` inside the data directory, or the directory itself.
    The directory is created on first use.
    """
    override = os.environ.get("ATELIER_DATA_DIR")
    data_dir = Path(override) if override else _platform_data_root() / APP_DIR_NAME
    data_dir.mkdir(parents=True, exist_ok=True)
    return str(data_dir / filename) if filename else str(data_dir)
