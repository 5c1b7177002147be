"""Per-user application data location."""

import os
import sys
from pathlib import Path

APP_NAME = "masyavpn"


def app_data_dir() -> Path:
    """Directory holding the engine config and the diagnostic log."""
    override = os.environ.get("MASYAVPN_DATA_DIR")
    if override:
        return Path(override)

    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.join(Path.home(), "AppData", "Roaming")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.join(Path.home(), ".local", "share")
    return Path(base) / APP_NAME
