"""Platform-specific locations for the user-level config."""

import os
from pathlib import Path
from typing import Optional

APP_DIR_NAME = "secret-squirrel"


def is_wsl() -> bool:
    """Detect the Windows Subsystem for Linux."""
    try:
        return "microsoft" in Path("/proc/version").read_text().lower()
    except OSError:
        return False


def get_config_dir() -> Optional[Path]:
    """
    Return the user config directory.

    - Windows (not WSL): %APPDATA%/secret-squirrel
    - Linux, macOS, WSL: ~/.config/secret-squirrel

    Returns None when the relevant environment variable is unset.
    """
    if os.name == "nt" and not is_wsl():
        appdata = os.environ.get("APPDATA")
        return Path(appdata) / APP_DIR_NAME if appdata else None

    home = os.environ.get("HOME")
    return Path(home) / ".config" / APP_DIR_NAME if home else None
