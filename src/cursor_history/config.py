"""Platform-aware path resolution for Cursor data directories."""

import os
import sys
from pathlib import Path

from .errors import InvalidConfigError

DATA_PATH_ENV = "CURSOR_DATA_PATH"
GLOBAL_PATH_ENV = "CURSOR_GLOBAL_STORAGE_PATH"
DRIVER_ENV = "CURSOR_HISTORY_SQLITE_DRIVER"


def _cursor_user_dir() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Cursor" / "User"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "Cursor" / "User"
    else:  # Linux
        return Path.home() / ".config" / "Cursor" / "User"


def get_cursor_workspace_path(custom: str | Path | None = None) -> Path:
    """Return the path to Cursor's workspaceStorage directory."""
    if custom:
        return expand_path(custom)

    env = os.environ.get(DATA_PATH_ENV)
    if env:
        return expand_path(env)

    return _cursor_user_dir() / "workspaceStorage"


def get_cursor_global_path(custom_data_path: str | Path | None = None) -> Path:
    """Return the path to Cursor's globalStorage state.vscdb."""
    env = os.environ.get(GLOBAL_PATH_ENV)
    if env:
        return expand_path(env)

    data_path = custom_data_path or os.environ.get(DATA_PATH_ENV)
    if data_path:
        # A custom workspaceStorage is assumed to sit next to globalStorage
        return expand_path(data_path).parent / "globalStorage" / "state.vscdb"

    return _cursor_user_dir() / "globalStorage" / "state.vscdb"


def get_driver_preference() -> str | None:
    """Return the driver name requested through the environment, if any."""
    value = os.environ.get(DRIVER_ENV, "").strip()
    return value or None


def expand_path(path: str | Path) -> Path:
    """Expand a leading ``~`` to the user's home directory."""
    return Path(os.path.expanduser(str(path)))


def contract_path(path: str | Path) -> str:
    """Replace the user's home directory prefix with ``~`` for display."""
    text = str(path)
    home = str(Path.home())
    if home and home != "/" and (text == home or text.startswith(home + os.sep)):
        return "~" + text[len(home):]
    return text


def validate_options(
    limit: int | None = None,
    offset: int | None = None,
    context_chars: int | None = None,
) -> None:
    """Reject negative paging and snippet options."""
    if limit is not None and limit < 0:
        raise InvalidConfigError("limit", limit, "must be zero or positive")
    if offset is not None and offset < 0:
        raise InvalidConfigError("offset", offset, "must be zero or positive")
    if context_chars is not None and context_chars < 0:
        raise InvalidConfigError("context_chars", context_chars, "must be zero or positive")
