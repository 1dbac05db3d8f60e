"""Exception types raised by cursor-history."""

from pathlib import Path


class CursorHistoryError(Exception):
    """Base class for all cursor-history errors."""


class StoreUnavailableError(CursorHistoryError):
    """A state.vscdb file is missing or cannot be opened."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Store unavailable: {self.path} ({reason})")


class NoDriverAvailableError(CursorHistoryError):
    """No SQLite driver can be loaded on this interpreter."""

    def __init__(self, tried: list[str] | None = None):
        self.tried = tried or []
        names = ", ".join(self.tried) or "none"
        super().__init__(f"No SQLite driver available (tried: {names})")


class DriverNotAvailableError(CursorHistoryError):
    """A specific driver was requested but cannot be used."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        names = ", ".join(available) or "none"
        super().__init__(f"SQLite driver '{name}' is not available (available: {names})")


class MalformedRowError(CursorHistoryError):
    """A row's value could not be decoded as a JSON document."""

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Malformed row '{key}'{detail}")


class ConversationNotFoundError(CursorHistoryError):
    """No conversation matches the given index or id."""

    def __init__(self, identifier: int | str, total: int = 0):
        self.identifier = identifier
        self.total = total
        if isinstance(identifier, int):
            msg = f"Conversation #{identifier} not found ({total} available)"
        else:
            msg = f"Conversation '{identifier}' not found"
        super().__init__(msg)


class InvalidConfigError(CursorHistoryError):
    """An option passed to the library or CLI is out of range."""

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")
