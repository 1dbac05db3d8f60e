"""Read-only access to the key/value tables inside a state.vscdb file."""

import json
import logging
from pathlib import Path
from typing import Any

from .core import RawRow
from .drivers import DriverConnection, DriverError, StoreDriver
from .errors import MalformedRowError, StoreUnavailableError

logger = logging.getLogger(__name__)

ITEM_TABLE = "ItemTable"
DISK_KV_TABLE = "cursorDiskKV"
_KNOWN_TABLES = (ITEM_TABLE, DISK_KV_TABLE)


class RowStore:
    """An open store. Use as a context manager so the handle is released."""

    def __init__(self, path: Path, conn: DriverConnection):
        self.path = path
        self._conn = conn
        self._tables: set[str] | None = None

    @classmethod
    def open(cls, path: Path | str, driver: StoreDriver) -> "RowStore":
        path = Path(path)
        if not path.is_file():
            raise StoreUnavailableError(path, "file not found")
        try:
            conn = driver.connect(path)
        except DriverError as e:
            raise StoreUnavailableError(path, f"{driver.name}: {e}") from e
        return cls(path, conn)

    def __enter__(self) -> "RowStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    def has_table(self, table: str) -> bool:
        if self._tables is None:
            try:
                rows = self._conn.query("SELECT name FROM sqlite_master WHERE type = 'table'")
            except DriverError as e:
                logger.warning("Cannot list tables in %s: %s", self.path, e)
                rows = []
            self._tables = {r[0] for r in rows}
        return table in self._tables

    def lookup(self, key: str, table: str = ITEM_TABLE) -> RawRow | None:
        """Return the row stored under ``key``, or None."""
        if table not in _KNOWN_TABLES or not self.has_table(table):
            return None
        try:
            rows = self._conn.query(f"SELECT key, value FROM {table} WHERE key = ? LIMIT 1", (key,))
        except DriverError as e:
            logger.warning("Failed to read key '%s' from %s: %s", key, self.path, e)
            return None
        if not rows:
            return None
        return RawRow(key=rows[0][0], value=_as_bytes(rows[0][1]))

    def scan_by_prefix(self, prefix: str, table: str = DISK_KV_TABLE) -> list[RawRow]:
        """Return every row whose key starts with ``prefix``, in insertion order."""
        if table not in _KNOWN_TABLES or not self.has_table(table):
            return []
        pattern = _escape_like(prefix) + "%"
        try:
            rows = self._conn.query(
                f"SELECT key, value FROM {table} WHERE key LIKE ? ESCAPE '\\' ORDER BY rowid",
                (pattern,),
            )
        except DriverError as e:
            logger.warning("Failed to scan '%s' in %s: %s", prefix, self.path, e)
            return []
        # LIKE is case-insensitive for ASCII
        return [RawRow(key=k, value=_as_bytes(v)) for k, v in rows if k.startswith(prefix)]


def load_document(row: RawRow) -> Any:
    """Decode a row's value as JSON. Raises MalformedRowError."""
    if not row.value:
        raise MalformedRowError(row.key, "empty value")
    try:
        return json.loads(row.value.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as e:
        raise MalformedRowError(row.key, str(e)) from e


def _as_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return str(value).encode("utf-8")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
