"""Pluggable SQLite drivers for reading Cursor stores.

A driver knows how to open a ``state.vscdb`` file read-only and run a query
against it. The stdlib ``sqlite3`` module is preferred; ``apsw`` is used when
it is installed and either requested explicitly or the only option left.

Drivers are plain objects handed to :class:`~cursor_history.store.RowStore`
by whoever owns them. Nothing here caches a process-wide choice.
"""

import importlib
import importlib.util
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .config import get_driver_preference
from .errors import DriverNotAvailableError, NoDriverAvailableError

logger = logging.getLogger(__name__)


class DriverError(Exception):
    """Raised by a driver connection when the underlying library fails."""


class DriverConnection(ABC):
    """An open read-only connection to one store file."""

    @abstractmethod
    def query(self, sql: str, params: tuple = ()) -> list[tuple[Any, ...]]:
        """Run a statement and return every row."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class StoreDriver(ABC):
    """Base class for SQLite driver implementations."""

    name: str  # "sqlite3", "apsw"

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the backing library can be imported."""
        ...

    @abstractmethod
    def connect(self, path: Path) -> DriverConnection:
        """Open ``path`` read-only. Raises DriverError on failure."""
        ...


class _Sqlite3Connection(DriverConnection):
    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def query(self, sql: str, params: tuple = ()) -> list[tuple[Any, ...]]:
        try:
            cur = self._conn.execute(sql, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise DriverError(str(e)) from e

    def close(self) -> None:
        self._conn.close()


class Sqlite3Driver(StoreDriver):
    """Driver backed by the standard library ``sqlite3`` module."""

    name = "sqlite3"

    def is_available(self) -> bool:
        return True

    def connect(self, path: Path) -> DriverConnection:
        try:
            conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
            # Non-database files only fail on the first statement
            conn.execute("SELECT name FROM sqlite_master LIMIT 1").fetchall()
        except sqlite3.Error as e:
            raise DriverError(str(e)) from e
        return _Sqlite3Connection(conn)


class _ApswConnection(DriverConnection):
    def __init__(self, apsw_module, conn):
        self._apsw = apsw_module
        self._conn = conn

    def query(self, sql: str, params: tuple = ()) -> list[tuple[Any, ...]]:
        try:
            return [tuple(row) for row in self._conn.cursor().execute(sql, params)]
        except self._apsw.Error as e:
            raise DriverError(str(e)) from e

    def close(self) -> None:
        self._conn.close()


class ApswDriver(StoreDriver):
    """Driver backed by ``apsw`` (install the ``apsw`` extra)."""

    name = "apsw"

    def is_available(self) -> bool:
        return importlib.util.find_spec("apsw") is not None

    def connect(self, path: Path) -> DriverConnection:
        apsw = importlib.import_module("apsw")
        try:
            conn = apsw.Connection(str(path), flags=apsw.SQLITE_OPEN_READONLY)
            conn.cursor().execute("SELECT name FROM sqlite_master LIMIT 1").fetchall()
        except apsw.Error as e:
            raise DriverError(str(e)) from e
        return _ApswConnection(apsw, conn)


def default_drivers() -> list[StoreDriver]:
    """Return fresh driver instances in priority order."""
    return [Sqlite3Driver(), ApswDriver()]


def get_available_drivers(drivers: list[StoreDriver] | None = None) -> list[StoreDriver]:
    """Filter ``drivers`` (default: all known drivers) down to usable ones."""
    candidates = drivers if drivers is not None else default_drivers()
    return [d for d in candidates if d.is_available()]


def select_driver(
    name: str | None = None,
    drivers: list[StoreDriver] | None = None,
) -> StoreDriver:
    """Pick a driver by explicit name, environment override, or priority.

    Raises DriverNotAvailableError when a named driver is unknown or cannot be
    loaded, and NoDriverAvailableError when nothing at all is usable.
    """
    candidates = drivers if drivers is not None else default_drivers()
    available = get_available_drivers(candidates)

    requested = name or get_driver_preference()
    if requested:
        for driver in available:
            if driver.name == requested:
                logger.debug("Using requested SQLite driver %s", driver.name)
                return driver
        raise DriverNotAvailableError(requested, [d.name for d in available])

    if not available:
        raise NoDriverAvailableError([d.name for d in candidates])

    logger.debug("Using SQLite driver %s", available[0].name)
    return available[0]
