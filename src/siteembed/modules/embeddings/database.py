"""SQLite connection helpers shared by the mirror and the work queue."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import sqlite3
from pathlib import Path
from typing import Iterator

from .sql import load_sql

__all__ = [
    "connect",
    "ensure_schema",
    "format_timestamp",
    "utc_now",
]

_BUSY_TIMEOUT = 30.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as a fixed-width UTC ISO string (sortable as text)."""

    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


@contextmanager
def connect(
    path: Path,
    *,
    autocommit: bool = False,
) -> Iterator[sqlite3.Connection]:
    """Open ``path`` with row access by name, committing on clean exit.

    With ``autocommit`` the caller manages transactions explicitly (used for
    ``BEGIN IMMEDIATE`` claims).
    """

    connection = sqlite3.connect(
        path,
        timeout=_BUSY_TIMEOUT,
        isolation_level=None if autocommit else "DEFERRED",
    )
    connection.row_factory = sqlite3.Row
    try:
        if autocommit:
            yield connection
        else:
            with connection:
                yield connection
    finally:
        connection.close()


def ensure_schema(path: Path) -> None:
    """Create the mirror and queue tables when missing."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with connect(path) as connection:
        connection.executescript(load_sql("schema.sql"))
