"""
SQLite storage port.

Every service talks to the store through a ``Database``: a thin wrapper around
one ``sqlite3`` connection offering table-level insert/update/delete/select
helpers and nestable transactions.

Transactions:
- The outermost ``transaction()`` issues ``BEGIN IMMEDIATE``, taking the write
  lock up front so that read-check-write sequences on separate connections
  are serialized.
- Nested ``transaction()`` blocks use SAVEPOINTs; an exception rolls back
  only the inner block's work before propagating.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Iterable

logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# Seconds to wait for another connection's write lock
DEFAULT_TIMEOUT = 30.0


def quote(identifier: str) -> str:
    """Quote a table or column name, rejecting anything that is not a plain identifier."""
    if not IDENTIFIER.match(identifier):
        raise ValueError(f"Invalid SQL identifier: {identifier!r}")
    return f'"{identifier}"'


def _where(where: dict[str, Any] | None) -> tuple[str, list[Any]]:
    if not where:
        return "", []
    clauses = []
    params: list[Any] = []
    for column, value in where.items():
        if value is None:
            clauses.append(f"{quote(column)} IS NULL")
        else:
            clauses.append(f"{quote(column)} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(clauses), params


class Database:
    """
    One connection to a genealogy store.

    Connections are not shared between threads: each thread (or request)
    opens its own ``Database`` on the same file.
    """

    def __init__(self, path: str | Path = ":memory:", timeout: float = DEFAULT_TIMEOUT):
        self.path = str(path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    def connect(self) -> Database:
        """Open the connection; returns self for chaining."""
        if self._conn is not None:
            return self
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: transactions are issued explicitly below
        self._conn = sqlite3.connect(
            self.path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        logger.debug("Connected to %s", self.path)
        return self

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._depth = 0

    def __enter__(self) -> Database:
        return self.connect()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Not connected to database")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Run a block atomically; nests with SAVEPOINTs."""
        conn = self.connection

        if self._depth == 0:
            conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            conn.execute("COMMIT")
            return

        savepoint = f"sp_{self._depth}"
        conn.execute(f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield conn
        except BaseException:
            self._depth -= 1
            conn.execute(f"ROLLBACK TO {savepoint}")
            conn.execute(f"RELEASE {savepoint}")
            raise
        self._depth -= 1
        conn.execute(f"RELEASE {savepoint}")

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        return self.connection.execute(sql, tuple(params))

    def executescript(self, sql: str) -> None:
        self.connection.executescript(sql)

    def insert(self, table: str, values: dict[str, Any]) -> int:
        """Insert one row; returns its rowid."""
        columns = ", ".join(quote(c) for c in values)
        placeholders = ", ".join("?" for _ in values)
        cursor = self.execute(
            f"INSERT INTO {quote(table)} ({columns}) VALUES ({placeholders})",
            values.values(),
        )
        return cursor.lastrowid

    def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        """Update matching rows; returns the number changed."""
        assignments = ", ".join(f"{quote(c)} = ?" for c in values)
        clause, params = _where(where)
        cursor = self.execute(
            f"UPDATE {quote(table)} SET {assignments}{clause}",
            [*values.values(), *params],
        )
        return cursor.rowcount

    def delete(self, table: str, where: dict[str, Any]) -> int:
        """Delete matching rows; returns the number removed."""
        clause, params = _where(where)
        cursor = self.execute(f"DELETE FROM {quote(table)}{clause}", params)
        return cursor.rowcount

    def select(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        columns: Iterable[str] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[sqlite3.Row]:
        """Select rows matching all ``where`` equalities."""
        fields = ", ".join(quote(c) for c in columns) if columns else "*"
        clause, params = _where(where)
        sql = f"SELECT {fields} FROM {quote(table)}{clause}"
        if order_by:
            sql += f" ORDER BY {quote(order_by)}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self.execute(sql, params).fetchall()

    def select_one(self, table: str, where: dict[str, Any] | None = None, **kwargs) -> sqlite3.Row | None:
        rows = self.select(table, where, limit=1, **kwargs)
        return rows[0] if rows else None

    def exists(self, table: str, where: dict[str, Any]) -> bool:
        clause, params = _where(where)
        cursor = self.execute(f"SELECT 1 FROM {quote(table)}{clause} LIMIT 1", params)
        return cursor.fetchone() is not None

    def count(self, table: str, where: dict[str, Any] | None = None) -> int:
        clause, params = _where(where)
        return self.execute(f"SELECT COUNT(*) FROM {quote(table)}{clause}", params).fetchone()[0]
