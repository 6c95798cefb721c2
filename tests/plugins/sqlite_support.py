"""
SQLite-backed test doubles for the data converter.

The copy engine only talks to DatabaseConnection objects, so the end-to-end
tests run it against SQLite files: one file for the source, one for the
destination. Every connection is a separate sqlite3 connection, which lets
parallel workers open their own pairs exactly as they do against a server.
"""

import sqlite3
import threading
from typing import Any, Callable, List, Optional, Sequence, Tuple

from data_converter.connections import ConnectionFactory, DatabaseConnection, PreparedInsert
from data_converter.metadata import Column, TableDescriptor
from data_converter.query_builder import DIALECTS
from data_converter import type_mapping


def sqlite_type_code(declared_type: str) -> int:
    """Map a declared SQLite column type to an ODBC type code (SQLite affinity rules)."""
    declared = (declared_type or "").upper()
    if "INT" in declared:
        return type_mapping.SQL_INTEGER
    if "CHAR" in declared or "CLOB" in declared or "TEXT" in declared:
        return type_mapping.SQL_WVARCHAR
    if "BLOB" in declared:
        return type_mapping.SQL_LONGVARBINARY
    if "REAL" in declared or "FLOA" in declared or "DOUB" in declared:
        return type_mapping.SQL_DOUBLE
    if "DATE" in declared or "TIME" in declared:
        return type_mapping.SQL_TYPE_TIMESTAMP
    return type_mapping.SQL_WVARCHAR


class SqlitePreparedInsert(PreparedInsert):
    def __init__(self, conn, statement: str, columns: Sequence[Column], owner):
        self._cursor = conn.cursor()
        self._statement = statement
        self._type_codes = [c.type_code for c in columns]
        self._owner = owner
        owner.prepared.append((statement, list(self._type_codes)))

    def execute(self, row: Sequence[Any]) -> None:
        self._owner.check(self._statement)
        params = [type_mapping.coerce_value(t, v) for t, v in zip(self._type_codes, row)]
        self._cursor.execute(self._statement, params)
        self._owner.inserted += 1

    def close(self) -> None:
        self._cursor.close()


class SqliteDatabase(DatabaseConnection):
    """
    DatabaseConnection over a SQLite file, recording the SQL it runs.

    Args:
        path: Database file
        fail_on: Predicate on SQL text; a matching statement raises
            sqlite3.OperationalError instead of running
    """

    dialect = DIALECTS["sqlite"]

    def __init__(self, path: str, fail_on: Optional[Callable[[str], bool]] = None):
        self.path = path
        self._conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
        self._fail_on = fail_on
        self.queries: List[str] = []
        self.statements: List[str] = []
        self.prepared: List[Tuple[str, List[int]]] = []
        self.inserted = 0
        self.commits = 0
        self.rollbacks = 0
        self.autocommit = False
        self.closed = False

    def check(self, sql: str) -> None:
        if self._fail_on is not None and self._fail_on(sql):
            raise sqlite3.OperationalError(f"simulated failure: {sql}")

    def list_tables(self, catalog, schema) -> List[TableDescriptor]:
        rows = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
        return [TableDescriptor(None, None, row[0]) for row in rows]

    def list_columns(self, table: TableDescriptor) -> List[Column]:
        rows = self._conn.execute(
            f"PRAGMA table_info({table.qualified_name(self.dialect)})"
        ).fetchall()
        return [Column(name=row[1], type_code=sqlite_type_code(row[2])) for row in rows]

    def list_primary_keys(self, table: TableDescriptor) -> List[str]:
        rows = self._conn.execute(
            f"PRAGMA table_info({table.qualified_name(self.dialect)})"
        ).fetchall()
        return [row[1] for row in sorted(rows, key=lambda r: r[5]) if row[5] > 0]

    def fetch_all(self, query: str) -> List[Tuple[Any, ...]]:
        self.queries.append(query)
        self.check(query)
        return self._conn.execute(query).fetchall()

    def execute(self, statement: str) -> int:
        self.statements.append(statement)
        self.check(statement)
        return self._conn.execute(statement).rowcount

    def prepare_insert(self, statement: str, columns: Sequence[Column]) -> PreparedInsert:
        return SqlitePreparedInsert(self._conn, statement, columns, self)

    def commit(self) -> None:
        self.commits += 1
        self._conn.commit()

    def rollback(self) -> None:
        self.rollbacks += 1
        self._conn.rollback()

    def set_autocommit(self, autocommit: bool) -> None:
        self.autocommit = autocommit
        self._conn.isolation_level = None if autocommit else ""

    def close(self) -> None:
        self.closed = True
        self._conn.close()


class SqliteConnectionFactory(ConnectionFactory):
    """Opens SqliteDatabase pairs and keeps every connection it opened."""

    def __init__(self, source_path: str, destination_path: str,
                 fail_on: Optional[Callable[[str], bool]] = None):
        self.source_path = source_path
        self.destination_path = destination_path
        self.fail_on = fail_on
        self.opened: List[Tuple[str, SqliteDatabase, str]] = []
        self._lock = threading.Lock()

    def _record(self, role: str, db: SqliteDatabase) -> SqliteDatabase:
        with self._lock:
            self.opened.append((role, db, threading.current_thread().name))
        return db

    def open_source(self) -> DatabaseConnection:
        return self._record("source", SqliteDatabase(self.source_path, fail_on=self.fail_on))

    def open_destination(self) -> DatabaseConnection:
        return self._record("destination", SqliteDatabase(self.destination_path))


def run_sql(path: str, script: str, rows: Optional[Sequence[Sequence[Any]]] = None,
            insert_sql: Optional[str] = None) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.executescript(script)
        if rows:
            conn.executemany(insert_sql, rows)
        conn.commit()
    finally:
        conn.close()


def fetch_rows(path: str, query: str) -> List[Tuple[Any, ...]]:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(query).fetchall()
    finally:
        conn.close()


ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer TEXT NOT NULL,
    amount REAL,
    created_at TIMESTAMP
);
"""

ORDER_LINES_DDL = """
CREATE TABLE order_lines (
    order_id INTEGER NOT NULL,
    line_no INTEGER NOT NULL,
    product TEXT,
    quantity INTEGER,
    PRIMARY KEY (order_id, line_no)
);
"""

AUDIT_LOG_DDL = """
CREATE TABLE audit_log (
    message TEXT,
    logged_at TIMESTAMP
);
"""


def order_rows(count: int) -> List[Tuple[Any, ...]]:
    return [
        (i, f"customer-{i % 7}", round(i * 1.25, 2), f"2024-01-{(i % 28) + 1:02d} 10:00:00")
        for i in range(1, count + 1)
    ]


def order_line_rows(orders: int, lines: int) -> List[Tuple[Any, ...]]:
    return [
        (o, l, f"product-{(o * l) % 11}", o + l)
        for o in range(1, orders + 1)
        for l in range(1, lines + 1)
    ]


