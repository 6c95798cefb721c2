"""
PostgreSQL Connection Helper

DatabaseConnection implementation on top of psycopg2. Catalog information comes
from information_schema; PostgreSQL type names are mapped to ODBC SQL type
codes so a PostgreSQL source describes its columns the same way an ODBC source
does. psycopg2 adapts parameters from their Python type, so values are coerced
to the semantics of the recorded type code before binding. Identifiers are
quoted by psycopg2.sql against the live connection.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple
import logging

import psycopg2
from psycopg2 import sql

from data_converter.connections import DatabaseConnection, PreparedInsert
from data_converter.metadata import Column, TableDescriptor
from data_converter.query_builder import Dialect
from data_converter.type_mapping import coerce_value, postgres_type_code

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"

LIST_TABLES_SQL = """
    SELECT table_catalog, table_schema, table_name
    FROM information_schema.tables
    WHERE table_type = 'BASE TABLE'
      AND table_schema = %s
      AND (%s IS NULL OR table_catalog = %s)
    ORDER BY table_name
"""

LIST_COLUMNS_SQL = """
    SELECT column_name,
           data_type,
           COALESCE(character_maximum_length, numeric_precision, datetime_precision),
           numeric_scale
    FROM information_schema.columns
    WHERE table_schema = %s
      AND table_name = %s
    ORDER BY ordinal_position
"""

LIST_PRIMARY_KEYS_SQL = """
    SELECT kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name
     AND tc.table_schema = kcu.table_schema
     AND tc.table_name = kcu.table_name
    WHERE tc.constraint_type = 'PRIMARY KEY'
      AND tc.table_schema = %s
      AND tc.table_name = %s
    ORDER BY kcu.ordinal_position
"""


@dataclass(frozen=True)
class PsycopgDialect(Dialect):
    """PostgreSQL dialect quoting identifiers with psycopg2.sql.Identifier."""

    connection: Any = field(default=None, compare=False, repr=False)

    def quote(self, identifier: str) -> str:
        if not identifier:
            raise ValueError("Invalid identifier: cannot be empty")
        return sql.Identifier(identifier).as_string(self.connection)


class PostgresPreparedInsert(PreparedInsert):
    """INSERT executed on a dedicated cursor, values coerced per column type."""

    def __init__(self, cursor, statement: str, columns: Sequence[Column]):
        self._cursor = cursor
        self._statement = statement
        self._type_codes = [c.type_code for c in columns]

    def execute(self, row: Sequence[Any]) -> None:
        params = [coerce_value(t, v) for t, v in zip(self._type_codes, row)]
        self._cursor.execute(self._statement, params)

    def close(self) -> None:
        self._cursor.close()


class PostgresDatabase(DatabaseConnection):
    """
    Wraps one psycopg2 connection.

    Args:
        conn: Open psycopg2 connection
    """

    def __init__(self, conn):
        self._conn = conn
        self.dialect = PsycopgDialect("postgres", param_marker="%s", connection=conn)

    def _query(self, query, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:
        with self._conn.cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def list_tables(self, catalog: Optional[str], schema: Optional[str]) -> List[TableDescriptor]:
        schema = schema or DEFAULT_SCHEMA
        rows = self._query(LIST_TABLES_SQL, (schema, catalog, catalog))
        # Catalog is left out of the descriptor: PostgreSQL cannot address
        # another database in a query
        return [TableDescriptor(None, row[1], row[2]) for row in rows]

    def list_columns(self, table: TableDescriptor) -> List[Column]:
        rows = self._query(LIST_COLUMNS_SQL, (table.schema or DEFAULT_SCHEMA, table.name))
        return [
            Column(
                name=row[0],
                type_code=postgres_type_code(row[1]),
                column_size=row[2],
                decimal_digits=row[3],
            )
            for row in rows
        ]

    def list_primary_keys(self, table: TableDescriptor) -> List[str]:
        rows = self._query(LIST_PRIMARY_KEYS_SQL, (table.schema or DEFAULT_SCHEMA, table.name))
        return [row[0] for row in rows]

    def fetch_all(self, query: str) -> List[Tuple[Any, ...]]:
        try:
            return self._query(query)
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {query}")
            raise

    def execute(self, statement: str) -> int:
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(statement)
                return cursor.rowcount
        except Exception as e:
            logger.error(f"Error executing statement: {e}")
            logger.error(f"SQL: {statement}")
            raise

    def prepare_insert(self, statement: str, columns: Sequence[Column]) -> PreparedInsert:
        return PostgresPreparedInsert(self._conn.cursor(), statement, columns)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def set_autocommit(self, autocommit: bool) -> None:
        self._conn.autocommit = autocommit

    def close(self) -> None:
        if self._conn.closed:
            return
        try:
            self._conn.close()
        except psycopg2.Error as e:
            logger.debug(f"Ignoring error closing PostgreSQL connection: {e}")
