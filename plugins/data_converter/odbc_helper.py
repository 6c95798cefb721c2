"""
ODBC Connection Helper

DatabaseConnection implementation on top of pyodbc. Catalog information comes
from the ODBC catalog functions (SQLTables, SQLColumns, SQLPrimaryKeys), so the
same code works against any database with an ODBC driver, and values are bound
with the source column's ODBC SQL type through cursor.setinputsizes().
"""

from typing import Any, List, Optional, Sequence, Tuple
import logging

import pyodbc

from data_converter.connections import DatabaseConnection, PreparedInsert
from data_converter.metadata import Column, TableDescriptor
from data_converter.query_builder import dialect_for_dbms_name, get_dialect
from data_converter.type_mapping import input_size

logger = logging.getLogger(__name__)


class OdbcPreparedInsert(PreparedInsert):
    """
    INSERT executed on a dedicated cursor with fixed input sizes.

    The input sizes carry the source type codes, so the driver converts every
    parameter to the source column's SQL type instead of guessing from the
    Python value.
    """

    def __init__(self, cursor, statement: str, columns: Sequence[Column]):
        self._cursor = cursor
        self._statement = statement
        self._input_sizes = [
            input_size(c.type_code, c.column_size, c.decimal_digits) for c in columns
        ]

    def execute(self, row: Sequence[Any]) -> None:
        self._cursor.setinputsizes(self._input_sizes)
        self._cursor.execute(self._statement, tuple(row))

    def close(self) -> None:
        try:
            self._cursor.close()
        except pyodbc.Error as e:
            logger.debug(f"Ignoring error closing insert cursor: {e}")


class OdbcDatabase(DatabaseConnection):
    """
    Wraps one pyodbc connection.

    Args:
        conn: Open pyodbc connection
        dialect: Dialect name; detected from SQL_DBMS_NAME when None
    """

    def __init__(self, conn: pyodbc.Connection, dialect: Optional[str] = None):
        self._conn = conn
        if dialect:
            self.dialect = get_dialect(dialect)
        else:
            self.dialect = dialect_for_dbms_name(conn.getinfo(pyodbc.SQL_DBMS_NAME))
        logger.debug(f"Using {self.dialect.name} dialect for ODBC connection")

    @classmethod
    def connect(cls, conn_str: str, dialect: Optional[str] = None, timeout: int = 30) -> "OdbcDatabase":
        """Open a new pyodbc connection from an ODBC connection string."""
        conn = pyodbc.connect(conn_str, timeout=timeout)
        return cls(conn, dialect=dialect)

    def list_tables(self, catalog: Optional[str], schema: Optional[str]) -> List[TableDescriptor]:
        cursor = self._conn.cursor()
        try:
            rows = cursor.tables(catalog=catalog, schema=schema, tableType='TABLE').fetchall()
            return [
                TableDescriptor(row.table_cat, row.table_schem, row.table_name)
                for row in rows
            ]
        finally:
            cursor.close()

    def list_columns(self, table: TableDescriptor) -> List[Column]:
        cursor = self._conn.cursor()
        try:
            rows = cursor.columns(
                table=table.name, catalog=table.catalog, schema=table.schema
            ).fetchall()
            return [
                Column(
                    name=row.column_name,
                    type_code=row.data_type,
                    column_size=row.column_size,
                    decimal_digits=row.decimal_digits,
                )
                for row in rows
            ]
        finally:
            cursor.close()

    def list_primary_keys(self, table: TableDescriptor) -> List[str]:
        cursor = self._conn.cursor()
        try:
            rows = cursor.primaryKeys(
                table.name, catalog=table.catalog, schema=table.schema
            ).fetchall()
            return [row.column_name for row in rows]
        finally:
            cursor.close()

    def fetch_all(self, query: str) -> List[Tuple[Any, ...]]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query)
            return [tuple(row) for row in cursor.fetchall()]
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {query}")
            raise
        finally:
            cursor.close()

    def execute(self, statement: str) -> int:
        cursor = self._conn.cursor()
        try:
            cursor.execute(statement)
            return cursor.rowcount
        except Exception as e:
            logger.error(f"Error executing statement: {e}")
            logger.error(f"SQL: {statement}")
            raise
        finally:
            cursor.close()

    def prepare_insert(self, statement: str, columns: Sequence[Column]) -> PreparedInsert:
        return OdbcPreparedInsert(self._conn.cursor(), statement, columns)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def set_autocommit(self, autocommit: bool) -> None:
        self._conn.autocommit = autocommit

    def close(self) -> None:
        try:
            self._conn.close()
        except pyodbc.Error as e:
            logger.debug(f"Ignoring error closing ODBC connection: {e}")
