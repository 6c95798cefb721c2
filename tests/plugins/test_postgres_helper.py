"""
Tests for PostgreSQL Connection Helper Module
"""

from decimal import Decimal
import json
from unittest.mock import MagicMock, patch

import pytest

psycopg2 = pytest.importorskip("psycopg2")

from data_converter import type_mapping
from data_converter.metadata import Column, TableDescriptor
from data_converter.postgres_helper import (
    LIST_COLUMNS_SQL,
    LIST_PRIMARY_KEYS_SQL,
    LIST_TABLES_SQL,
    PostgresDatabase,
    PsycopgDialect,
)
from data_converter.query_builder import build_insert


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    conn.closed = 0
    return conn


@pytest.fixture
def mock_cursor(mock_conn):
    cursor = MagicMock()
    mock_conn.cursor.return_value = cursor
    cursor.__enter__.return_value = cursor
    return cursor


class TestPostgresDatabase:
    """Test the psycopg2 DatabaseConnection."""

    def test_dialect(self, mock_conn):
        db = PostgresDatabase(mock_conn)
        assert db.dialect.name == "postgres"
        assert db.dialect.param_marker == "%s"

    def test_list_tables_defaults_to_public(self, mock_conn, mock_cursor):
        mock_cursor.fetchall.return_value = [("warehouse", "public", "orders")]

        tables = PostgresDatabase(mock_conn).list_tables(None, None)

        mock_cursor.execute.assert_called_once_with(LIST_TABLES_SQL, ("public", None, None))
        assert tables == [TableDescriptor(None, "public", "orders")]

    def test_list_columns_maps_type_names(self, mock_conn, mock_cursor):
        mock_cursor.fetchall.return_value = [
            ("id", "integer", 32, 0),
            ("amount", "numeric", 12, 2),
            ("note", "text", None, None),
        ]

        columns = PostgresDatabase(mock_conn).list_columns(TableDescriptor(None, "sales", "orders"))

        mock_cursor.execute.assert_called_once_with(LIST_COLUMNS_SQL, ("sales", "orders"))
        assert columns == [
            Column("id", type_mapping.SQL_INTEGER, 32, 0),
            Column("amount", type_mapping.SQL_NUMERIC, 12, 2),
            Column("note", type_mapping.SQL_WLONGVARCHAR, None, None),
        ]

    def test_list_primary_keys(self, mock_conn, mock_cursor):
        mock_cursor.fetchall.return_value = [("order_id",), ("line_no",)]
        keys = PostgresDatabase(mock_conn).list_primary_keys(TableDescriptor(None, None, "order_lines"))
        mock_cursor.execute.assert_called_once_with(LIST_PRIMARY_KEYS_SQL, ("public", "order_lines"))
        assert keys == ["order_id", "line_no"]

    def test_execute_error_logged_and_raised(self, mock_conn, mock_cursor, caplog):
        mock_cursor.execute.side_effect = psycopg2.ProgrammingError("relation does not exist")
        with pytest.raises(psycopg2.ProgrammingError):
            PostgresDatabase(mock_conn).execute('DELETE FROM "missing"')
        assert 'SQL: DELETE FROM "missing"' in caplog.text

    def test_prepared_insert_coerces_values(self, mock_conn, mock_cursor):
        columns = [
            Column("id", type_mapping.SQL_INTEGER),
            Column("amount", type_mapping.SQL_NUMERIC),
            Column("code", type_mapping.SQL_WVARCHAR),
        ]
        insert = PostgresDatabase(mock_conn).prepare_insert(
            'INSERT INTO "t" ("id", "amount", "code") VALUES (%s, %s, %s)', columns
        )

        insert.execute((Decimal("7"), 1.5, 42))

        mock_cursor.execute.assert_called_once_with(
            'INSERT INTO "t" ("id", "amount", "code") VALUES (%s, %s, %s)',
            [7, Decimal("1.5"), "42"],
        )

    def test_prepared_insert_binds_json_and_arrays(self, mock_conn, mock_cursor):
        """Parsed json values go back as JSON text, arrays as lists for psycopg2 to adapt."""
        columns = [
            Column("payload", type_mapping.postgres_type_code("jsonb")),
            Column("tags", type_mapping.postgres_type_code("ARRAY")),
        ]
        insert = PostgresDatabase(mock_conn).prepare_insert(
            'INSERT INTO "t" ("payload", "tags") VALUES (%s, %s)', columns
        )

        insert.execute(({"a": 1, "b": [True, None]}, ("x", "y")))

        params = mock_cursor.execute.call_args[0][1]
        assert json.loads(params[0]) == {"a": 1, "b": [True, None]}
        assert params[1] == ["x", "y"]

    def test_close_skips_closed_connection(self, mock_conn):
        mock_conn.closed = 1
        PostgresDatabase(mock_conn).close()
        mock_conn.close.assert_not_called()

    def test_close_ignores_driver_error(self, mock_conn):
        mock_conn.close.side_effect = psycopg2.InterfaceError("connection already closed")
        PostgresDatabase(mock_conn).close()


def _fake_identifier(name):
    identifier = MagicMock()
    identifier.as_string.return_value = '"' + name.replace('"', '""') + '"'
    return identifier


class TestPsycopgDialect:
    """Test identifier quoting through psycopg2.sql."""

    def test_quote_uses_sql_identifier(self, mock_conn):
        dialect = PostgresDatabase(mock_conn).dialect
        with patch("data_converter.postgres_helper.sql.Identifier", side_effect=_fake_identifier) as identifier:
            assert dialect.quote('we"ird') == '"we""ird"'
        identifier.assert_called_once_with('we"ird')
        assert isinstance(dialect, PsycopgDialect)

    def test_identifier_rendered_against_connection(self, mock_conn):
        fake = MagicMock()
        fake.as_string.return_value = '"orders"'
        with patch("data_converter.postgres_helper.sql.Identifier", return_value=fake):
            PostgresDatabase(mock_conn).dialect.quote("orders")
        fake.as_string.assert_called_once_with(mock_conn)

    def test_count_rows_quotes_each_name_part(self, mock_conn, mock_cursor):
        mock_cursor.fetchall.return_value = [(12,)]
        with patch("data_converter.postgres_helper.sql.Identifier", side_effect=_fake_identifier):
            count = PostgresDatabase(mock_conn).count_rows(TableDescriptor(None, "public", "orders"))
        assert count == 12
        mock_cursor.execute.assert_called_once_with('SELECT COUNT(*) FROM "public"."orders"', None)

    def test_insert_uses_pyformat_markers(self, mock_conn):
        db = PostgresDatabase(mock_conn)
        with patch("data_converter.postgres_helper.sql.Identifier", side_effect=_fake_identifier):
            statement = build_insert(db.dialect, db.dialect.qualify("sales", "orders"), ["id", "note"])
        assert statement == 'INSERT INTO "sales"."orders" ("id", "note") VALUES (%s, %s)'

    def test_empty_identifier_rejected(self, mock_conn):
        with pytest.raises(ValueError):
            PostgresDatabase(mock_conn).dialect.quote("")
