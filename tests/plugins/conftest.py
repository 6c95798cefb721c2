"""
Shared fixtures for the data converter tests.
"""

import pytest

from .sqlite_support import SqliteConnectionFactory, SqliteDatabase, run_sql


@pytest.fixture
def source_path(tmp_path) -> str:
    return str(tmp_path / "source.db")


@pytest.fixture
def destination_path(tmp_path) -> str:
    return str(tmp_path / "destination.db")


@pytest.fixture
def make_databases(source_path, destination_path):
    """
    Create source and destination with the same schema.

    Returns a function taking (ddl, source_rows_by_table, destination_rows_by_table),
    where the row dicts map an INSERT statement to its rows.
    """

    def _make(ddl: str, source_rows=None, destination_rows=None):
        run_sql(source_path, ddl)
        run_sql(destination_path, ddl)
        for insert_sql, rows in (source_rows or {}).items():
            run_sql(source_path, "", rows, insert_sql)
        for insert_sql, rows in (destination_rows or {}).items():
            run_sql(destination_path, "", rows, insert_sql)
        return source_path, destination_path

    return _make


@pytest.fixture
def source_db(source_path):
    db = SqliteDatabase(source_path)
    yield db
    if not db.closed:
        db.close()


@pytest.fixture
def destination_db(destination_path):
    db = SqliteDatabase(destination_path)
    yield db
    if not db.closed:
        db.close()


@pytest.fixture
def connection_factory(source_path, destination_path):
    return SqliteConnectionFactory(source_path, destination_path)
