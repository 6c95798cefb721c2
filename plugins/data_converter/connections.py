"""
Connection Capability Module

The copy engine never talks to a driver directly. It uses the small set of
operations defined by DatabaseConnection (catalog listing, reads, prepared
writes, transaction control) and opens extra connections for parallel units
through a ConnectionFactory.

Implementations:
- odbc_helper.OdbcDatabase: any ODBC data source via pyodbc
- postgres_helper.PostgresDatabase: PostgreSQL via psycopg2
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from data_converter.metadata import Column, TableDescriptor
from data_converter.query_builder import Dialect, build_count

logger = logging.getLogger(__name__)

DEFAULT_ODBC_DRIVER = "{ODBC Driver 18 for SQL Server}"


class PreparedInsert(ABC):
    """An INSERT statement bound to its column types, executed once per row."""

    @abstractmethod
    def execute(self, row: Sequence[Any]) -> None:
        """Bind one row's values (in column order) and execute the insert."""

    def close(self) -> None:
        pass


class DatabaseConnection(ABC):
    """
    Operations the copy engine needs from one database connection.

    A DatabaseConnection is owned by exactly one thread at a time; parallel
    copy units each open their own pair through a ConnectionFactory.
    """

    dialect: Dialect

    @abstractmethod
    def list_tables(self, catalog: Optional[str], schema: Optional[str]) -> List[TableDescriptor]:
        """List base tables (no views) of a catalog/schema."""

    @abstractmethod
    def list_columns(self, table: TableDescriptor) -> List[Column]:
        """List columns with type codes, in table order."""

    @abstractmethod
    def list_primary_keys(self, table: TableDescriptor) -> List[str]:
        """List primary key column names, in key order."""

    @abstractmethod
    def fetch_all(self, query: str) -> List[Tuple[Any, ...]]:
        """Run a read query and return every row."""

    @abstractmethod
    def execute(self, statement: str) -> int:
        """Run a write statement without parameters and return the affected row count."""

    @abstractmethod
    def prepare_insert(self, statement: str, columns: Sequence[Column]) -> PreparedInsert:
        """Prepare a parameterised INSERT whose markers bind the given columns."""

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    @abstractmethod
    def set_autocommit(self, autocommit: bool) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def fetch_scalar(self, query: str) -> Any:
        """Run a query and return the first column of the first row, or None."""
        rows = self.fetch_all(query)
        if not rows:
            return None
        return rows[0][0]

    def count_rows(self, table: TableDescriptor) -> int:
        """Count the rows of a table on this connection."""
        count = self.fetch_scalar(build_count(table.qualified_name(self.dialect)))
        return int(count or 0)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ConnectionFactory(ABC):
    """Opens independent source and destination connections."""

    @abstractmethod
    def open_source(self) -> DatabaseConnection:
        pass

    @abstractmethod
    def open_destination(self) -> DatabaseConnection:
        pass


class OdbcConnectionFactory(ConnectionFactory):
    """
    Opens pyodbc connections from ODBC connection strings.

    Args:
        source_dsn: ODBC connection string of the source
        destination_dsn: ODBC connection string of the destination
        source_dialect: Dialect name, detected from the driver when None
        destination_dialect: Dialect name, detected from the driver when None
    """

    def __init__(
        self,
        source_dsn: str,
        destination_dsn: str,
        source_dialect: Optional[str] = None,
        destination_dialect: Optional[str] = None,
    ):
        self.source_dsn = source_dsn
        self.destination_dsn = destination_dsn
        self.source_dialect = source_dialect
        self.destination_dialect = destination_dialect

    def open_source(self) -> DatabaseConnection:
        from data_converter.odbc_helper import OdbcDatabase

        return OdbcDatabase.connect(self.source_dsn, dialect=self.source_dialect)

    def open_destination(self) -> DatabaseConnection:
        from data_converter.odbc_helper import OdbcDatabase

        return OdbcDatabase.connect(self.destination_dsn, dialect=self.destination_dialect)


def build_odbc_config(conn) -> Dict[str, str]:
    """
    Build ODBC connection parameters from an Airflow connection.

    The driver comes from the connection extras ("driver"), defaulting to the
    Microsoft SQL Server ODBC driver. A connection without login uses
    integrated (Windows/Kerberos) authentication.

    Args:
        conn: Airflow Connection object

    Returns:
        Dictionary of ODBC connection string keys
    """
    extras = getattr(conn, "extra_dejson", None) or {}
    driver = extras.get("driver", DEFAULT_ODBC_DRIVER)
    if not driver.startswith("{"):
        driver = f"{{{driver}}}"

    port = conn.port or 1433
    server = f"{conn.host},{port}" if port != 1433 else conn.host

    config = {
        'DRIVER': driver,
        'SERVER': server,
        'DATABASE': conn.schema,
        'TrustServerCertificate': extras.get('trust_server_certificate', 'yes'),
    }

    if conn.login:
        config['UID'] = conn.login
        config['PWD'] = conn.password or ''
        config['Trusted_Connection'] = 'no'
    else:
        config['Trusted_Connection'] = 'yes'

    return config


def build_connection_string(config: Dict[str, str]) -> str:
    return ';'.join([f"{k}={v}" for k, v in config.items() if v])


class AirflowConnectionFactory(ConnectionFactory):
    """
    Opens connections described by Airflow connection IDs.

    Connections of type "postgres" are opened through PostgresHook; every
    other connection type is opened through pyodbc with a connection string
    built from the Airflow connection.

    Args:
        source_conn_id: Airflow connection ID of the source
        destination_conn_id: Airflow connection ID of the destination
        source_dialect: Dialect override for the source
        destination_dialect: Dialect override for the destination
    """

    def __init__(
        self,
        source_conn_id: str,
        destination_conn_id: str,
        source_dialect: Optional[str] = None,
        destination_dialect: Optional[str] = None,
    ):
        self.source_conn_id = source_conn_id
        self.destination_conn_id = destination_conn_id
        self.source_dialect = source_dialect
        self.destination_dialect = destination_dialect

    def _open(self, conn_id: str, dialect: Optional[str]) -> DatabaseConnection:
        from airflow.hooks.base import BaseHook

        conn = BaseHook.get_connection(conn_id)
        conn_type = (conn.conn_type or "").lower()

        if conn_type in ("postgres", "postgresql"):
            from airflow.providers.postgres.hooks.postgres import PostgresHook
            from data_converter.postgres_helper import PostgresDatabase

            logger.debug(f"Opening PostgreSQL connection '{conn_id}'")
            hook = PostgresHook(postgres_conn_id=conn_id)
            return PostgresDatabase(hook.get_conn())

        from data_converter.odbc_helper import OdbcDatabase

        logger.debug(f"Opening ODBC connection '{conn_id}' ({conn_type or 'odbc'})")
        conn_str = build_connection_string(build_odbc_config(conn))
        return OdbcDatabase.connect(conn_str, dialect=dialect)

    def open_source(self) -> DatabaseConnection:
        return self._open(self.source_conn_id, self.source_dialect)

    def open_destination(self) -> DatabaseConnection:
        return self._open(self.destination_conn_id, self.destination_dialect)
