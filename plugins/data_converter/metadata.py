"""
Metadata Discovery Module

Describes the tables being copied: their identity, their columns with type
codes, and their primary key. Discovery reads the source connection's catalog
and has no side effects.
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import List, Optional, Sequence, Tuple
import logging

from data_converter.query_builder import Dialect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableDescriptor:
    """A table identified by optional catalog, optional schema and name."""

    catalog: Optional[str]
    schema: Optional[str]
    name: str

    def qualified_name(self, dialect: Dialect) -> str:
        return dialect.qualify(self.catalog, self.schema, self.name)

    def __str__(self) -> str:
        return ".".join(p for p in (self.catalog, self.schema, self.name) if p)


@dataclass(frozen=True)
class Column:
    """
    One source column.

    Attributes:
        name: Column name
        type_code: ODBC SQL type code reported by the source
        column_size: Reported size/precision, when known
        decimal_digits: Reported scale, when known
    """

    name: str
    type_code: int
    column_size: Optional[int] = None
    decimal_digits: Optional[int] = None


@dataclass(frozen=True)
class ColumnSet:
    """
    Ordered columns of a table plus its ordered primary key.

    The column order is the order of the SELECT projection and of the INSERT
    parameters. The primary key is only used to order pages deterministically;
    a table without one cannot be paginated and is not copied.
    """

    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def type_codes(self) -> List[int]:
        return [c.type_code for c in self.columns]

    @property
    def is_copyable(self) -> bool:
        return len(self.primary_key) > 0


def discover_columns(connection, table: TableDescriptor) -> ColumnSet:
    """
    Read the column list and primary key of a table from the source catalog.

    Args:
        connection: Source DatabaseConnection
        table: Table to describe

    Returns:
        ColumnSet with columns and primary key in source-reported order
    """
    columns = tuple(connection.list_columns(table))
    primary_key = tuple(connection.list_primary_keys(table))

    logger.debug(
        f"{table}: {len(columns)} columns, primary key ({', '.join(primary_key)})"
    )
    return ColumnSet(columns=columns, primary_key=primary_key)


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatchcase(lowered, p.lower()) for p in patterns)


def list_base_tables(
    connection,
    catalog: Optional[str] = None,
    schema: Optional[str] = None,
    include_tables: Sequence[str] = (),
    exclude_tables: Sequence[str] = (),
) -> List[TableDescriptor]:
    """
    Enumerate the base tables of a catalog/schema on the source.

    Args:
        connection: Source DatabaseConnection
        catalog: Catalog (database) to list, None for the connection default
        schema: Schema to list, None for all schemas the driver reports
        include_tables: Optional wildcard patterns; when given only matching
            table names are returned
        exclude_tables: Optional wildcard patterns of table names to leave out

    Returns:
        Tables in the order the source reports them
    """
    tables = []
    for table in connection.list_tables(catalog, schema):
        if include_tables and not _matches_any(table.name, include_tables):
            logger.debug(f"Table {table} not in include_tables, ignoring")
            continue
        if exclude_tables and _matches_any(table.name, exclude_tables):
            logger.info(f"Excluding table {table}")
            continue
        tables.append(table)
    return tables
