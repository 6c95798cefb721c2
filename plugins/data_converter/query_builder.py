"""
Query Builder Module

Builds the SQL the copy engine runs: the paginated SELECT (from a user
overridable template), row counts, bulk deletes and the parameterised INSERT.
Every identifier goes through the dialect's quoting and the only values that
are ever substituted into SQL text are integers.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import re

logger = logging.getLogger(__name__)


DEFAULT_SELECT_FORMAT = (
    "SELECT $COLUMNS FROM $TABLE ORDER BY $PRIMARY_KEY LIMIT $BATCH_SIZE OFFSET $OFFSET"
)
OFFSET_FETCH_SELECT_FORMAT = (
    "SELECT $COLUMNS FROM $TABLE ORDER BY $PRIMARY_KEY "
    "OFFSET $OFFSET ROWS FETCH NEXT $BATCH_SIZE ROWS ONLY"
)

PLACEHOLDERS = ("$COLUMNS", "$TABLE", "$PRIMARY_KEY", "$BATCH_SIZE", "$OFFSET")

# Longest names first so that no placeholder matches a prefix of another one
_PLACEHOLDER_PATTERN = re.compile(
    "|".join(re.escape(p) for p in sorted(PLACEHOLDERS, key=len, reverse=True))
)


@dataclass(frozen=True)
class Dialect:
    """
    SQL dialect of one side of the copy.

    Attributes:
        name: Dialect name (lowercase)
        quote_prefix: Opening identifier quote, empty to leave identifiers bare
        quote_suffix: Closing identifier quote
        param_marker: Positional parameter marker of the driver
        select_format: Default pagination template for this dialect
    """

    name: str
    quote_prefix: str = '"'
    quote_suffix: str = '"'
    param_marker: str = "?"
    select_format: str = DEFAULT_SELECT_FORMAT

    def quote(self, identifier: str) -> str:
        """Quote one identifier, doubling any embedded closing quote."""
        if not identifier:
            raise ValueError("Invalid identifier: cannot be empty")
        if not self.quote_prefix:
            return identifier
        escaped = identifier.replace(self.quote_suffix, self.quote_suffix * 2)
        return f"{self.quote_prefix}{escaped}{self.quote_suffix}"

    def qualify(self, *parts: Optional[str]) -> str:
        """Join the non-empty name parts into a quoted, dotted reference."""
        quoted = [self.quote(p) for p in parts if p]
        if not quoted:
            raise ValueError("Invalid table reference: no name parts given")
        return ".".join(quoted)

    def column_list(self, columns: Sequence[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)


DIALECTS: Dict[str, Dialect] = {
    "ansi": Dialect("ansi"),
    "generic": Dialect("generic", quote_prefix="", quote_suffix=""),
    "postgres": Dialect("postgres"),
    "sqlite": Dialect("sqlite"),
    "mysql": Dialect("mysql", quote_prefix="`", quote_suffix="`"),
    "mssql": Dialect(
        "mssql", quote_prefix="[", quote_suffix="]",
        select_format=OFFSET_FETCH_SELECT_FORMAT,
    ),
    "oracle": Dialect("oracle", select_format=OFFSET_FETCH_SELECT_FORMAT),
}

# SQL_DBMS_NAME values reported by common ODBC drivers
_DBMS_NAME_DIALECTS: List[Tuple[str, str]] = [
    ("microsoft sql server", "mssql"),
    ("postgresql", "postgres"),
    ("mysql", "mysql"),
    ("mariadb", "mysql"),
    ("oracle", "oracle"),
    ("sqlite", "sqlite"),
]


def get_dialect(name: str) -> Dialect:
    """
    Look up a dialect preset by name.

    Raises:
        ValueError: If the dialect is unknown
    """
    key = name.lower().strip()
    if key in ("postgresql", "pg"):
        key = "postgres"
    if key in ("sqlserver", "tsql"):
        key = "mssql"
    if key not in DIALECTS:
        raise ValueError(
            f"Unknown dialect '{name}': expected one of {', '.join(sorted(DIALECTS))}"
        )
    return DIALECTS[key]


def dialect_for_dbms_name(dbms_name: Optional[str]) -> Dialect:
    """Pick a dialect from the DBMS name an ODBC driver reports."""
    normalized = (dbms_name or "").lower()
    for marker, dialect_name in _DBMS_NAME_DIALECTS:
        if marker in normalized:
            return DIALECTS[dialect_name]
    logger.warning(f"Unrecognised DBMS '{dbms_name}', using ANSI SQL dialect")
    return DIALECTS["ansi"]


class SelectTemplate:
    """
    Paginated SELECT template with named placeholders.

    The template must contain $COLUMNS, $TABLE, $PRIMARY_KEY, $BATCH_SIZE and
    $OFFSET. Substitution is a single pass, so text that is substituted in is
    never scanned for placeholders again.

    Usage:
        template = SelectTemplate(DIALECTS["mssql"].select_format)
        sql = template.render(dialect, "[dbo].[Users]", ["Id", "Name"], ["Id"], 1000, 0)
    """

    def __init__(self, template: str):
        missing = [p for p in PLACEHOLDERS if p not in template]
        if missing:
            raise ValueError(
                f"SELECT template is missing placeholder(s) {', '.join(missing)}: {template!r}"
            )
        self.template = template

    def render(
        self,
        dialect: Dialect,
        table_reference: str,
        columns: Sequence[str],
        primary_key: Sequence[str],
        batch_size: int,
        offset: int,
    ) -> str:
        """
        Substitute the placeholders.

        Args:
            dialect: Dialect used to quote column names
            table_reference: Already qualified and quoted table reference
            columns: Projected column names, in binding order
            primary_key: Primary key column names, in ORDER BY order
            batch_size: Row limit for this page
            offset: Number of ordered rows to skip

        Returns:
            SQL text ready for execution
        """
        if not columns:
            raise ValueError(f"Cannot select from {table_reference}: no columns given")
        if not primary_key:
            raise ValueError(f"Cannot paginate {table_reference}: no primary key columns")
        for label, value in (("batch size", batch_size), ("offset", offset)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"Invalid {label} {value!r}: must be a non-negative integer")

        values = {
            "$COLUMNS": dialect.column_list(columns),
            "$TABLE": table_reference,
            "$PRIMARY_KEY": dialect.column_list(primary_key),
            "$BATCH_SIZE": str(batch_size),
            "$OFFSET": str(offset),
        }
        return _PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(0)], self.template)

    def __repr__(self) -> str:
        return f"SelectTemplate({self.template!r})"


def build_count(table_reference: str) -> str:
    return f"SELECT COUNT(*) FROM {table_reference}"


def build_delete_all(table_reference: str) -> str:
    return f"DELETE FROM {table_reference}"


def build_insert(dialect: Dialect, table_reference: str, columns: Sequence[str]) -> str:
    """
    Build the parameterised INSERT for one row.

    Args:
        dialect: Destination dialect (quoting and parameter marker)
        table_reference: Already qualified and quoted destination table
        columns: Column names, in the same order as the SELECT projection

    Returns:
        INSERT statement with one positional marker per column
    """
    if not columns:
        raise ValueError(f"Cannot insert into {table_reference}: no columns given")
    markers = ", ".join([dialect.param_marker] * len(columns))
    return f"INSERT INTO {table_reference} ({dialect.column_list(columns)}) VALUES ({markers})"
