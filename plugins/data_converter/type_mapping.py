"""
Column Type Code Module

Columns are described by ODBC SQL type codes, the integer identifiers every
ODBC driver reports from its catalog functions (and which JDBC shares for the
common types). This module names those codes, maps PostgreSQL
information_schema type names onto them, and coerces Python values to the
semantics of a type code before they are bound into a destination INSERT.
"""

from typing import Any, Optional, Dict
from datetime import datetime
from decimal import Decimal
import json
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


# ODBC SQL type codes (sql.h / sqlext.h / msodbcsql.h)
SQL_UNKNOWN_TYPE = 0
SQL_CHAR = 1
SQL_NUMERIC = 2
SQL_DECIMAL = 3
SQL_INTEGER = 4
SQL_SMALLINT = 5
SQL_FLOAT = 6
SQL_REAL = 7
SQL_DOUBLE = 8
SQL_VARCHAR = 12
SQL_TYPE_DATE = 91
SQL_TYPE_TIME = 92
SQL_TYPE_TIMESTAMP = 93
SQL_LONGVARCHAR = -1
SQL_BINARY = -2
SQL_VARBINARY = -3
SQL_LONGVARBINARY = -4
SQL_BIGINT = -5
SQL_TINYINT = -6
SQL_BIT = -7
SQL_WCHAR = -8
SQL_WVARCHAR = -9
SQL_WLONGVARCHAR = -10
SQL_GUID = -11
SQL_SS_XML = -152
SQL_SS_TIME2 = -154
SQL_SS_TIMESTAMPOFFSET = -155

# No ODBC code exists for arrays; java.sql.Types.ARRAY is used instead
SQL_ARRAY = 2003

INTEGER_TYPES = frozenset({SQL_TINYINT, SQL_SMALLINT, SQL_INTEGER, SQL_BIGINT})
EXACT_NUMERIC_TYPES = frozenset({SQL_NUMERIC, SQL_DECIMAL})
APPROXIMATE_NUMERIC_TYPES = frozenset({SQL_FLOAT, SQL_REAL, SQL_DOUBLE})
CHARACTER_TYPES = frozenset({
    SQL_CHAR, SQL_VARCHAR, SQL_LONGVARCHAR,
    SQL_WCHAR, SQL_WVARCHAR, SQL_WLONGVARCHAR, SQL_SS_XML,
})
BINARY_TYPES = frozenset({SQL_BINARY, SQL_VARBINARY, SQL_LONGVARBINARY})
TEMPORAL_TYPES = frozenset({
    SQL_TYPE_DATE, SQL_TYPE_TIME, SQL_TYPE_TIMESTAMP,
    SQL_SS_TIME2, SQL_SS_TIMESTAMPOFFSET,
})


# PostgreSQL information_schema.columns.data_type -> ODBC SQL type code
POSTGRES_TYPE_CODES: Dict[str, int] = {
    # Numeric
    "smallint": SQL_SMALLINT,
    "integer": SQL_INTEGER,
    "bigint": SQL_BIGINT,
    "numeric": SQL_NUMERIC,
    "decimal": SQL_DECIMAL,
    "real": SQL_REAL,
    "double precision": SQL_DOUBLE,
    "money": SQL_DECIMAL,

    # Boolean
    "boolean": SQL_BIT,

    # Character
    "character": SQL_WCHAR,
    "character varying": SQL_WVARCHAR,
    "text": SQL_WLONGVARCHAR,
    "xml": SQL_WLONGVARCHAR,
    "json": SQL_WLONGVARCHAR,
    "jsonb": SQL_WLONGVARCHAR,

    # Binary
    "bytea": SQL_LONGVARBINARY,

    # Date and time
    "date": SQL_TYPE_DATE,
    "time without time zone": SQL_TYPE_TIME,
    "time with time zone": SQL_TYPE_TIME,
    "timestamp without time zone": SQL_TYPE_TIMESTAMP,
    "timestamp with time zone": SQL_SS_TIMESTAMPOFFSET,

    # Other
    "uuid": SQL_GUID,
    "array": SQL_ARRAY,
}


def postgres_type_code(data_type: str) -> int:
    """
    Map a PostgreSQL information_schema data type name to an ODBC type code.

    Args:
        data_type: Value of information_schema.columns.data_type

    Returns:
        ODBC SQL type code, SQL_WVARCHAR for unknown types
    """
    normalized = data_type.lower().strip()
    if normalized not in POSTGRES_TYPE_CODES:
        logger.warning(f"Unknown PostgreSQL type '{data_type}', binding as character data")
        return SQL_WVARCHAR
    return POSTGRES_TYPE_CODES[normalized]


def input_size(type_code: int, column_size: Optional[int], decimal_digits: Optional[int]):
    """Build one pyodbc setinputsizes() entry for a column."""
    if type_code in BINARY_TYPES or type_code in CHARACTER_TYPES:
        # 0 lets the driver pick (MAX) lengths for long columns
        return (type_code, column_size or 0, 0)
    if type_code in EXACT_NUMERIC_TYPES:
        return (type_code, column_size or 38, decimal_digits or 0)
    if type_code in TEMPORAL_TYPES:
        return (type_code, column_size or 0, decimal_digits or 0)
    return (type_code, 0, 0)


def coerce_value(type_code: int, value: Any) -> Any:
    """
    Coerce a fetched value to the semantics of its source column type.

    Drivers hand back whatever Python type they map a column to; a value that
    was numeric at the source must stay numeric at the destination, character
    data must stay character data, and so on.

    Args:
        type_code: ODBC SQL type code recorded for the source column
        value: Value as returned by the source cursor

    Returns:
        Value ready for parameter binding. None stays None.
    """
    if value is None:
        return None

    if type_code == SQL_BIT:
        return bool(value)
    if type_code in INTEGER_TYPES:
        return int(value)
    if type_code in EXACT_NUMERIC_TYPES:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    if type_code in APPROXIMATE_NUMERIC_TYPES:
        return float(value)
    if type_code in CHARACTER_TYPES:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode("utf-8")
        if isinstance(value, (dict, list)):
            # json/jsonb columns come back parsed
            return json.dumps(value, default=str)
        return value if isinstance(value, str) else str(value)
    if type_code in BINARY_TYPES:
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        return value
    if type_code == SQL_ARRAY:
        return list(value) if isinstance(value, tuple) else value
    if type_code == SQL_GUID:
        return str(value) if isinstance(value, UUID) else value
    if type_code == SQL_TYPE_DATE and isinstance(value, datetime):
        return value.date()
    if type_code == SQL_TYPE_TIME and isinstance(value, datetime):
        return value.time()

    return value
