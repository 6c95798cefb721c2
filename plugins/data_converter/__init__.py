"""
Database Data Converter

This package bulk-copies table data from a source database to a destination
database whose schema already exists, using Apache Airflow connections or
plain ODBC connection strings.

Modules:
- config: Immutable run configuration and convert modes
- type_mapping: ODBC SQL type codes and value coercion
- query_builder: Dialects and the paginated SELECT template
- connections: Connection capability and connection factories
- odbc_helper: pyodbc implementation of the connection capability
- postgres_helper: psycopg2 implementation of the connection capability
- metadata: Table, column and primary key discovery
- policy: Convert-mode decisions per table
- partitioning: Offset windows for parallel copies
- data_transfer: Paginated, batched copy of one window
- parallel: Parallel copy of one large table
- converter: Table-by-table conversion of a catalog/schema

Performance Options:
- BATCH_SIZE=N: Rows per committed batch (and parallel threshold)
- NUMBER_OF_WORKERS=N: Parallel copy units per large table
"""

__version__ = "1.0.0"

from data_converter.config import ConverterConfig, ConvertMode
from data_converter.converter import DataConverter, convert_data
from data_converter.parallel import ParallelCopyError, ParallelCopyTimeout
from data_converter.policy import TableNotEmptyError

__all__ = [
    "ConverterConfig",
    "ConvertMode",
    "DataConverter",
    "convert_data",
    "ParallelCopyError",
    "ParallelCopyTimeout",
    "TableNotEmptyError",
]
