"""
Data Transfer Module

Moves rows from a source table to a destination table one committed batch at
a time. copy_window() is the paginated copy unit used both for small tables
(one window over the whole table, on the run's own connections) and by the
parallel orchestrator (one window per worker, on the worker's connections).
"""

from typing import Any, Dict, Optional
import logging
import threading
import time

from data_converter.connections import DatabaseConnection
from data_converter.metadata import ColumnSet, TableDescriptor
from data_converter.partitioning import CopyWindow
from data_converter.query_builder import SelectTemplate, build_insert

logger = logging.getLogger(__name__)


def copy_window(
    source: DatabaseConnection,
    destination: DatabaseConnection,
    window: CopyWindow,
    destination_table: TableDescriptor,
    select_template: SelectTemplate,
    autocommit: bool = False,
    cancel_event: Optional[threading.Event] = None,
    label: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Copy the rows of one window in committed batches.

    Pages are read with the SELECT template ordered by primary key. A page
    never asks for more rows than are left in the window, so the window's end
    is never read past. Every row is inserted with the prepared INSERT, which
    binds each value with its source column type, and the destination is
    committed once per page.

    Args:
        source: Source connection, used only by this unit
        destination: Destination connection, used only by this unit
        window: Rows to copy
        destination_table: Destination table descriptor
        select_template: Paginated SELECT template of the source dialect
        autocommit: Destination runs in auto-commit mode, skip explicit commits
        cancel_event: Stops the unit before its next batch when set
        label: Name used in progress logs

    Returns:
        Transfer result dictionary with statistics

    Raises:
        Exception: Any driver error; the open batch is rolled back, batches
            committed before it are kept
    """
    start_time = time.time()
    column_set: ColumnSet = window.column_set
    label = label or str(window.table)

    source_reference = window.table.qualified_name(source.dialect)
    destination_reference = destination_table.qualified_name(destination.dialect)
    insert_sql = build_insert(destination.dialect, destination_reference, column_set.column_names)
    logger.debug(f"{label}: {insert_sql}")

    rows_transferred = 0
    batches = 0
    current_offset = window.start_offset
    cancelled = False

    insert = destination.prepare_insert(insert_sql, column_set.columns)
    try:
        while rows_transferred < window.row_count:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"{label}: cancelled after {rows_transferred:,} rows")
                cancelled = True
                break

            batch_start_time = time.time()
            limit = min(window.batch_size, window.row_count - rows_transferred)
            select_sql = select_template.render(
                source.dialect,
                source_reference,
                column_set.column_names,
                column_set.primary_key,
                limit,
                current_offset,
            )

            try:
                rows = source.fetch_all(select_sql)
                for row in rows:
                    insert.execute(row)
                if not autocommit:
                    destination.commit()
            except Exception as e:
                logger.error(f"{label}: error copying rows at offset {current_offset:,}: {e}")
                if not autocommit:
                    try:
                        destination.rollback()
                    except Exception as rollback_error:
                        logger.warning(f"{label}: rollback failed: {rollback_error}")
                raise

            if not rows:
                logger.info(f"{label}: source exhausted at offset {current_offset:,}")
                break

            rows_transferred += len(rows)
            batches += 1
            current_offset += len(rows)

            batch_time = time.time() - batch_start_time
            rows_per_second = len(rows) / batch_time if batch_time > 0 else 0
            logger.info(
                f"{label}: Records copied so far: {rows_transferred:,} of {window.row_count:,} "
                f"({rows_per_second:,.0f} rows/sec)"
            )
    finally:
        insert.close()

    elapsed_time = time.time() - start_time
    return {
        'table_name': str(window.table),
        'start_offset': window.start_offset,
        'row_budget': window.row_count,
        'rows_transferred': rows_transferred,
        'batches': batches,
        'cancelled': cancelled,
        'elapsed_time_seconds': elapsed_time,
        'avg_rows_per_second': rows_transferred / elapsed_time if elapsed_time > 0 else 0,
    }


def copy_table_sequential(
    source: DatabaseConnection,
    destination: DatabaseConnection,
    table: TableDescriptor,
    destination_table: TableDescriptor,
    column_set: ColumnSet,
    total_rows: int,
    batch_size: int,
    select_template: SelectTemplate,
    autocommit: bool = False,
) -> Dict[str, Any]:
    """
    Copy a whole table as a single window on the given connections.

    Args:
        source: Source connection
        destination: Destination connection
        table: Source table
        destination_table: Destination table
        column_set: Columns and primary key of the table
        total_rows: Source row count taken before the copy
        batch_size: Rows per committed batch
        select_template: Paginated SELECT template
        autocommit: Destination runs in auto-commit mode

    Returns:
        Transfer result dictionary of the single unit
    """
    logger.info(f"About to copy data from table {table}")
    logger.info(f"{table}: Records to be copied: {total_rows:,}")

    window = CopyWindow(table, column_set, 0, total_rows, batch_size)
    result = copy_window(
        source,
        destination,
        window,
        destination_table,
        select_template,
        autocommit=autocommit,
    )

    logger.info(
        f"{table}: Finished copying: {result['rows_transferred']:,} of {total_rows:,}"
    )
    return result
