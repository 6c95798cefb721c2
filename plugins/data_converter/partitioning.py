"""
Partitioning Module

Splits a table's ordered row range [0, total) into contiguous offset windows,
one per parallel copy unit.
"""

from dataclasses import dataclass
from typing import List
import logging
import math

from data_converter.metadata import ColumnSet, TableDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CopyWindow:
    """
    Half-open range [start_offset, start_offset + row_count) of a table's rows
    under primary key order, copied by one unit in batches of batch_size.
    """

    table: TableDescriptor
    column_set: ColumnSet
    start_offset: int
    row_count: int
    batch_size: int

    @property
    def end_offset(self) -> int:
        return self.start_offset + self.row_count

    def __str__(self) -> str:
        return f"{self.table} rows {self.start_offset:,}-{self.end_offset:,}"


def compute_windows(
    table: TableDescriptor,
    column_set: ColumnSet,
    total_rows: int,
    number_of_workers: int,
    batch_size: int,
) -> List[CopyWindow]:
    """
    Partition [0, total_rows) into at most number_of_workers windows.

    Every window but the last holds ceil(total_rows / number_of_workers) rows;
    the last one holds what remains. Windows are contiguous, never overlap and
    together cover every row. A window that would be empty is not created, so
    fewer windows than workers are returned when there are fewer rows than
    workers.

    Args:
        table: Source table
        column_set: Columns and primary key of the table
        total_rows: Number of rows to split
        number_of_workers: Maximum number of windows
        batch_size: Batch size of every window

    Returns:
        List of CopyWindow ordered by start offset
    """
    if number_of_workers < 1:
        raise ValueError(f"Invalid number_of_workers {number_of_workers}: must be at least 1")
    if total_rows < 0:
        raise ValueError(f"Invalid total_rows {total_rows}: must not be negative")
    if total_rows == 0:
        return []

    share = math.ceil(total_rows / number_of_workers)
    windows = []
    offset = 0
    while offset < total_rows:
        count = min(share, total_rows - offset)
        windows.append(CopyWindow(table, column_set, offset, count, batch_size))
        offset += count

    logger.debug(
        f"Split {total_rows:,} rows of {table} into {len(windows)} windows of up to {share:,} rows"
    )
    return windows
