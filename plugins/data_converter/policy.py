"""
Convert-Mode Policy Module

Decides per table what happens to its data, given how many rows the
destination table already holds and the configured ConvertMode.
"""

from enum import Enum
import logging

from data_converter.config import ConvertMode

logger = logging.getLogger(__name__)


class CopyDecision(Enum):
    COPY = "copy"
    CLEAR_THEN_COPY = "clear_then_copy"
    SKIP = "skip"
    ABORT = "abort"


class TableNotEmptyError(RuntimeError):
    """Destination table holds rows while the mode is ThrowExceptionIfExists."""

    def __init__(self, table_name: str, row_count: int):
        super().__init__(f"Table {table_name} is not empty ({row_count:,} rows)")
        self.table_name = table_name
        self.row_count = row_count


def decide(destination_count: int, mode: ConvertMode, table_name: str = "") -> CopyDecision:
    """
    Apply the convert mode to a destination row count.

    | destination rows | mode                   | decision        |
    |------------------|------------------------|-----------------|
    | 0                | any                    | COPY            |
    | > 0              | DropAndRecreate        | CLEAR_THEN_COPY |
    | > 0              | SkipExisting           | SKIP            |
    | > 0              | ThrowExceptionIfExists | ABORT           |
    | > 0              | CopyIfEmpty            | SKIP            |

    Args:
        destination_count: Rows currently in the destination table
        mode: Configured convert mode
        table_name: Table name, used only for logging

    Returns:
        CopyDecision
    """
    if destination_count < 0:
        raise ValueError(f"Invalid destination row count {destination_count}")

    if destination_count == 0:
        return CopyDecision.COPY

    if mode == ConvertMode.DROP_AND_RECREATE:
        return CopyDecision.CLEAR_THEN_COPY
    if mode == ConvertMode.SKIP_EXISTING:
        logger.info(f"Skipping data copy for table {table_name}")
        return CopyDecision.SKIP
    if mode == ConvertMode.THROW_EXCEPTION_IF_EXISTS:
        return CopyDecision.ABORT

    logger.debug(
        f"Table {table_name} has {destination_count:,} rows, not copying ({mode.value})"
    )
    return CopyDecision.SKIP
