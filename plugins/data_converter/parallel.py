"""
Parallel Copy Module

Copies one large table with a fixed pool of worker threads. The table's row
range is split into disjoint windows and every window is copied by its own
task on its own pair of connections (pyodbc and psycopg2 connections are not
safe to share between threads). Each task reports a result or a failure;
failures are collected per window and raised together once the pool is done.
"""

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Optional, Tuple
import logging
import threading
import time

from data_converter.config import ConverterConfig
from data_converter.connections import ConnectionFactory
from data_converter.data_transfer import copy_window
from data_converter.metadata import ColumnSet, TableDescriptor
from data_converter.partitioning import CopyWindow, compute_windows
from data_converter.query_builder import SelectTemplate

logger = logging.getLogger(__name__)


class ParallelCopyError(RuntimeError):
    """
    One or more copy units of a table failed.

    Attributes:
        table_name: Table being copied
        failures: (window, exception) for every failed unit
        results: Result dictionaries of the units that finished
    """

    def __init__(
        self,
        table_name: str,
        failures: List[Tuple[CopyWindow, BaseException]],
        results: Optional[List[Dict[str, Any]]] = None,
    ):
        details = "; ".join(f"{w}: {e}" for w, e in failures)
        super().__init__(f"{len(failures)} copy unit(s) failed for table {table_name}: {details}")
        self.table_name = table_name
        self.failures = failures
        self.results = results or []


class ParallelCopyTimeout(TimeoutError):
    """The copy units of a table did not finish within the configured wait."""


class ParallelCopy:
    """
    Orchestrates the parallel copy of one table.

    Usage:
        parallel = ParallelCopy(factory, config)
        result = parallel.run(table, destination_table, column_set, total_rows, template)
    """

    def __init__(self, connection_factory: ConnectionFactory, config: ConverterConfig):
        self.connection_factory = connection_factory
        self.config = config

    def _run_unit(
        self,
        unit_number: int,
        window: CopyWindow,
        destination_table: TableDescriptor,
        select_template: SelectTemplate,
        cancel_event: threading.Event,
    ) -> Dict[str, Any]:
        """Copy one window on a freshly opened connection pair."""
        label = f"UploadWorker-{unit_number} {window}"
        with self.connection_factory.open_source() as source, \
                self.connection_factory.open_destination() as destination:
            destination.set_autocommit(self.config.run_in_auto_commit)
            return copy_window(
                source,
                destination,
                window,
                destination_table,
                select_template,
                autocommit=self.config.run_in_auto_commit,
                cancel_event=cancel_event,
                label=label,
            )

    def run(
        self,
        table: TableDescriptor,
        destination_table: TableDescriptor,
        column_set: ColumnSet,
        total_rows: int,
        select_template: SelectTemplate,
    ) -> Dict[str, Any]:
        """
        Copy a table with up to number_of_workers concurrent units.

        Args:
            table: Source table
            destination_table: Destination table
            column_set: Columns and primary key of the table
            total_rows: Source row count taken before the copy
            select_template: Paginated SELECT template

        Returns:
            Aggregated transfer result dictionary with per-unit results

        Raises:
            ParallelCopyError: If any unit failed
            ParallelCopyTimeout: If the units did not finish in time
        """
        start_time = time.time()
        windows = compute_windows(
            table,
            column_set,
            total_rows,
            self.config.number_of_workers,
            self.config.batch_size,
        )
        logger.info(
            f"About to copy data from table {table} with {len(windows)} workers "
            f"({total_rows:,} rows)"
        )

        cancel_event = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=max(1, len(windows)),
            thread_name_prefix="UploadWorker",
        )
        futures: Dict[Future, CopyWindow] = {}
        finished = False
        try:
            for unit_number, window in enumerate(windows):
                future = executor.submit(
                    self._run_unit,
                    unit_number,
                    window,
                    destination_table,
                    select_template,
                    cancel_event,
                )
                futures[future] = window

            deadline = start_time + self.config.parallel_timeout_seconds
            done, not_done = wait(
                futures, timeout=self.config.parallel_timeout_seconds,
                return_when=FIRST_EXCEPTION,
            )
            if not_done and any(f.exception() is not None for f in done):
                # Stop the remaining units after their current batch, then let
                # them finish so every failure and result is accounted for
                cancel_event.set()
                done, not_done = wait(not_done, timeout=max(0.0, deadline - time.time()))
                done = set(futures) - set(not_done)

            if not_done:
                cancel_event.set()
                logger.error(
                    f"Timed out after {self.config.parallel_timeout_seconds:,.0f}s waiting for "
                    f"{len(not_done)} of {len(futures)} workers copying {table}"
                )
                raise ParallelCopyTimeout(
                    f"{len(not_done)} copy unit(s) for table {table} did not finish within "
                    f"{self.config.parallel_timeout_seconds:,.0f}s"
                )
            finished = True
        finally:
            if not finished:
                # Timeout or interrupt: do not block on the running units
                cancel_event.set()
                executor.shutdown(wait=False, cancel_futures=True)
            else:
                executor.shutdown(wait=True)

        results: List[Dict[str, Any]] = []
        failures: List[Tuple[CopyWindow, BaseException]] = []
        for future, window in futures.items():
            error = future.exception()
            if error is not None:
                logger.error(f"Worker copying {window} failed: {error}")
                failures.append((window, error))
            else:
                results.append(future.result())

        results.sort(key=lambda r: r['start_offset'])
        failures.sort(key=lambda f: f[0].start_offset)

        if failures:
            raise ParallelCopyError(str(table), failures, results)

        rows_transferred = sum(r['rows_transferred'] for r in results)
        elapsed_time = time.time() - start_time
        logger.info(f"{table}: Finished copying: {rows_transferred:,} of {total_rows:,}")

        return {
            'table_name': str(table),
            'rows_transferred': rows_transferred,
            'batches': sum(r['batches'] for r in results),
            'workers': len(windows),
            'units': results,
            'elapsed_time_seconds': elapsed_time,
            'avg_rows_per_second': rows_transferred / elapsed_time if elapsed_time > 0 else 0,
        }
