"""
Data Converter Module

Top level of the table-copy engine. For every base table of a source
catalog/schema it checks the destination, applies the convert mode, discovers
the table's columns and copies it: small tables in one sequential pass on the
run's connections, large tables with parallel workers on their own
connections. Tables are processed one after another.
"""

from typing import Any, Dict, List, Optional
import logging
import time

from data_converter.config import ConverterConfig
from data_converter.connections import ConnectionFactory, DatabaseConnection
from data_converter.data_transfer import copy_table_sequential
from data_converter.metadata import TableDescriptor, discover_columns, list_base_tables
from data_converter.parallel import ParallelCopy
from data_converter.policy import CopyDecision, TableNotEmptyError, decide
from data_converter.query_builder import SelectTemplate, build_delete_all

logger = logging.getLogger(__name__)

STATUS_COPIED = "copied"
STATUS_SKIPPED = "skipped"
STATUS_NO_PRIMARY_KEY = "no_primary_key"


class DataConverter:
    """
    Copy the data of all tables of a catalog/schema.

    Args:
        source: Source connection
        destination: Destination connection
        config: Run configuration
        connection_factory: Opens extra connection pairs for parallel workers;
            without one every table is copied sequentially
    """

    def __init__(
        self,
        source: DatabaseConnection,
        destination: DatabaseConnection,
        config: Optional[ConverterConfig] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        self.source = source
        self.destination = destination
        self.config = config or ConverterConfig()
        self.connection_factory = connection_factory
        self.select_template = SelectTemplate(
            self.config.select_format or source.dialect.select_format
        )

    def destination_table_for(self, table: TableDescriptor) -> TableDescriptor:
        """Destination counterpart of a source table."""
        return TableDescriptor(
            self.config.destination_catalog,
            self.config.destination_schema,
            table.name,
        )

    def convert(self, catalog: Optional[str] = None, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Copy every base table of a catalog/schema.

        Args:
            catalog: Source catalog, None for the connection default
            schema: Source schema, None for every schema the source reports

        Returns:
            List of per-table result dictionaries

        Raises:
            TableNotEmptyError: A destination table holds rows under
                ThrowExceptionIfExists; no later table is processed
            Exception: Any copy failure, after logging the table it hit
        """
        start_time = time.time()
        logger.info(f"Converting data with settings {self.config.describe()}")

        tables = list_base_tables(
            self.source,
            catalog,
            schema,
            include_tables=self.config.include_tables,
            exclude_tables=self.config.exclude_tables,
        )
        logger.info(f"Found {len(tables)} tables to convert")

        results = []
        for table in tables:
            try:
                results.append(self.convert_table(table))
            except Exception as e:
                logger.error(f"Data conversion stopped at table {table}: {e}")
                raise

        elapsed_time = time.time() - start_time
        copied = [r for r in results if r['status'] == STATUS_COPIED]
        logger.info(
            f"Data conversion finished in {elapsed_time:.2f}s: "
            f"{len(copied)} copied, {len(results) - len(copied)} not copied, "
            f"{sum(r['rows_transferred'] for r in results):,} rows"
        )
        return results

    def convert_table(self, table: TableDescriptor) -> Dict[str, Any]:
        """
        Apply the convert mode to one table and copy it if allowed.

        Args:
            table: Source table

        Returns:
            Result dictionary with the table's status and statistics
        """
        start_time = time.time()
        destination_table = self.destination_table_for(table)
        self.destination.set_autocommit(self.config.run_in_auto_commit)
        result = {
            'table_name': str(table),
            'destination_table': str(destination_table),
            'status': STATUS_SKIPPED,
            'decision': None,
            'source_row_count': None,
            'rows_transferred': 0,
            'workers': 0,
            'elapsed_time_seconds': 0.0,
            'avg_rows_per_second': 0,
        }

        destination_count = self.destination.count_rows(destination_table)
        decision = decide(destination_count, self.config.data_convert_mode, str(table))
        result['decision'] = decision.value

        if decision == CopyDecision.ABORT:
            raise TableNotEmptyError(str(destination_table), destination_count)
        if decision == CopyDecision.SKIP:
            return result
        if decision == CopyDecision.CLEAR_THEN_COPY:
            self._delete_all(destination_table)

        column_set = discover_columns(self.source, table)
        if not column_set.is_copyable:
            logger.warning(f"Table {table} does not have a primary key. No data will be copied.")
            result['status'] = STATUS_NO_PRIMARY_KEY
            return result

        total_rows = self.source.count_rows(table)
        result['source_row_count'] = total_rows

        if total_rows > self.config.batch_size and self.connection_factory is not None:
            transfer = ParallelCopy(self.connection_factory, self.config).run(
                table,
                destination_table,
                column_set,
                total_rows,
                self.select_template,
            )
            result['workers'] = transfer['workers']
        else:
            if total_rows > self.config.batch_size:
                logger.warning(
                    f"No connection factory configured, copying {table} "
                    f"({total_rows:,} rows) sequentially"
                )
            transfer = copy_table_sequential(
                self.source,
                self.destination,
                table,
                destination_table,
                column_set,
                total_rows,
                self.config.batch_size,
                self.select_template,
                autocommit=self.config.run_in_auto_commit,
            )
            result['workers'] = 1

        elapsed_time = time.time() - start_time
        result.update({
            'status': STATUS_COPIED,
            'rows_transferred': transfer['rows_transferred'],
            'elapsed_time_seconds': elapsed_time,
            'avg_rows_per_second': transfer['rows_transferred'] / elapsed_time if elapsed_time > 0 else 0,
        })
        return result

    def _delete_all(self, table: TableDescriptor) -> None:
        logger.info(f"Deleting all existing records from {table}")
        deleted = self.destination.execute(build_delete_all(table.qualified_name(self.destination.dialect)))
        if not self.config.run_in_auto_commit:
            self.destination.commit()
        logger.info(f"Delete done on {table} ({deleted:,} rows)")


def convert_data(
    connection_factory: ConnectionFactory,
    config: Optional[ConverterConfig] = None,
    catalog: Optional[str] = None,
    schema: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Convenience function to run a whole conversion from a connection factory.

    Opens the run's source and destination connections, converts every table
    of the catalog/schema and closes the connections again.

    Args:
        connection_factory: Opens source/destination connections
        config: Run configuration, from the environment when None
        catalog: Source catalog
        schema: Source schema

    Returns:
        List of per-table result dictionaries
    """
    config = config or ConverterConfig.from_env()
    with connection_factory.open_source() as source, \
            connection_factory.open_destination() as destination:
        converter = DataConverter(source, destination, config, connection_factory)
        return converter.convert(catalog, schema)
