"""
Database Data Conversion DAG

This DAG copies the data of every base table in a source catalog/schema to a
destination database whose tables already exist. It handles:
1. Checking each destination table and applying the convert mode
2. Copying small tables in one paginated pass
3. Copying large tables with parallel workers over disjoint row ranges
4. Reporting per-table row counts

Source and destination are Airflow connections. PostgreSQL connections are
used through PostgresHook, every other connection type through ODBC.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from typing import List, Dict, Any
import logging

from data_converter.config import ConverterConfig, ConvertMode
from data_converter.connections import AirflowConnectionFactory
from data_converter.converter import convert_data

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        # Committed batches are not rolled back, a blind retry would duplicate rows
        "retries": 0,
    },
    params={
        "source_conn_id": Param(
            default="source_db",
            type="string",
            description="Source database connection ID"
        ),
        "destination_conn_id": Param(
            default="destination_db",
            type="string",
            description="Destination database connection ID"
        ),
        "source_dialect": Param(
            default=None,
            type=["null", "string"],
            description="Source SQL dialect (ansi, generic, postgres, sqlite, mysql, mssql, oracle); detected when empty"
        ),
        "destination_dialect": Param(
            default=None,
            type=["null", "string"],
            description="Destination SQL dialect; detected when empty"
        ),
        "catalog": Param(
            default=None,
            type=["null", "string"],
            description="Source catalog (database); connection default when empty"
        ),
        "schema": Param(
            default=None,
            type=["null", "string"],
            description="Source schema; all schemas when empty"
        ),
        "destination_catalog": Param(
            default=None,
            type=["null", "string"],
            description="Catalog to qualify destination tables with"
        ),
        "destination_schema": Param(
            default=None,
            type=["null", "string"],
            description="Schema to qualify destination tables with"
        ),
        "batch_size": Param(
            default=1000,
            type="integer",
            minimum=1,
            description="Rows per committed batch; larger tables are copied in parallel"
        ),
        "number_of_workers": Param(
            default=10,
            type="integer",
            minimum=1,
            maximum=64,
            description="Parallel copy units per large table"
        ),
        "run_in_auto_commit": Param(
            default=False,
            type="boolean",
            description="Run destination connections in auto-commit mode"
        ),
        "data_convert_mode": Param(
            default=ConvertMode.COPY_IF_EMPTY.value,
            type="string",
            enum=[m.value for m in ConvertMode],
            description="What to do with destination tables that already contain rows"
        ),
        "select_format": Param(
            default=None,
            type=["null", "string"],
            description="SELECT template with $COLUMNS, $TABLE, $PRIMARY_KEY, $BATCH_SIZE and $OFFSET"
        ),
        "include_tables": Param(
            default=[],
            type="array",
            description="Table name patterns to copy (supports wildcards); all when empty"
        ),
        "exclude_tables": Param(
            default=[],
            type="array",
            description="Table name patterns to exclude (supports wildcards)"
        ),
    },
    tags=["migration", "data-copy", "etl"],
)
def data_converter():
    """
    DAG copying table data from a source to a destination database.
    """

    @task(task_id="convert_data")
    def convert_data_task(**context) -> List[Dict[str, Any]]:
        """
        Copy the data of all tables.

        Returns:
            List of per-table result dictionaries
        """
        params = context["params"]
        config = ConverterConfig.from_params(params)
        factory = AirflowConnectionFactory(
            source_conn_id=params["source_conn_id"],
            destination_conn_id=params["destination_conn_id"],
            source_dialect=params.get("source_dialect"),
            destination_dialect=params.get("destination_dialect"),
        )

        logger.info(
            f"Copying data from {params['source_conn_id']} to {params['destination_conn_id']}"
        )
        return convert_data(
            factory,
            config,
            catalog=params.get("catalog"),
            schema=params.get("schema"),
        )

    @task
    def report_results(results: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Log a per-table summary of the conversion."""
        summary = {
            "tables": len(results),
            "copied": sum(1 for r in results if r["status"] == "copied"),
            "skipped": sum(1 for r in results if r["status"] == "skipped"),
            "no_primary_key": [r["table_name"] for r in results if r["status"] == "no_primary_key"],
            "rows_transferred": sum(r["rows_transferred"] for r in results),
        }

        for r in results:
            logger.info(
                f"{r['table_name']}: {r['status']} ({r['decision']}), "
                f"{r['rows_transferred']:,} rows in {r['elapsed_time_seconds']:.2f}s"
            )
        if summary["no_primary_key"]:
            logger.warning(
                f"Tables without primary key were not copied: {', '.join(summary['no_primary_key'])}"
            )
        logger.info(
            f"Conversion complete: {summary['copied']}/{summary['tables']} tables copied, "
            f"{summary['rows_transferred']:,} rows"
        )
        return summary

    report_results(convert_data_task())


# Instantiate the DAG
data_converter()
