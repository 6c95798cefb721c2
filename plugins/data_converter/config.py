"""
Converter Configuration Module

Immutable run configuration handed to the DataConverter. Built from
environment variables (BATCH_SIZE, NUMBER_OF_WORKERS, ...) or from Airflow
DAG params.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
import logging
import os

from data_converter.query_builder import SelectTemplate

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_NUMBER_OF_WORKERS = 10
DEFAULT_PARALLEL_TIMEOUT_SECONDS = 6 * 60 * 60


class ConvertMode(Enum):
    """What to do with a destination table that already contains rows."""

    DROP_AND_RECREATE = "DropAndRecreate"
    SKIP_EXISTING = "SkipExisting"
    THROW_EXCEPTION_IF_EXISTS = "ThrowExceptionIfExists"
    COPY_IF_EMPTY = "CopyIfEmpty"

    @classmethod
    def parse(cls, value: Any) -> "ConvertMode":
        """
        Parse a mode from its name, case-insensitively.

        Accepts "DropAndRecreate", "drop_and_recreate" or a ConvertMode.

        Raises:
            ValueError: If the value names no mode
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).replace("_", "").replace("-", "").lower().strip()
        for mode in cls:
            if mode.value.lower() == normalized:
                return mode
        raise ValueError(
            f"Invalid data convert mode '{value}': expected one of "
            f"{', '.join(m.value for m in cls)}"
        )


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower().strip() in ('true', '1', 'yes', 'on')


def _parse_list(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(',')
    return tuple(v.strip() for v in value if v and v.strip())


def _optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class ConverterConfig:
    """
    Settings of one conversion run.

    Attributes:
        batch_size: Rows per committed batch, also the size threshold above
            which a table is copied by parallel workers
        number_of_workers: Parallel copy units per large table
        run_in_auto_commit: Run destination connections in auto-commit mode
            instead of committing once per batch
        data_convert_mode: Policy for destination tables that contain rows
        select_format: SELECT template overriding the source dialect's default
        parallel_timeout_seconds: Upper bound on the wait for one table's
            parallel units
        destination_catalog: Catalog to qualify destination tables with
        destination_schema: Schema to qualify destination tables with
        include_tables: Wildcard patterns of tables to copy (all when empty)
        exclude_tables: Wildcard patterns of tables to leave out
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    number_of_workers: int = DEFAULT_NUMBER_OF_WORKERS
    run_in_auto_commit: bool = False
    data_convert_mode: ConvertMode = ConvertMode.COPY_IF_EMPTY
    select_format: Optional[str] = None
    parallel_timeout_seconds: float = DEFAULT_PARALLEL_TIMEOUT_SECONDS
    destination_catalog: Optional[str] = None
    destination_schema: Optional[str] = None
    include_tables: Tuple[str, ...] = field(default_factory=tuple)
    exclude_tables: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ValueError(f"Invalid batch_size {self.batch_size!r}: must be a positive integer")
        if (isinstance(self.number_of_workers, bool) or not isinstance(self.number_of_workers, int)
                or self.number_of_workers < 1):
            raise ValueError(
                f"Invalid number_of_workers {self.number_of_workers!r}: must be a positive integer"
            )
        if self.parallel_timeout_seconds <= 0:
            raise ValueError(
                f"Invalid parallel_timeout_seconds {self.parallel_timeout_seconds!r}: must be positive"
            )
        if not isinstance(self.data_convert_mode, ConvertMode):
            object.__setattr__(self, "data_convert_mode", ConvertMode.parse(self.data_convert_mode))
        if self.select_format is not None:
            # Reject a broken template before any table is touched
            SelectTemplate(self.select_format)
        object.__setattr__(self, "include_tables", _parse_list(self.include_tables))
        object.__setattr__(self, "exclude_tables", _parse_list(self.exclude_tables))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConverterConfig":
        """
        Build the configuration from environment variables.

        Recognised variables: BATCH_SIZE, NUMBER_OF_WORKERS, RUN_IN_AUTO_COMMIT,
        DATA_CONVERT_MODE, SELECT_FORMAT, PARALLEL_TIMEOUT_SECONDS,
        DESTINATION_CATALOG, DESTINATION_SCHEMA, INCLUDE_TABLES and
        EXCLUDE_TABLES (comma separated). Unset variables keep their defaults.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            ConverterConfig
        """
        env = os.environ if environ is None else environ
        try:
            config = cls(
                batch_size=int(env.get('BATCH_SIZE', DEFAULT_BATCH_SIZE)),
                number_of_workers=int(env.get('NUMBER_OF_WORKERS', DEFAULT_NUMBER_OF_WORKERS)),
                run_in_auto_commit=_parse_bool(env.get('RUN_IN_AUTO_COMMIT', 'false')),
                data_convert_mode=ConvertMode.parse(
                    env.get('DATA_CONVERT_MODE', ConvertMode.COPY_IF_EMPTY.value)
                ),
                select_format=_optional(env.get('SELECT_FORMAT')),
                parallel_timeout_seconds=float(
                    env.get('PARALLEL_TIMEOUT_SECONDS', DEFAULT_PARALLEL_TIMEOUT_SECONDS)
                ),
                destination_catalog=_optional(env.get('DESTINATION_CATALOG')),
                destination_schema=_optional(env.get('DESTINATION_SCHEMA')),
                include_tables=_parse_list(env.get('INCLUDE_TABLES')),
                exclude_tables=_parse_list(env.get('EXCLUDE_TABLES')),
            )
        except ValueError as e:
            logger.error(f"Invalid converter configuration in environment: {e}")
            raise
        return config

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ConverterConfig":
        """
        Build the configuration from Airflow DAG params.

        Missing or None params keep their defaults.
        """
        values: Dict[str, Any] = {}
        for name in (
            'batch_size', 'number_of_workers', 'run_in_auto_commit', 'data_convert_mode',
            'select_format', 'parallel_timeout_seconds', 'destination_catalog',
            'destination_schema', 'include_tables', 'exclude_tables',
        ):
            if params.get(name) is not None:
                values[name] = params[name]

        if 'run_in_auto_commit' in values:
            values['run_in_auto_commit'] = _parse_bool(values['run_in_auto_commit'])
        for name in ('select_format', 'destination_catalog', 'destination_schema'):
            if name in values:
                values[name] = _optional(values[name])
        return cls(**values)

    def describe(self) -> Dict[str, Any]:
        """Settings as a plain dict, for logging and XCom."""
        return {
            'batch_size': self.batch_size,
            'number_of_workers': self.number_of_workers,
            'run_in_auto_commit': self.run_in_auto_commit,
            'data_convert_mode': self.data_convert_mode.value,
            'select_format': self.select_format,
            'parallel_timeout_seconds': self.parallel_timeout_seconds,
            'destination_catalog': self.destination_catalog,
            'destination_schema': self.destination_schema,
            'include_tables': list(self.include_tables),
            'exclude_tables': list(self.exclude_tables),
        }
