"""
Raw Loader

Lands extracted records in the raw schema as they are: names normalized to
snake_case, two metadata columns added, nothing else. There is no
deduplication; `append` loads accumulate and `replace` loads start over.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel
from sqlalchemy.engine import Engine

from warehouse.config import Settings, get_settings
from warehouse.database.connection import create_warehouse_engine
from warehouse.database.writer import TableWriter, WriteDisposition
from warehouse.metrics import RAW_LOADS, RAW_ROWS_LOADED
from warehouse.naming import normalize_identifier

logger = structlog.get_logger(__name__)

LOAD_ID_COLUMN = "_load_id"
LOADED_AT_COLUMN = "_loaded_at"


class LoadStatus(str, Enum):
    """Raw load status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LoadResult(BaseModel):
    """Result of loading one table into the raw layer"""
    table: str
    status: LoadStatus
    rows_loaded: int = 0
    load_id: str
    disposition: WriteDisposition = WriteDisposition.APPEND
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


class RawLoader:
    """
    Writes record streams into the raw schema.

    Example:
        loader = RawLoader(engine)
        result = loader.load(extractor.extract(), "invoice_line", "replace")
    """

    def __init__(self, engine: Optional[Engine] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine = engine or create_warehouse_engine(settings=self.settings)
        self.schema = self.settings.warehouse.raw_schema
        self.writer = TableWriter(
            self.engine,
            schema=self.schema,
            chunk_size=self.settings.warehouse.chunk_size,
        )

    def _prepare_records(
        self,
        records: Iterable[Dict[str, Any]],
        load_id: str,
        loaded_at: datetime,
    ) -> Iterator[Dict[str, Any]]:
        """Normalize keys and attach load metadata"""
        names: Dict[str, str] = {}
        for record in records:
            row = {}
            for key, value in record.items():
                if key not in names:
                    names[key] = normalize_identifier(key)
                row[names[key]] = value
            row[LOAD_ID_COLUMN] = load_id
            row[LOADED_AT_COLUMN] = loaded_at
            yield row

    def load(
        self,
        records: Iterable[Dict[str, Any]],
        table: str,
        disposition: WriteDisposition = WriteDisposition.APPEND,
        load_id: Optional[str] = None,
    ) -> LoadResult:
        """
        Load records into a raw table.

        Args:
            records: Dict records, usually an extractor stream
            table: Raw table name (normalized to snake_case)
            disposition: append or replace
            load_id: Identifier stamped on every row (generated if omitted)

        Returns:
            LoadResult: Result of the load operation
        """
        table_name = normalize_identifier(table)
        disposition = WriteDisposition(disposition)
        started_at = datetime.utcnow()

        result = LoadResult(
            table=f"{self.schema}.{table_name}",
            status=LoadStatus.RUNNING,
            load_id=load_id or uuid4().hex,
            disposition=disposition,
            started_at=started_at,
        )

        logger.info(
            "Starting raw load",
            table=result.table,
            disposition=disposition.value,
            load_id=result.load_id,
        )

        try:
            result.rows_loaded = self.writer.write(
                table_name,
                self._prepare_records(records, result.load_id, started_at),
                disposition,
            )
            result.status = LoadStatus.COMPLETED
        except Exception as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            RAW_LOADS.labels(table=result.table, status=result.status.value).inc()
            logger.error(
                "Raw load failed",
                table=result.table,
                error=str(e),
                load_id=result.load_id,
            )
            raise
        finally:
            result.completed_at = datetime.utcnow()
            result.load_duration_seconds = (
                result.completed_at - started_at
            ).total_seconds()

        RAW_LOADS.labels(table=result.table, status=result.status.value).inc()
        RAW_ROWS_LOADED.labels(table=result.table).inc(result.rows_loaded)

        logger.info(
            "Raw load completed",
            table=result.table,
            rows_loaded=result.rows_loaded,
            duration_seconds=result.load_duration_seconds,
        )
        return result
