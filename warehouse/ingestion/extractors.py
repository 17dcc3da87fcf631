"""
Source Extractors

Read a source table or file and yield one dict per row. Extraction is
lazy: nothing is read until the stream is iterated, and every `extract()`
call starts a fresh full read.
"""

from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.engine import Engine

from warehouse.config import Settings, get_settings
from warehouse.database.connection import create_source_engine, reflect_table
from warehouse.transformation.definitions import (
    FileFormat,
    SourceDefinition,
    SourceKind,
    SourceTable,
)

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]


class SqlTableExtractor:
    """
    Streams rows of one table from a relational source.

    Example:
        extractor = SqlTableExtractor("Artist", engine=source_engine)
        for record in extractor.extract():
            ...
    """

    def __init__(
        self,
        table: str,
        schema_name: Optional[str] = None,
        engine: Optional[Engine] = None,
        settings: Optional[Settings] = None,
        chunk_size: Optional[int] = None,
    ):
        settings = settings or get_settings()
        self.table = table
        self.schema_name = schema_name
        self.chunk_size = chunk_size or settings.warehouse.chunk_size
        self._engine = engine
        self._settings = settings

    @property
    def name(self) -> str:
        return f"{self.schema_name}.{self.table}" if self.schema_name else self.table

    def extract(self) -> Iterator[Record]:
        """Yield one dict per source row"""
        owns_engine = self._engine is None
        engine = self._engine or create_source_engine(self._settings)
        rows = 0

        try:
            with engine.connect() as conn:
                table = reflect_table(conn, self.table, self.schema_name)
                logger.info(
                    "Extracting table",
                    table=self.name,
                    columns=[c.name for c in table.columns],
                )
                result = conn.execution_options(
                    stream_results=True,
                    yield_per=self.chunk_size,
                ).execute(select(table))
                for row in result:
                    rows += 1
                    yield dict(row._mapping)
        finally:
            if owns_engine:
                engine.dispose()

        logger.info("Extracted table", table=self.name, rows=rows)


class CsvFileExtractor:
    """
    Reads a CSV or Parquet file as raw records, one batch at a time.

    CSV columns are read as strings; typing happens in the clean layer.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        file_format: FileFormat = FileFormat.CSV,
        delimiter: str = ",",
        encoding: str = "utf8",
        null_values: Optional[List[str]] = None,
        batch_size: int = 50_000,
    ):
        self.file_path = Path(file_path)
        self.file_format = FileFormat(file_format)
        self.delimiter = delimiter
        self.encoding = encoding
        self.null_values = null_values if null_values is not None else [""]
        self.batch_size = batch_size

    @property
    def name(self) -> str:
        return str(self.file_path)

    def _csv_batches(self) -> Iterator[pl.DataFrame]:
        reader = pl.read_csv_batched(
            self.file_path,
            separator=self.delimiter,
            encoding=self.encoding,
            null_values=self.null_values,
            infer_schema_length=0,
            batch_size=self.batch_size,
        )
        while True:
            batches = reader.next_batches(1)
            if not batches:
                return
            yield from batches

    def _parquet_batches(self) -> Iterator[pl.DataFrame]:
        frame = pl.scan_parquet(self.file_path)
        offset = 0
        while True:
            batch = frame.slice(offset, self.batch_size).collect()
            if batch.is_empty():
                return
            yield batch
            offset += batch.height

    def _batches(self) -> Iterator[pl.DataFrame]:
        readers = {
            FileFormat.CSV: self._csv_batches,
            FileFormat.PARQUET: self._parquet_batches,
        }
        return readers[self.file_format]()

    def extract(self) -> Iterator[Record]:
        """Yield one dict per file row"""
        if not self.file_path.exists():
            raise FileNotFoundError(f"File not found: {self.file_path}")

        logger.info("Extracting file", file=self.name, format=self.file_format.value)
        rows = 0
        for batch in self._batches():
            rows += batch.height
            yield from batch.iter_rows(named=True)

        logger.info("Extracted file", file=self.name, rows=rows)


Extractor = Union[SqlTableExtractor, CsvFileExtractor]


def create_extractor(
    source: SourceDefinition,
    table: SourceTable,
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
) -> Extractor:
    """
    Build the extractor for one table of a dataset source.

    Args:
        source: The dataset's source definition
        table: Table (or file) to extract
        settings: Settings for connection and file defaults
        engine: Source engine to reuse for SQL sources

    Returns:
        Extractor whose `extract()` yields the table's records
    """
    settings = settings or get_settings()

    if source.kind == SourceKind.SQL:
        return SqlTableExtractor(
            table.name,
            schema_name=source.schema_name or settings.source_db.schema_name,
            engine=engine,
            settings=settings,
        )

    root = Path(settings.source_files.root_dir)
    directory = root / source.directory if source.directory else root
    return CsvFileExtractor(
        directory / table.file,
        file_format=source.file_format,
        delimiter=settings.source_files.delimiter,
        encoding=settings.source_files.encoding,
        null_values=source.null_values,
        batch_size=settings.warehouse.chunk_size,
    )
