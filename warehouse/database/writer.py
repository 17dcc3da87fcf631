"""
Table Writer

Schema-on-write persistence of dict records into a warehouse schema.
Column types are inferred from the first chunk with Polars; columns that
show up later are added in place.
"""

from enum import Enum
from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Optional

import polars as pl
import structlog
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    func,
    inspect,
    text,
)
from sqlalchemy.engine import Connection, Dialect, Engine
from sqlalchemy.schema import DropTable
from sqlalchemy.types import TypeEngine

from .connection import reflect_table

logger = structlog.get_logger(__name__)


class WriteDisposition(str, Enum):
    """How a write treats rows already in the target table"""
    APPEND = "append"
    REPLACE = "replace"


def polars_to_sqlalchemy(dtype: pl.DataType) -> TypeEngine:
    """Map a Polars dtype to the column type used when creating tables"""
    if dtype in (pl.Int8, pl.Int16, pl.Int32, pl.UInt8, pl.UInt16):
        return Integer()
    if dtype in (pl.Int64, pl.UInt32, pl.UInt64):
        return BigInteger()
    if dtype in (pl.Float32, pl.Float64):
        return Float()
    if dtype == pl.Boolean:
        return Boolean()
    if dtype == pl.Date:
        return Date()
    if dtype == pl.Datetime:
        return DateTime()
    if dtype == pl.Decimal:
        scale = getattr(dtype, "scale", None)
        return Numeric(38, scale if scale is not None else 9)
    return Text()


def infer_column_types(records: List[Dict[str, Any]]) -> Dict[str, TypeEngine]:
    """Infer column types for a batch of records"""
    frame = pl.DataFrame(records, infer_schema_length=None, strict=False)
    return {name: polars_to_sqlalchemy(dtype) for name, dtype in frame.schema.items()}


def column_type(dialect: Dialect, type_: TypeEngine) -> TypeEngine:
    """Column type as created on a dialect (ClickHouse columns are not nullable by default)"""
    if dialect.name == "clickhouse":
        from clickhouse_sqlalchemy.types import Nullable

        return Nullable(type_)
    return type_


def table_definition(
    dialect: Dialect,
    table_name: str,
    column_types: Dict[str, TypeEngine],
    schema: Optional[str] = None,
) -> Table:
    """
    Table to create for a set of inferred columns.

    ClickHouse tables need an engine; they are created as unsorted MergeTree
    tables, the same engine `CreateTableAs` uses.
    """
    columns = [Column(name, column_type(dialect, type_)) for name, type_ in column_types.items()]
    table_args = []
    if dialect.name == "clickhouse":
        from clickhouse_sqlalchemy import engines

        table_args.append(engines.MergeTree(order_by=func.tuple()))
    return Table(table_name, MetaData(), *columns, *table_args, schema=schema)


def _chunked(records: Iterable[Dict[str, Any]], size: int) -> Iterator[List[Dict[str, Any]]]:
    iterator = iter(records)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


class TableWriter:
    """
    Writes record streams into tables of one schema.

    Example:
        writer = TableWriter(engine, schema="raw")
        writer.write("artist", records, WriteDisposition.REPLACE)
    """

    def __init__(self, engine: Engine, schema: Optional[str], chunk_size: int = 5000):
        self.engine = engine
        self.schema = schema
        self.chunk_size = chunk_size

    def _has_table(self, conn: Connection, table_name: str) -> bool:
        return inspect(conn).has_table(table_name, schema=self.schema)

    def _drop(self, conn: Connection, table_name: str) -> None:
        conn.execute(DropTable(Table(table_name, MetaData(), schema=self.schema), if_exists=True))

    def _create(self, conn: Connection, table_name: str, column_types: Dict[str, TypeEngine]) -> Table:
        table = table_definition(conn.dialect, table_name, column_types, self.schema)
        table.create(conn)
        logger.info(
            "Created table",
            table=f"{self.schema}.{table_name}",
            columns=len(column_types),
        )
        return table

    def _add_missing_columns(
        self,
        conn: Connection,
        table: Table,
        column_types: Dict[str, TypeEngine],
    ) -> Table:
        missing = {name: type_ for name, type_ in column_types.items() if name not in table.c}
        if not missing:
            return table

        preparer = conn.dialect.identifier_preparer
        for name, type_ in missing.items():
            conn.execute(text(
                "ALTER TABLE %s ADD COLUMN %s %s" % (
                    preparer.format_table(table),
                    preparer.quote(name),
                    column_type(conn.dialect, type_).compile(dialect=conn.dialect),
                )
            ))
        logger.info(
            "Added columns",
            table=f"{self.schema}.{table.name}",
            columns=sorted(missing),
        )
        return reflect_table(conn, table.name, self.schema)

    def _prepare(
        self,
        conn: Connection,
        table_name: str,
        column_types: Dict[str, TypeEngine],
        disposition: WriteDisposition,
    ) -> Table:
        exists = self._has_table(conn, table_name)
        if exists and disposition == WriteDisposition.REPLACE:
            self._drop(conn, table_name)
            exists = False

        if not exists:
            return self._create(conn, table_name, column_types)

        table = reflect_table(conn, table_name, self.schema)
        return self._add_missing_columns(conn, table, column_types)

    def _insert(self, conn: Connection, table: Table, chunk: List[Dict[str, Any]]) -> int:
        names = [column.name for column in table.columns]
        rows = [{name: record.get(name) for name in names} for record in chunk]
        conn.execute(table.insert(), rows)
        return len(rows)

    def write(
        self,
        table_name: str,
        records: Iterable[Dict[str, Any]],
        disposition: WriteDisposition = WriteDisposition.APPEND,
        column_types: Optional[Dict[str, TypeEngine]] = None,
    ) -> int:
        """
        Write records into a table.

        Args:
            table_name: Target table (unqualified)
            records: Dict records, consumed lazily in chunks
            disposition: append keeps existing rows, replace drops the table first
            column_types: Explicit column types; inferred per chunk when omitted

        Returns:
            Number of rows written
        """
        disposition = WriteDisposition(disposition)
        chunks = _chunked(records, self.chunk_size)
        total = 0

        with self.engine.begin() as conn:
            first = next(chunks, None)
            if first is None:
                if column_types is not None:
                    self._prepare(conn, table_name, column_types, disposition)
                elif disposition == WriteDisposition.REPLACE and self._has_table(conn, table_name):
                    conn.execute(reflect_table(conn, table_name, self.schema).delete())
                logger.info("No records to write", table=f"{self.schema}.{table_name}")
                return 0

            table = self._prepare(
                conn,
                table_name,
                column_types or infer_column_types(first),
                disposition,
            )
            total += self._insert(conn, table, first)

            for chunk in chunks:
                if column_types is None:
                    table = self._add_missing_columns(conn, table, infer_column_types(chunk))
                total += self._insert(conn, table, chunk)

        logger.info(
            "Wrote records",
            table=f"{self.schema}.{table_name}",
            rows=total,
            disposition=disposition.value,
        )
        return total

    def write_frame(
        self,
        table_name: str,
        df: pl.DataFrame,
        disposition: WriteDisposition = WriteDisposition.REPLACE,
    ) -> int:
        """Write a Polars DataFrame, keeping its dtypes as column types"""
        column_types = {name: polars_to_sqlalchemy(dtype) for name, dtype in df.schema.items()}
        return self.write(
            table_name,
            df.iter_rows(named=True),
            disposition,
            column_types=column_types,
        )
