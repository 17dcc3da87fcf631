"""
Mart Layer

Star-schema tables built from the clean layer. Each dataset declares an
ordered list of mart models: dimensions first, then facts that join them.
Every model is drop-and-recreate, so a rebuild over the same clean layer
produces identical marts.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

import polars as pl
import structlog
from sqlalchemy import Table
from sqlalchemy.engine import Engine
from sqlalchemy.sql import Select

from warehouse.config import Settings, get_settings
from warehouse.database.connection import create_warehouse_engine, read_frame, reflect_table
from warehouse.database.writer import TableWriter, WriteDisposition
from warehouse.metrics import TABLE_BUILD_SECONDS
from warehouse.transformation.transformers import TransformLayer, TransformResult, replace_table_as

logger = structlog.get_logger(__name__)


class MartContext:
    """
    Table lookup handed to mart queries.

    Tables are reflected on first use and cached for the rest of the build.
    """

    def __init__(self, engine: Engine, settings: Settings):
        self.engine = engine
        self.clean_schema = settings.warehouse.clean_schema
        self.mart_schema = settings.warehouse.mart_schema
        self._tables: Dict[tuple, Table] = {}

    def _table(self, name: str, schema: str) -> Table:
        key = (schema, name)
        if key not in self._tables:
            with self.engine.connect() as conn:
                self._tables[key] = reflect_table(conn, name, schema)
        return self._tables[key]

    def clean(self, name: str) -> Table:
        return self._table(name, self.clean_schema)

    def mart(self, name: str) -> Table:
        return self._table(name, self.mart_schema)

    def invalidate(self, name: str) -> None:
        self._tables.pop((self.mart_schema, name), None)


MartQuery = Callable[[MartContext], Select]


@dataclass
class MartModel:
    """A mart table defined by a hand-written SELECT over clean/mart tables"""
    name: str
    query: MartQuery
    description: str = ""

    def materialize(self, ctx: MartContext) -> int:
        query = self.query(ctx)
        with ctx.engine.begin() as conn:
            return replace_table_as(conn, self.name, ctx.mart_schema, query)


_WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
_MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def build_date_frame(keys: pl.Series) -> pl.DataFrame:
    """
    Date dimension rows for a set of YYYYMMDD keys.

    DayOfWeek is ISO (Monday = 1); Quarter = ((Month - 1) // 3) + 1.
    """
    keys = keys.drop_nulls().unique().sort()
    df = pl.DataFrame({"DateKey": keys.cast(pl.Int64)})
    df = df.with_columns(
        pl.col("DateKey").cast(pl.Utf8).str.strptime(pl.Date, "%Y%m%d").alias("FullDate")
    )
    df = df.with_columns([
        pl.col("FullDate").dt.year().cast(pl.Int32).alias("Year"),
        pl.col("FullDate").dt.month().cast(pl.Int32).alias("Month"),
        pl.col("FullDate").dt.day().cast(pl.Int32).alias("Day"),
        pl.col("FullDate").dt.weekday().cast(pl.Int32).alias("DayOfWeek"),
        pl.col("FullDate").dt.week().cast(pl.Int32).alias("WeekOfYear"),
    ])
    return df.with_columns([
        (((pl.col("Month") - 1) // 3) + 1).cast(pl.Int32).alias("Quarter"),
        pl.col("Month").replace_strict(
            list(range(1, 13)), _MONTH_NAMES, return_dtype=pl.Utf8
        ).alias("MonthName"),
        pl.col("DayOfWeek").replace_strict(
            list(range(1, 8)), _WEEKDAY_NAMES, return_dtype=pl.Utf8
        ).alias("DayName"),
        (pl.col("DayOfWeek") >= 6).alias("IsWeekend"),
    ]).select([
        "DateKey", "FullDate", "Year", "Quarter", "Month", "MonthName",
        "Day", "DayOfWeek", "DayName", "WeekOfYear", "IsWeekend",
    ])


@dataclass
class DateDimension:
    """
    Calendar dimension covering every date the facts reference.

    `sources(ctx)` returns SELECTs whose first column is a YYYYMMDD key.
    """
    sources: Callable[[MartContext], List[Select]]
    name: str = "DimDate"
    description: str = "One row per calendar date referenced by a fact"

    def collect_keys(self, ctx: MartContext) -> pl.Series:
        series = [
            read_frame(ctx.engine, query).to_series(0).cast(pl.Int64, strict=False)
            for query in self.sources(ctx)
        ]
        if not series:
            return pl.Series("DateKey", [], dtype=pl.Int64)
        return pl.concat(series).rename("DateKey")

    def materialize(self, ctx: MartContext) -> int:
        df = build_date_frame(self.collect_keys(ctx))
        writer = TableWriter(ctx.engine, schema=ctx.mart_schema)
        return writer.write_frame(self.name, df, WriteDisposition.REPLACE)


Model = Union[MartModel, DateDimension]


class MartBuilder:
    """
    Builds a dataset's mart models in order.

    Example:
        builder = MartBuilder(engine)
        results = builder.build(chinook.MART_MODELS)
    """

    def __init__(self, engine: Optional[Engine] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine = engine or create_warehouse_engine(settings=self.settings)
        self.mart_schema = self.settings.warehouse.mart_schema

    def run(self, model: Model, ctx: MartContext) -> TransformResult:
        """Rebuild one mart table"""
        started_at = datetime.utcnow()
        target = f"{self.mart_schema}.{model.name}"
        logger.info("Building mart table", table=target)

        try:
            output_rows = model.materialize(ctx)
        except Exception as e:
            logger.error("Mart build failed", table=target, error=str(e))
            raise
        ctx.invalidate(model.name)

        completed_at = datetime.utcnow()
        result = TransformResult(
            model=model.name,
            layer=TransformLayer.MART,
            table=target,
            output_rows=output_rows,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
        )
        TABLE_BUILD_SECONDS.labels(layer=result.layer.value, table=target).observe(result.duration_seconds)
        logger.info(
            "Mart table built",
            table=target,
            output_rows=output_rows,
            duration_seconds=result.duration_seconds,
        )
        return result

    def build(self, models: List[Model]) -> List[TransformResult]:
        """Rebuild every model; later models may read tables built earlier"""
        ctx = MartContext(self.engine, self.settings)
        return [self.run(model, ctx) for model in models]
