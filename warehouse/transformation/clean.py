"""
Clean Layer Transformer

Builds `clean.<model>` from `raw.<source>` with a single SELECT per model:
rename, cast, map placeholder values to NULL and fill declared defaults.
Columns not declared on the model are dropped. No business logic here;
joins and aggregates belong to the mart layer.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import Table, func, literal, select
from sqlalchemy.engine import Engine
from sqlalchemy.sql import ColumnElement, Select

from warehouse.config import Settings, get_settings
from warehouse.database.connection import count_rows, create_warehouse_engine, reflect_table
from warehouse.database.sql import cast_to
from warehouse.metrics import TABLE_BUILD_SECONDS
from warehouse.transformation.definitions import CleanModel, ColumnSpec
from warehouse.transformation.transformers import TransformLayer, TransformResult, replace_table_as

logger = structlog.get_logger(__name__)


class CleanTransformer:
    """
    Raw -> clean transformer driven by `CleanModel` declarations.

    Example:
        transformer = CleanTransformer(engine)
        results = transformer.run_all(definition.clean)
    """

    def __init__(self, engine: Optional[Engine] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine = engine or create_warehouse_engine(settings=self.settings)
        self.raw_schema = self.settings.warehouse.raw_schema
        self.clean_schema = self.settings.warehouse.clean_schema

    def column_expression(self, column: ColumnSpec, raw_table: Table) -> ColumnElement:
        """source -> NULLIF placeholders -> cast -> default -> label"""
        if column.source_column not in raw_table.c:
            raise ValueError(
                f"Column '{column.source_column}' not found in {raw_table.fullname} "
                f"(needed for clean column '{column.name}')"
            )

        expr = raw_table.c[column.source_column]
        for placeholder in column.null_if:
            expr = func.nullif(expr, placeholder)
        expr = cast_to(expr, column.type)
        if column.default is not None:
            expr = func.coalesce(expr, literal(column.default))
        return expr.label(column.name)

    def build_select(self, model: CleanModel, raw_table: Table) -> Select:
        """SELECT producing the clean table of a model"""
        return select(*[self.column_expression(column, raw_table) for column in model.columns])

    def run(self, model: CleanModel) -> TransformResult:
        """Rebuild one clean table"""
        started_at = datetime.utcnow()
        target = f"{self.clean_schema}.{model.name}"

        logger.info("Building clean table", table=target, source=f"{self.raw_schema}.{model.source}")

        try:
            with self.engine.begin() as conn:
                raw_table = reflect_table(conn, model.source, self.raw_schema)
                input_rows = count_rows(conn, raw_table)
                output_rows = replace_table_as(
                    conn,
                    model.name,
                    self.clean_schema,
                    self.build_select(model, raw_table),
                )
        except Exception as e:
            logger.error("Clean transform failed", table=target, error=str(e))
            raise

        completed_at = datetime.utcnow()
        result = TransformResult(
            model=model.name,
            layer=TransformLayer.CLEAN,
            table=target,
            input_rows=input_rows,
            output_rows=output_rows,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
        )

        TABLE_BUILD_SECONDS.labels(layer=result.layer.value, table=target).observe(result.duration_seconds)

        logger.info(
            "Clean table built",
            table=target,
            input_rows=input_rows,
            output_rows=output_rows,
            duration_seconds=result.duration_seconds,
        )
        return result

    def run_all(self, models: List[CleanModel]) -> List[TransformResult]:
        """Rebuild clean tables in declaration order"""
        return [self.run(model) for model in models]
