"""
Quality Suite

Runs the tests a dataset declares for one warehouse layer. Each table is
read into a DataFrame and validated; `relationships` tests read their
reference column from the same layer unless the target is qualified
(`clean.student_info`).
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.engine import Engine

from warehouse.config import Settings, get_settings
from warehouse.database.connection import create_warehouse_engine, read_frame, reflect_table
from warehouse.metrics import QUALITY_CHECKS
from warehouse.transformation.definitions import DatasetDefinition
from warehouse.transformation.transformers import TransformLayer
from .validators import (
    DataQualityError,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    build_validator,
)

logger = structlog.get_logger(__name__)


def _outcome(check: ValidationCheck) -> str:
    if check.passed:
        return "passed"
    return "failed" if check.severity == ValidationSeverity.ERROR else "warning"


class QualitySuite:
    """
    Validates the clean or mart tables of a dataset.

    Example:
        suite = QualitySuite(engine)
        results = suite.run(definition, "clean")
        suite.raise_for_failures("clean", results)
    """

    def __init__(self, engine: Optional[Engine] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine = engine or create_warehouse_engine(settings=self.settings)
        self.schemas = {
            TransformLayer.CLEAN: self.settings.warehouse.clean_schema,
            TransformLayer.MART: self.settings.warehouse.mart_schema,
        }

    def _split_name(self, name: str, default_schema: str) -> Tuple[str, str]:
        if "." in name:
            schema, table = name.split(".", 1)
            return schema, table
        return default_schema, name

    def _read_table(self, schema: str, table: str, columns: Optional[List[str]] = None) -> pl.DataFrame:
        with self.engine.connect() as conn:
            reflected = reflect_table(conn, table, schema)
        if columns:
            return read_frame(self.engine, select(*[reflected.c[c] for c in columns]))
        return read_frame(self.engine, reflected)

    def _tables(self, definition: DatasetDefinition, layer: TransformLayer) -> List[Tuple[str, Sequence[Any], Sequence[Any]]]:
        if layer == TransformLayer.CLEAN:
            entries = definition.clean
        else:
            entries = definition.marts
        return [
            (entry.name, entry.columns, entry.tests)
            for entry in entries
            if entry.tests or any(column.tests for column in entry.columns)
        ]

    def run(self, definition: DatasetDefinition, layer: str) -> Dict[str, ValidationResult]:
        """
        Validate every tested table of one layer.

        Args:
            definition: Dataset whose declared tests to run
            layer: clean or mart

        Returns:
            Validation result per table
        """
        layer = TransformLayer(layer)
        schema = self.schemas[layer]

        def load_reference(name: str, column: str) -> pl.DataFrame:
            ref_schema, ref_table = self._split_name(name, schema)
            return self._read_table(ref_schema, ref_table, [column])

        results: Dict[str, ValidationResult] = {}
        for name, columns, table_tests in self._tables(definition, layer):
            validator = build_validator(columns, table_tests, reference_loader=load_reference)
            df = self._read_table(schema, name)
            results[name] = validator.validate(df, table=f"{schema}.{name}")
            for check in results[name].checks:
                QUALITY_CHECKS.labels(layer=layer.value, table=name, outcome=_outcome(check)).inc()

        failed = [t for t, r in results.items() if r.status == ValidationStatus.FAILED]
        logger.info(
            "Quality suite complete",
            dataset=definition.name,
            layer=layer.value,
            tables=len(results),
            failed_tables=failed,
        )
        return results

    def raise_for_failures(self, layer: str, results: Dict[str, ValidationResult]) -> None:
        """Raise DataQualityError if an error-severity check failed and fail_on_error is set"""
        failed = {t: r for t, r in results.items() if r.status == ValidationStatus.FAILED}
        if not failed:
            return

        for table, result in failed.items():
            for check in result.failures:
                if check.severity == ValidationSeverity.ERROR:
                    logger.error(
                        "Quality check failed",
                        table=table,
                        check=check.name,
                        message=check.message,
                    )

        if self.settings.data_quality.fail_on_error:
            raise DataQualityError(TransformLayer(layer).value, results)
