"""
Warehouse Pipeline

Runs a dataset through the layers in a fixed order:

    ingest -> clean -> test_clean -> mart -> test_mart

Stages execute one after another in the calling thread. The first error
aborts the run; a failed run is fixed and started again from the top,
which is safe because every stage rebuilds its output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

import structlog
from sqlalchemy.engine import Engine

from warehouse.config import Settings, get_settings
from warehouse.config.logging import log_context
from warehouse.database.connection import (
    create_source_engine,
    create_warehouse_engine,
    ensure_schemas,
)
from warehouse.datasets import Dataset, load_dataset
from warehouse.ingestion.extractors import create_extractor
from warehouse.ingestion.raw_loader import LoadResult, RawLoader
from warehouse.metrics import PIPELINE_RUNS, STAGE_SECONDS, push_metrics
from warehouse.quality.suite import QualitySuite
from warehouse.quality.validators import ValidationResult
from warehouse.transformation.clean import CleanTransformer
from warehouse.transformation.definitions import SourceKind
from warehouse.transformation.marts import MartBuilder
from warehouse.transformation.transformers import TransformLayer, TransformResult

logger = structlog.get_logger(__name__)


class PipelineStage(str, Enum):
    """Pipeline stages in execution order"""
    INGEST = "ingest"
    CLEAN = "clean"
    TEST_CLEAN = "test_clean"
    MART = "mart"
    TEST_MART = "test_mart"


class PipelineStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Outcome of a pipeline run"""
    dataset: str
    status: PipelineStatus
    run_id: str = field(default_factory=lambda: uuid4().hex)
    stages: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class WarehousePipeline:
    """
    Source -> raw -> clean -> mart pipeline for one dataset.

    Example:
        pipeline = WarehousePipeline("chinook")
        result = pipeline.run()
    """

    def __init__(
        self,
        dataset: Union[str, Dataset],
        engine: Optional[Engine] = None,
        settings: Optional[Settings] = None,
        source_engine: Optional[Engine] = None,
    ):
        self.settings = settings or get_settings()
        self.dataset = load_dataset(dataset) if isinstance(dataset, str) else dataset
        self.engine = engine or create_warehouse_engine(settings=self.settings)
        self.source_engine = source_engine

        self.loader = RawLoader(self.engine, self.settings)
        self.clean_transformer = CleanTransformer(self.engine, self.settings)
        self.mart_builder = MartBuilder(self.engine, self.settings)
        self.quality = QualitySuite(self.engine, self.settings)
        self.last_result: Optional[PipelineResult] = None
        self._schemas_ready = False

    @property
    def definition(self):
        return self.dataset.definition

    def _ensure_schemas(self) -> None:
        if not self._schemas_ready:
            ensure_schemas(self.engine, self.settings.warehouse.schemas)
            self._schemas_ready = True

    def ingest(self, tables: Optional[Iterable[str]] = None) -> List[LoadResult]:
        """
        Extract source tables and land them in the raw schema.

        Args:
            tables: Source or raw table names to load (all when omitted)

        Returns:
            One LoadResult per table, sharing a load id
        """
        self._ensure_schemas()
        source = self.definition.source
        selected = source.tables if tables is None else [self.definition.source_table(t) for t in tables]
        load_id = uuid4().hex

        source_engine = self.source_engine
        owns_engine = source.kind == SourceKind.SQL and source_engine is None
        if owns_engine:
            source_engine = create_source_engine(self.settings)

        logger.info(
            "Starting ingestion",
            dataset=self.dataset.name,
            tables=[t.raw_name for t in selected],
            load_id=load_id,
        )
        try:
            results = []
            for table in selected:
                extractor = create_extractor(source, table, self.settings, engine=source_engine)
                results.append(
                    self.loader.load(
                        extractor.extract(),
                        table.raw_name,
                        table.write_disposition,
                        load_id=load_id,
                    )
                )
        finally:
            if owns_engine:
                source_engine.dispose()

        logger.info(
            "Ingestion complete",
            dataset=self.dataset.name,
            rows_loaded=sum(r.rows_loaded for r in results),
        )
        return results

    def transform_clean(self) -> List[TransformResult]:
        """Rebuild the clean layer from raw"""
        self._ensure_schemas()
        return self.clean_transformer.run_all(self.definition.clean)

    def build_marts(self) -> List[TransformResult]:
        """Rebuild the mart layer from clean"""
        self._ensure_schemas()
        return self.mart_builder.build(self.dataset.mart_models)

    def run_tests(self, layer: str, raise_on_failure: bool = True) -> Dict[str, ValidationResult]:
        """
        Run the declared tests of one layer.

        Raises:
            DataQualityError: An error-severity test failed, `raise_on_failure`
                is set and `fail_on_error` is enabled
        """
        results = self.quality.run(self.definition, layer)
        if raise_on_failure:
            self.quality.raise_for_failures(layer, results)
        return results

    def _stage_handlers(self):
        return {
            PipelineStage.INGEST: self.ingest,
            PipelineStage.CLEAN: self.transform_clean,
            PipelineStage.TEST_CLEAN: lambda: self.run_tests(TransformLayer.CLEAN.value),
            PipelineStage.MART: self.build_marts,
            PipelineStage.TEST_MART: lambda: self.run_tests(TransformLayer.MART.value),
        }

    def _finish(self, result: PipelineResult) -> None:
        PIPELINE_RUNS.labels(dataset=result.dataset, status=result.status.value).inc()
        push_metrics(f"warehouse_{result.dataset}", self.settings)

    def _run_stage(self, stage: PipelineStage, result: PipelineResult) -> None:
        logger.info("Running stage", stage=stage.value)
        try:
            with STAGE_SECONDS.labels(dataset=result.dataset, stage=stage.value).time():
                result.stages[stage.value] = self._stage_handlers()[stage]()
        except Exception as e:
            result.status = PipelineStatus.FAILED
            result.error = str(e)
            result.completed_at = datetime.utcnow()
            logger.error("Pipeline run failed", stage=stage.value, error=str(e))
            self._finish(result)
            raise

    def run(self, stages: Optional[Iterable[str]] = None) -> PipelineResult:
        """
        Run stages in pipeline order.

        Args:
            stages: Subset of stages to run (all when omitted). Test stages
                are skipped when data quality checks are disabled.

        Returns:
            PipelineResult with each stage's output
        """
        selected = {PipelineStage(s) for s in stages} if stages is not None else set(PipelineStage)
        if not self.settings.data_quality.enable_data_quality_checks:
            selected -= {PipelineStage.TEST_CLEAN, PipelineStage.TEST_MART}

        result = PipelineResult(dataset=self.dataset.name, status=PipelineStatus.RUNNING)
        self.last_result = result

        with log_context(dataset=result.dataset, run_id=result.run_id):
            logger.info(
                "Starting pipeline run",
                stages=[s.value for s in PipelineStage if s in selected],
            )
            for stage in PipelineStage:
                if stage in selected:
                    self._run_stage(stage, result)

            result.status = PipelineStatus.SUCCESS
            result.completed_at = datetime.utcnow()
            self._finish(result)
            logger.info("Pipeline run complete", duration_seconds=result.duration_seconds)
        return result
