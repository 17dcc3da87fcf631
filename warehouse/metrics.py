"""
Pipeline Metrics

Prometheus counters and histograms for warehouse runs. A batch run exits
long before a scrape, so `push_metrics()` sends the registry to a
Pushgateway when PUSHGATEWAY_URL is set.
"""

from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, push_to_gateway

from warehouse.config import Settings, get_settings

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

RAW_LOADS = Counter(
    "warehouse_raw_loads_total",
    "Raw table loads",
    ["table", "status"],
)

RAW_ROWS_LOADED = Counter(
    "warehouse_raw_rows_loaded_total",
    "Rows written to the raw layer",
    ["table"],
)

TABLE_BUILD_SECONDS = Histogram(
    "warehouse_table_build_seconds",
    "Time spent rebuilding a clean or mart table",
    ["layer", "table"],
)

QUALITY_CHECKS = Counter(
    "warehouse_quality_checks_total",
    "Data tests run, by outcome",
    ["layer", "table", "outcome"],
)

PIPELINE_RUNS = Counter(
    "warehouse_pipeline_runs_total",
    "Pipeline runs",
    ["dataset", "status"],
)

STAGE_SECONDS = Histogram(
    "warehouse_stage_seconds",
    "Time spent per pipeline stage",
    ["dataset", "stage"],
)


def push_metrics(
    job: str,
    settings: Optional[Settings] = None,
    registry: CollectorRegistry = REGISTRY,
) -> bool:
    """
    Push the registry to the configured Pushgateway.

    Returns:
        True if metrics were pushed, False when no gateway is configured
        or the gateway could not be reached
    """
    settings = settings or get_settings()
    url = settings.monitoring.pushgateway_url
    if not url:
        return False

    try:
        push_to_gateway(url, job=job, registry=registry)
    except OSError as e:
        logger.warning("Metrics push failed", gateway=url, job=job, error=str(e))
        return False

    logger.debug("Metrics pushed", gateway=url, job=job)
    return True
