"""
Command line interface.

Usage:
    warehouse list
    warehouse ingest chinook [--table Artist --table Album]
    warehouse transform oulad --layer clean
    warehouse test oulad --layer clean
    warehouse run chinook
"""

import argparse
import sys
from typing import List, Optional

import structlog

from warehouse.config import get_settings
from warehouse.config.logging import configure_logging
from warehouse.datasets import available_datasets, load_dataset
from warehouse.pipeline import WarehousePipeline
from warehouse.quality.validators import ValidationStatus

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warehouse",
        description="Layered warehouse pipeline (raw -> clean -> mart)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override (DEBUG, INFO, WARNING, ERROR)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List available datasets")

    ingest = commands.add_parser("ingest", help="Load source tables into the raw layer")
    ingest.add_argument("dataset", choices=available_datasets())
    ingest.add_argument(
        "--table",
        action="append",
        dest="tables",
        help="Source table to load (repeatable, default: all)",
    )

    transform = commands.add_parser("transform", help="Rebuild clean and/or mart tables")
    transform.add_argument("dataset", choices=available_datasets())
    transform.add_argument("--layer", choices=["clean", "mart", "all"], default="all")

    test = commands.add_parser("test", help="Run declared data tests")
    test.add_argument("dataset", choices=available_datasets())
    test.add_argument("--layer", choices=["clean", "mart"], default="mart")

    run = commands.add_parser("run", help="Run the full pipeline")
    run.add_argument("dataset", choices=available_datasets())

    return parser


def _list() -> int:
    for name in available_datasets():
        dataset = load_dataset(name)
        print(f"{name}\t{dataset.definition.description}")
    return 0


def _test(pipeline: WarehousePipeline, layer: str) -> int:
    results = pipeline.run_tests(layer, raise_on_failure=False)
    failed = 0
    for table, result in results.items():
        print(
            f"{table}: {result.status.value} "
            f"({result.passed_checks}/{result.total_checks} checks passed)"
        )
        for check in result.failures:
            print(f"  [{check.severity.value}] {check.name}: {check.message}")
        if result.status == ValidationStatus.FAILED:
            failed += 1
    return 1 if failed else 0


def dispatch(args: argparse.Namespace) -> int:
    if args.command == "list":
        return _list()

    pipeline = WarehousePipeline(args.dataset)

    if args.command == "ingest":
        for result in pipeline.ingest(args.tables):
            print(f"{result.table}: {result.rows_loaded} rows ({result.status.value})")
        return 0

    if args.command == "transform":
        results = []
        if args.layer in ("clean", "all"):
            results.extend(pipeline.transform_clean())
        if args.layer in ("mart", "all"):
            results.extend(pipeline.build_marts())
        for result in results:
            print(f"{result.table}: {result.output_rows} rows")
        return 0

    if args.command == "test":
        return _test(pipeline, args.layer)

    result = pipeline.run()
    print(f"{result.dataset}: {result.status.value} in {result.duration_seconds:.1f}s")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, get_settings())

    try:
        return dispatch(args)
    except Exception as e:
        logger.error("Command failed", command=args.command, error=str(e), exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
