#!/usr/bin/env python
"""
Pipeline Job Entry Point

Runs one dataset end to end; used by the `jobs` compose profile.
Usage:
    python run_pipeline.py chinook
    python run_pipeline.py oulad --log-level DEBUG

Other commands are available through the `warehouse` CLI.
"""

import argparse
import sys

from warehouse.cli import main
from warehouse.datasets import available_datasets


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the warehouse pipeline for one dataset")
    parser.add_argument("dataset", choices=available_datasets())
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override (DEBUG, INFO, WARNING, ERROR)",
    )

    args = parser.parse_args()

    argv = ["run", args.dataset]
    if args.log_level:
        argv = ["--log-level", args.log_level] + argv
    sys.exit(main(argv))
