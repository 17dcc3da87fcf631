"""
Database Module
"""
from .connection import (
    create_warehouse_engine,
    create_source_engine,
    ensure_schemas,
    read_frame,
    reflect_table,
    count_rows,
)
from .writer import TableWriter, WriteDisposition

__all__ = [
    "create_warehouse_engine",
    "create_source_engine",
    "ensure_schemas",
    "read_frame",
    "reflect_table",
    "count_rows",
    "TableWriter",
    "WriteDisposition",
]
