"""
Transformer primitives shared by the clean and mart layers.

Both layers rebuild their tables from scratch on every run: the target is
dropped and recreated from a SELECT, so re-running a layer over unchanged
inputs yields the same tables.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import MetaData, Table
from sqlalchemy.engine import Connection
from sqlalchemy.schema import DropTable
from sqlalchemy.sql import Select

from warehouse.database.connection import count_rows
from warehouse.database.sql import CreateTableAs


class TransformLayer(str, Enum):
    """Warehouse layers written by transformers"""
    CLEAN = "clean"
    MART = "mart"


@dataclass
class TransformResult:
    """Result of building one table"""
    model: str
    layer: TransformLayer
    output_rows: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    table: Optional[str] = None
    input_rows: Optional[int] = None


def replace_table_as(conn: Connection, name: str, schema: str, query: Select) -> int:
    """Drop `schema.name` if present, recreate it from `query` and return its row count"""
    target = Table(name, MetaData(), schema=schema)
    conn.execute(DropTable(target, if_exists=True))
    conn.execute(CreateTableAs(target, query))
    return count_rows(conn, target)
