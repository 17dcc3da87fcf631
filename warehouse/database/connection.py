"""
Database Connection Management

Engine factories for the relational source and the layered warehouse, plus
small helpers shared by the loader, transformers and quality checks.

The warehouse keeps one schema per layer (raw, clean, mart). On SQLite the
layers are attached databases so the same schema-qualified SQL runs
unchanged in local runs and tests.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import polars as pl
import structlog
from sqlalchemy import MetaData, Table, create_engine, event, func, select, text
from sqlalchemy.engine import Connection, Engine, URL, make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateSchema
from sqlalchemy.sql import Select

from warehouse.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def _sqlite_attachments(url: URL, schemas: Iterable[str]) -> Dict[str, str]:
    """Database file backing each layer schema"""
    database = url.database
    if not database or database == ":memory:":
        return {schema: ":memory:" for schema in schemas}

    main = Path(database)
    suffix = main.suffix or ".db"
    return {
        schema: str(main.with_name(f"{main.stem}_{schema}{suffix}"))
        for schema in schemas
    }


def create_warehouse_engine(
    url: Optional[Union[str, URL]] = None,
    settings: Optional[Settings] = None,
) -> Engine:
    """
    Create the warehouse engine.

    Args:
        url: Override for WAREHOUSE_URL
        settings: Settings to read from (cached settings if omitted)

    Returns:
        Engine: Engine whose connections see every layer schema
    """
    settings = settings or get_settings()
    url = make_url(url or settings.warehouse.url)

    engine_config = {"echo": settings.warehouse.echo}

    if url.get_backend_name() != "sqlite":
        engine_config["pool_pre_ping"] = True
        engine = create_engine(url, **engine_config)
        logger.info(
            "Warehouse engine created",
            backend=url.get_backend_name(),
            host=url.host,
            database=url.database,
        )
        return engine

    if not url.database or url.database == ":memory:":
        # One shared connection, otherwise every checkout sees an empty database
        engine_config.update({
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        })
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, **engine_config)
    attachments = _sqlite_attachments(url, settings.warehouse.schemas)

    @event.listens_for(engine, "connect")
    def _attach_layer_schemas(dbapi_connection, connection_record):
        for schema, path in attachments.items():
            dbapi_connection.execute(f"ATTACH DATABASE '{path}' AS \"{schema}\"")

    logger.info(
        "Warehouse engine created",
        backend="sqlite",
        database=url.database or ":memory:",
        schemas=list(attachments),
    )
    return engine


def create_source_engine(settings: Optional[Settings] = None) -> Engine:
    """Create an engine for the relational source database"""
    settings = settings or get_settings()
    return create_engine(settings.source_db.sync_url, pool_pre_ping=True)


def ensure_schemas(engine: Engine, schemas: Iterable[str]) -> None:
    """Create layer schemas that do not exist yet"""
    backend = engine.dialect.name
    if backend == "sqlite":
        return

    with engine.begin() as conn:
        for schema in schemas:
            if backend == "clickhouse":
                conn.execute(text(f"CREATE DATABASE IF NOT EXISTS {schema}"))
            else:
                conn.execute(CreateSchema(schema, if_not_exists=True))
    logger.debug("Ensured warehouse schemas", schemas=list(schemas))


def reflect_table(conn: Connection, name: str, schema: Optional[str] = None) -> Table:
    """Reflect an existing table; raises NoSuchTableError when missing"""
    return Table(name, MetaData(), schema=schema, autoload_with=conn)


def count_rows(conn: Connection, table: Table) -> int:
    """Row count of a table"""
    return conn.execute(select(func.count()).select_from(table)).scalar_one()


def read_frame(engine: Engine, query: Union[Table, Select]) -> pl.DataFrame:
    """
    Run a query and return the result as a Polars DataFrame.

    Empty results keep their column names (with Null dtype).
    """
    if isinstance(query, Table):
        query = select(query)

    with engine.connect() as conn:
        result = conn.execute(query)
        columns = list(result.keys())
        rows = [dict(r._mapping) for r in result]

    if not rows:
        return pl.DataFrame(schema={column: pl.Null for column in columns})
    return pl.DataFrame(rows, infer_schema_length=None, strict=False)
