"""
Dialect-aware SQL constructs

Small SQLAlchemy compiler extensions so clean and mart models can be written
once and rendered for SQLite (local runs, tests), PostgreSQL and ClickHouse.
"""

import operator
from functools import reduce
from typing import Union

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    cast,
    literal,
    type_coerce,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import ExecutableDDLElement
from sqlalchemy.sql.expression import ColumnElement, FunctionElement
from sqlalchemy.types import TypeEngine


TYPE_NAMES = {
    "integer": Integer,
    "bigint": BigInteger,
    "decimal": lambda: Numeric(18, 2),
    "float": Float,
    "string": String,
    "date": Date,
    "timestamp": DateTime,
    "boolean": Boolean,
}

# SQLite has no DATE/NUMERIC storage classes worth casting to
_SQLITE_CASTS = {
    "integer": "INTEGER",
    "bigint": "INTEGER",
    "decimal": "REAL",
    "float": "REAL",
    "string": "TEXT",
    "boolean": "INTEGER",
}


def resolve_type(type_name: str) -> TypeEngine:
    """Map a declared column type name to a SQLAlchemy type instance"""
    factory = TYPE_NAMES.get(type_name.lower())
    if factory is None:
        raise ValueError(
            f"Unknown column type '{type_name}'. Expected one of: {sorted(TYPE_NAMES)}"
        )
    return factory()


class CreateTableAs(ExecutableDDLElement):
    """CREATE TABLE <table> AS <select>"""

    def __init__(self, table, selectable):
        self.table = table
        self.selectable = selectable


@compiles(CreateTableAs)
def _create_table_as(element, compiler, **kw):
    return "CREATE TABLE %s AS %s" % (
        compiler.preparer.format_table(element.table),
        compiler.sql_compiler.process(element.selectable, literal_binds=True),
    )


@compiles(CreateTableAs, "clickhouse")
def _create_table_as_clickhouse(element, compiler, **kw):
    return "CREATE TABLE %s ENGINE = MergeTree ORDER BY tuple() AS %s" % (
        compiler.preparer.format_table(element.table),
        compiler.sql_compiler.process(element.selectable, literal_binds=True),
    )


class cast_to(FunctionElement):
    """Portable CAST driven by a declared type name"""

    name = "cast_to"
    # type_name is not part of the cache key
    inherit_cache = False

    def __init__(self, expr, type_name: str):
        self.type_name = type_name.lower()
        super().__init__(expr)
        self.type = resolve_type(self.type_name)


@compiles(cast_to)
def _cast_to_default(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    return compiler.process(cast(expr, element.type), **kw)


@compiles(cast_to, "sqlite")
def _cast_to_sqlite(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    inner = compiler.process(expr, **kw)
    if element.type_name == "date":
        return "date(%s)" % inner
    if element.type_name == "timestamp":
        return "datetime(%s)" % inner
    return "CAST(%s AS %s)" % (inner, _SQLITE_CASTS[element.type_name])


class date_key(FunctionElement):
    """YYYYMMDD integer key of a date or timestamp"""

    type = Integer()
    name = "date_key"
    inherit_cache = True


@compiles(date_key)
def _date_key_default(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    inner = compiler.process(expr, **kw)
    return (
        "CAST(EXTRACT(YEAR FROM %s) * 10000 + EXTRACT(MONTH FROM %s) * 100 "
        "+ EXTRACT(DAY FROM %s) AS INTEGER)" % (inner, inner, inner)
    )


@compiles(date_key, "sqlite")
def _date_key_sqlite(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    return "CAST(strftime('%%Y%%m%%d', %s) AS INTEGER)" % compiler.process(expr, **kw)


@compiles(date_key, "postgresql")
def _date_key_postgresql(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    return "CAST(to_char(%s, 'YYYYMMDD') AS INTEGER)" % compiler.process(expr, **kw)


@compiles(date_key, "clickhouse")
def _date_key_clickhouse(element, compiler, **kw):
    (expr,) = element.clauses.clauses
    return "toYYYYMMDD(%s)" % compiler.process(expr, **kw)


class add_days(FunctionElement):
    """date + N days"""

    type = Date()
    name = "add_days"
    inherit_cache = True


@compiles(add_days)
def _add_days_default(element, compiler, **kw):
    date_expr, days = element.clauses.clauses
    return "(CAST(%s AS DATE) + CAST(%s AS INTEGER))" % (
        compiler.process(date_expr, **kw),
        compiler.process(days, **kw),
    )


@compiles(add_days, "sqlite")
def _add_days_sqlite(element, compiler, **kw):
    date_expr, days = element.clauses.clauses
    return "date(%s, CAST(%s AS TEXT) || ' days')" % (
        compiler.process(date_expr, **kw),
        compiler.process(days, **kw),
    )


@compiles(add_days, "clickhouse")
def _add_days_clickhouse(element, compiler, **kw):
    date_expr, days = element.clauses.clauses
    return "addDays(%s, %s)" % (
        compiler.process(date_expr, **kw),
        compiler.process(days, **kw),
    )


def concat(*parts: Union[str, ColumnElement]) -> ColumnElement:
    """String concatenation rendered with the dialect's concat operator"""
    coerced = [
        literal(part, String) if isinstance(part, str) else type_coerce(part, String)
        for part in parts
    ]
    return reduce(operator.add, coerced)
