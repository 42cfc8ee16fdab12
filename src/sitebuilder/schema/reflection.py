"""Reflect a live database into a SchemaState.

Reflected types and defaults are normalized to the canonical model so that a
live schema can be diffed against itself before and after a round trip.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine.reflection import Inspector

from .model import (
    ColumnSpec,
    Default,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    SchemaState,
    TableSpec,
    canonical_predicate,
    strip_enclosing_parens,
)

_QUOTED_CAST = re.compile(r"^'(.*)'(::[\w\s\"]+)?$", re.S)
_INTEGER = re.compile(r"^-?\d+$")
_SQLITE_FOREIGN_KEY = re.compile(
    r'CONSTRAINT\s+"((?:[^"]|"")+)"\s+FOREIGN\s+KEY\s*\(([^)]*)\)', re.I
)


def canonical_type(sa_type: sa.types.TypeEngine) -> tuple[str, int | None]:
    """Map a reflected SQLAlchemy type to (canonical type, length)."""
    if isinstance(sa_type, sa.JSON):
        return "jsonb", None
    if isinstance(sa_type, (sa.Interval, postgresql.INTERVAL)):
        return "interval", None
    if isinstance(sa_type, sa.Uuid):
        return "uuid", None
    if isinstance(sa_type, sa.Boolean):
        return "boolean", None
    if isinstance(sa_type, sa.DateTime):
        return "timestamptz", None
    if isinstance(sa_type, sa.Integer):
        return "integer", None
    if isinstance(sa_type, sa.Text):
        return "text", None
    if isinstance(sa_type, sa.String):
        if sa_type.length:
            return "varchar", sa_type.length
        return "text", None
    raise ValueError(f"Unsupported reflected type: {sa_type!r}")


def canonical_default(text: str | None) -> Default | None:
    """Normalize a reflected server default expression."""
    if text is None:
        return None
    value = strip_enclosing_parens(text)
    quoted = _QUOTED_CAST.match(value)
    if quoted:
        return Default.literal(quoted.group(1).replace("''", "'"))
    if value.lower() in ("true", "false"):
        return Default.literal(value.lower() == "true")
    if _INTEGER.match(value):
        return Default.literal(int(value))
    return Default.sql(value)


def _where(index: dict[str, Any]) -> str | None:
    options = index.get("dialect_options") or {}
    where = options.get("postgresql_where") or options.get("sqlite_where")
    if where is None:
        return None
    return canonical_predicate(str(where))


def _sqlite_foreign_key_names(inspector: Inspector, name: str) -> dict[tuple[str, ...], str]:
    """FK names by constrained columns, read from the CREATE TABLE statement.

    SQLAlchemy's SQLite reflection mis-reads the name of a named foreign key
    that follows a named primary key constraint.
    """
    query = sa.text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name")
    bind = inspector.bind
    if isinstance(bind, sa.engine.Connection):
        ddl = bind.execute(query, {"name": name}).scalar()
    else:
        with bind.connect() as conn:
            ddl = conn.execute(query, {"name": name}).scalar()
    names = {}
    for match in _SQLITE_FOREIGN_KEY.finditer(ddl or ""):
        columns = tuple(c.strip().strip('"') for c in match.group(2).split(","))
        names[columns] = match.group(1).replace('""', '"')
    return names


def reflect_table(inspector: Inspector, name: str) -> TableSpec:
    columns = {}
    for col in inspector.get_columns(name):
        type_name, length = canonical_type(col["type"])
        columns[col["name"]] = ColumnSpec(
            name=col["name"],
            type=type_name,
            length=length,
            nullable=bool(col["nullable"]),
            default=canonical_default(col.get("default")),
            identity=bool(col.get("identity")),
        )

    pk = inspector.get_pk_constraint(name)
    primary_key = None
    if pk.get("constrained_columns"):
        primary_key = PrimaryKeySpec(
            pk.get("name") or f"PK_{name}", tuple(pk["constrained_columns"])
        )

    foreign_keys = {}
    fk_names = (
        _sqlite_foreign_key_names(inspector, name) if inspector.dialect.name == "sqlite" else {}
    )
    for fk in inspector.get_foreign_keys(name):
        fk_name = fk_names.get(tuple(fk["constrained_columns"]), fk["name"])
        ondelete = (fk.get("options") or {}).get("ondelete")
        ondelete = ondelete.upper() if ondelete else None
        if ondelete == "NO ACTION":
            ondelete = None
        foreign_keys[fk_name] = ForeignKeySpec(
            fk_name,
            tuple(fk["constrained_columns"]),
            fk["referred_table"],
            tuple(fk["referred_columns"]),
            ondelete=ondelete,
        )

    indexes = {}
    for ix in inspector.get_indexes(name):
        indexes[ix["name"]] = IndexSpec(
            ix["name"],
            tuple(ix["column_names"]),
            unique=bool(ix["unique"]),
            where=_where(ix),
        )

    return TableSpec(
        name=name,
        columns=columns,
        primary_key=primary_key,
        foreign_keys=foreign_keys,
        indexes=indexes,
    )


def reflect_schema(bind: sa.engine.Connection | sa.engine.Engine, *, exclude: Iterable[str] = ()) -> SchemaState:
    """Reflect every table of the default schema, except those in exclude."""
    inspector = sa.inspect(bind)
    skip = set(exclude)
    return SchemaState(
        tables={
            name: reflect_table(inspector, name)
            for name in inspector.get_table_names()
            if name not in skip
        }
    )
