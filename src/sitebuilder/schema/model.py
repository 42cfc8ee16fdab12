"""Declarative schema model.

A SchemaState is a plain-data description of a relational schema: tables,
columns (type, length, nullability, default), primary keys, foreign keys and
indexes (including partial-index predicates). Migration operations are applied
to it to model a version without touching a database, and it is the common
shape produced by reflection so that live and modeled schemas compare with
the same diff.
"""

from __future__ import annotations

import copy
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

DefaultKind = Literal["literal", "sql"]
ReferentialAction = Literal["CASCADE", "SET NULL", "RESTRICT", "NO ACTION"]

# Canonical column types understood by the model.
COLUMN_TYPES: frozenset[str] = frozenset(
    {"integer", "varchar", "text", "boolean", "timestamptz", "uuid", "jsonb", "interval"}
)


# ---------------------------------------------------------------------------
# Partial-index predicates
# ---------------------------------------------------------------------------

# PostgreSQL echoes predicates back with casts and extra parentheses, e.g.
# ("ReadAt" IS NULL) AND (("Direction")::text = 'inbound'::text).
_STRING_LITERAL = re.compile(r"('(?:[^']|'')*')")
_CAST = re.compile(
    r"::(?:character varying|double precision|timestamp with(?:out)? time zone|\w+)(?:\(\d+\))?",
    re.I,
)
_PARENTHESIZED_IDENTIFIER = re.compile(r'\(\s*("[^"]+")\s*\)')


def _closing_paren(text: str, start: int) -> int:
    """Index of the parenthesis closing the one at start, or -1."""
    depth = 0
    quoted = False
    for i in range(start, len(text)):
        char = text[i]
        if char == "'":
            quoted = not quoted
        elif quoted:
            continue
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def strip_enclosing_parens(text: str) -> str:
    """Remove parenthesis pairs that wrap the whole expression, and only those."""
    text = text.strip()
    while text.startswith("(") and _closing_paren(text, 0) == len(text) - 1:
        text = text[1:-1].strip()
    return text


def _split_top_level(text: str, keyword: str) -> list[str]:
    terms: list[str] = []
    depth = 0
    quoted = False
    start = 0
    width = len(keyword)
    i = 0
    while i < len(text):
        char = text[i]
        if char == "'":
            quoted = not quoted
        elif not quoted:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            elif (
                depth == 0
                and i > 0
                and text[i - 1].isspace()
                and text[i : i + width].upper() == keyword
                and i + width < len(text)
                and text[i + width].isspace()
            ):
                terms.append(text[start:i].strip())
                start = i + width
                i += width
                continue
        i += 1
    terms.append(text[start:].strip())
    return terms


def _canonical_expression(text: str) -> str:
    text = strip_enclosing_parens(text)
    terms = _split_top_level(text, "OR")
    if len(terms) > 1:
        return " OR ".join(_canonical_expression(t) for t in terms)
    terms = _split_top_level(text, "AND")
    if len(terms) > 1:
        canonical = []
        for term in terms:
            term = _canonical_expression(term)
            if len(_split_top_level(term, "OR")) > 1:
                term = f"({term})"
            canonical.append(term)
        return " AND ".join(canonical)
    return text


def canonical_predicate(text: str | None) -> str | None:
    """Normalize a partial-index predicate for comparison.

    Type casts, parentheses around identifiers and redundant grouping are
    dropped; string literals are left untouched.
    """
    if text is None:
        return None
    parts = _STRING_LITERAL.split(text)
    for i in range(0, len(parts), 2):
        part = _CAST.sub("", parts[i])
        part = _PARENTHESIZED_IDENTIFIER.sub(r"\1", part)
        parts[i] = re.sub(r"\s+", " ", part)
    return _canonical_expression("".join(parts)) or None


@dataclass(frozen=True)
class Default:
    """Column default.

    A literal default is a value stored as-is (quoted on render). A sql
    default is a server-computed expression such as CURRENT_TIMESTAMP.
    Reverting an alteration has to restore the mechanism, not only the value.
    """

    value: Any
    kind: DefaultKind = "literal"

    @classmethod
    def literal(cls, value: Any) -> "Default":
        return cls(value=value, kind="literal")

    @classmethod
    def sql(cls, expression: str) -> "Default":
        return cls(value=expression, kind="sql")

    def to_server_default(self) -> Any:
        """Render as a SQLAlchemy server_default argument."""
        if self.kind == "sql":
            return sa.text(self.value)
        if isinstance(self.value, bool):
            return sa.true() if self.value else sa.false()
        if isinstance(self.value, (int, float)):
            return sa.text(str(self.value))
        return str(self.value)

    def __str__(self) -> str:
        if self.kind == "sql":
            return str(self.value)
        return repr(self.value)


CURRENT_TIMESTAMP = Default.sql("CURRENT_TIMESTAMP")


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type: str
    length: int | None = None
    nullable: bool = True
    default: Default | None = None
    identity: bool = False

    def __post_init__(self) -> None:
        if self.type not in COLUMN_TYPES:
            raise ValueError(f"Unknown column type {self.type!r} for column {self.name}")
        if self.type == "varchar" and self.length is None:
            raise ValueError(f"varchar column {self.name} requires a length")
        if self.type != "varchar" and self.length is not None:
            raise ValueError(f"Only varchar columns carry a length ({self.name})")

    @property
    def type_label(self) -> str:
        if self.type == "varchar":
            return f"varchar({self.length})"
        return self.type

    def narrows_to(self, other: "ColumnSpec") -> bool:
        """True if values valid for self may be too long for other."""
        if other.type != "varchar":
            return False
        if self.type == "varchar":
            return other.length < self.length  # type: ignore[operator]
        return self.type == "text"

    def tightens_to(self, other: "ColumnSpec") -> bool:
        """True if other rejects NULLs that self accepts."""
        return self.nullable and not other.nullable

    def replace(self, **changes: Any) -> "ColumnSpec":
        values = {
            "name": self.name,
            "type": self.type,
            "length": self.length,
            "nullable": self.nullable,
            "default": self.default,
            "identity": self.identity,
        }
        values.update(changes)
        return ColumnSpec(**values)

    def to_sa_type(self) -> sa.types.TypeEngine:
        return to_sa_type(self.type, self.length)

    def to_sa_column(self, *, default: Any = None) -> sa.Column:
        args: list[Any] = [self.name, self.to_sa_type()]
        if self.identity:
            args.append(sa.Identity(always=False))
        kwargs: dict[str, Any] = {"nullable": self.nullable}
        if self.default is not None:
            kwargs["server_default"] = self.default.to_server_default()
        if default is not None:
            kwargs["default"] = default
        return sa.Column(*args, **kwargs)

    def describe(self) -> str:
        parts = [self.type_label, "NULL" if self.nullable else "NOT NULL"]
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        if self.identity:
            parts.append("IDENTITY")
        return " ".join(parts)


def to_sa_type(type_name: str, length: int | None = None) -> sa.types.TypeEngine:
    """Map a canonical type name to a SQLAlchemy type."""
    if type_name == "integer":
        return sa.Integer()
    if type_name == "varchar":
        return sa.String(length)
    if type_name == "text":
        return sa.Text()
    if type_name == "boolean":
        return sa.Boolean()
    if type_name == "timestamptz":
        return sa.DateTime(timezone=True)
    if type_name == "uuid":
        return sa.Uuid()
    if type_name == "jsonb":
        return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
    if type_name == "interval":
        return sa.Interval()
    raise ValueError(f"Unknown column type: {type_name}")


def column(
    name: str,
    type_: str,
    length: int | None = None,
    *,
    nullable: bool = True,
    default: Default | None = None,
    identity: bool = False,
) -> ColumnSpec:
    return ColumnSpec(
        name=name,
        type=type_,
        length=length,
        nullable=nullable,
        default=default,
        identity=identity,
    )


def varchar(name: str, length: int, *, nullable: bool = True, default: Any = None) -> ColumnSpec:
    return column(
        name,
        "varchar",
        length,
        nullable=nullable,
        default=Default.literal(default) if default is not None else None,
    )


@dataclass(frozen=True)
class PrimaryKeySpec:
    name: str
    columns: tuple[str, ...] = ("Id",)


@dataclass(frozen=True)
class ForeignKeySpec:
    name: str
    columns: tuple[str, ...]
    ref_table: str
    ref_columns: tuple[str, ...] = ("Id",)
    ondelete: ReferentialAction | None = None

    def describe(self) -> str:
        action = f" ON DELETE {self.ondelete}" if self.ondelete else ""
        return (
            f"({', '.join(self.columns)}) -> "
            f"{self.ref_table}({', '.join(self.ref_columns)}){action}"
        )


@dataclass(frozen=True)
class IndexSpec:
    name: str
    columns: tuple[str, ...]
    unique: bool = False
    where: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "where", canonical_predicate(self.where))

    def dialect_kwargs(self) -> dict[str, Any]:
        if self.where is None:
            return {}
        return {
            "postgresql_where": sa.text(self.where),
            "sqlite_where": sa.text(self.where),
        }

    def describe(self) -> str:
        text = f"{'UNIQUE ' if self.unique else ''}({', '.join(self.columns)})"
        if self.where:
            text += f" WHERE {self.where}"
        return text


@dataclass
class TableSpec:
    name: str
    columns: dict[str, ColumnSpec] = field(default_factory=dict)
    primary_key: PrimaryKeySpec | None = None
    foreign_keys: dict[str, ForeignKeySpec] = field(default_factory=dict)
    indexes: dict[str, IndexSpec] = field(default_factory=dict)

    @property
    def company_scoped(self) -> bool:
        return "CompanyId" in self.columns

    def renamed(self, new_name: str) -> "TableSpec":
        clone = copy.deepcopy(self)
        clone.name = new_name
        return clone

    def to_sa_table(self, metadata: sa.MetaData) -> sa.Table:
        """Build a SQLAlchemy Table for this spec, registered on metadata."""
        pk_columns = set(self.primary_key.columns) if self.primary_key else set()
        items: list[Any] = []
        for col in self.columns.values():
            # UUID keys are generated by the application.
            generated = uuid.uuid4 if col.name in pk_columns and col.type == "uuid" else None
            items.append(col.to_sa_column(default=generated))
        if self.primary_key is not None:
            items.append(
                sa.PrimaryKeyConstraint(*self.primary_key.columns, name=self.primary_key.name)
            )
        for fk in self.foreign_keys.values():
            items.append(
                sa.ForeignKeyConstraint(
                    list(fk.columns),
                    [f"{fk.ref_table}.{c}" for c in fk.ref_columns],
                    name=fk.name,
                    ondelete=fk.ondelete,
                )
            )
        table = sa.Table(self.name, metadata, *items)
        for index in self.indexes.values():
            sa.Index(
                index.name,
                *[table.c[c] for c in index.columns],
                unique=index.unique,
                **index.dialect_kwargs(),
            )
        return table


def table(
    name: str,
    *columns: ColumnSpec,
    primary_key: PrimaryKeySpec | None = None,
    foreign_keys: list[ForeignKeySpec] | None = None,
    indexes: list[IndexSpec] | None = None,
) -> TableSpec:
    """Build a TableSpec; the primary key defaults to PK_<name>(Id)."""
    return TableSpec(
        name=name,
        columns={c.name: c for c in columns},
        primary_key=primary_key if primary_key is not None else PrimaryKeySpec(f"PK_{name}"),
        foreign_keys={fk.name: fk for fk in foreign_keys or []},
        indexes={ix.name: ix for ix in indexes or []},
    )


@dataclass
class SchemaState:
    """A whole schema: table name -> TableSpec."""

    tables: dict[str, TableSpec] = field(default_factory=dict)

    @classmethod
    def of(cls, *tables: TableSpec) -> "SchemaState":
        return cls(tables={t.name: copy.deepcopy(t) for t in tables})

    def copy(self) -> "SchemaState":
        return copy.deepcopy(self)

    def find_index(self, name: str) -> tuple[TableSpec, IndexSpec] | None:
        for spec in self.tables.values():
            if name in spec.indexes:
                return spec, spec.indexes[name]
        return None

    def to_metadata(self, metadata: sa.MetaData | None = None) -> sa.MetaData:
        metadata = metadata if metadata is not None else sa.MetaData()
        for spec in self.tables.values():
            spec.to_sa_table(metadata)
        return metadata
