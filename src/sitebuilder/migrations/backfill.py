"""Data rules for alterations that existing rows may not satisfy.

A column alteration that narrows a length (or bounds a text column) or turns
a nullable column into NOT NULL must name a rule. After the rule runs the
harness recounts offending rows; anything left is a DataIncompatibilityError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from sitebuilder.schema.model import ColumnSpec


@dataclass(frozen=True)
class Truncate:
    """Shorten values longer than the new length."""

    handles_length: ClassVar[bool] = True
    handles_nulls: ClassVar[bool] = False

    def run(self, conn: Connection, table: str, column: ColumnSpec) -> int:
        t = sa.table(table, sa.column(column.name))
        col = t.c[column.name]
        stmt = (
            sa.update(t)
            .where(sa.func.length(col) > column.length)
            .values({column.name: sa.func.substr(col, 1, column.length)})
        )
        return conn.execute(stmt).rowcount

    def describe(self) -> str:
        return "truncate"


@dataclass(frozen=True)
class FillNulls:
    """Replace NULLs with a fixed value."""

    value: Any

    handles_length: ClassVar[bool] = False
    handles_nulls: ClassVar[bool] = True

    def run(self, conn: Connection, table: str, column: ColumnSpec) -> int:
        t = sa.table(table, sa.column(column.name))
        stmt = sa.update(t).where(t.c[column.name].is_(None)).values({column.name: self.value})
        return conn.execute(stmt).rowcount

    def describe(self) -> str:
        return f"fill nulls with {self.value!r}"


@dataclass(frozen=True)
class Reject:
    """Fail the step if any row would violate the new shape."""

    reason: str = ""

    handles_length: ClassVar[bool] = True
    handles_nulls: ClassVar[bool] = True

    def run(self, conn: Connection, table: str, column: ColumnSpec) -> int:
        return 0

    def describe(self) -> str:
        return f"reject ({self.reason})" if self.reason else "reject"


BackfillRule = Union[Truncate, FillNulls, Reject]


def normalize_rules(rules: BackfillRule | tuple[BackfillRule, ...] | None) -> tuple[BackfillRule, ...]:
    if rules is None:
        return ()
    if isinstance(rules, tuple):
        return rules
    return (rules,)


def covers(rules: tuple[BackfillRule, ...], *, length: bool, nulls: bool) -> bool:
    if length and not any(r.handles_length for r in rules):
        return False
    if nulls and not any(r.handles_nulls for r in rules):
        return False
    return True


def count_overlong(conn: Connection, table: str, column: ColumnSpec) -> int:
    """Rows whose value is longer than column.length."""
    t = sa.table(table, sa.column(column.name))
    stmt = (
        sa.select(sa.func.count())
        .select_from(t)
        .where(sa.func.length(t.c[column.name]) > column.length)
    )
    return conn.execute(stmt).scalar_one()


def count_nulls(conn: Connection, table: str, column_name: str) -> int:
    t = sa.table(table, sa.column(column_name))
    stmt = sa.select(sa.func.count()).select_from(t).where(t.c[column_name].is_(None))
    return conn.execute(stmt).scalar_one()


def count_rows(conn: Connection, table: str) -> int:
    stmt = sa.select(sa.func.count()).select_from(sa.table(table))
    return conn.execute(stmt).scalar_one()
