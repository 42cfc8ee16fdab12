"""Structural comparison of two schema states.

Columns are compared by name (ordinal position is ignored); everything else
that makes up a column's shape is compared exactly: type, length, nullability,
default value and default mechanism, identity. Indexes compare columns,
uniqueness and filter predicate; foreign keys compare columns, target and
referential action.
"""

from __future__ import annotations

from dataclasses import dataclass

from .model import SchemaState, TableSpec


@dataclass(frozen=True)
class Difference:
    table: str
    kind: str
    name: str | None
    expected: str | None
    actual: str | None

    def __str__(self) -> str:
        where = f"{self.table}.{self.name}" if self.name else self.table
        return f"{self.kind} {where}: expected {self.expected}, found {self.actual}"


def _describe_table(spec: TableSpec) -> str:
    return f"table with {len(spec.columns)} column(s)"


def diff_tables(expected: TableSpec, actual: TableSpec) -> list[Difference]:
    diffs: list[Difference] = []
    name = expected.name

    for col_name in sorted(set(expected.columns) | set(actual.columns)):
        a = expected.columns.get(col_name)
        b = actual.columns.get(col_name)
        if a != b:
            diffs.append(
                Difference(
                    name,
                    "column",
                    col_name,
                    a.describe() if a else None,
                    b.describe() if b else None,
                )
            )

    if expected.primary_key != actual.primary_key:
        diffs.append(
            Difference(
                name,
                "primary key",
                None,
                str(expected.primary_key) if expected.primary_key else None,
                str(actual.primary_key) if actual.primary_key else None,
            )
        )

    for fk_name in sorted(set(expected.foreign_keys) | set(actual.foreign_keys)):
        a = expected.foreign_keys.get(fk_name)
        b = actual.foreign_keys.get(fk_name)
        if a != b:
            diffs.append(
                Difference(
                    name,
                    "foreign key",
                    fk_name,
                    a.describe() if a else None,
                    b.describe() if b else None,
                )
            )

    for ix_name in sorted(set(expected.indexes) | set(actual.indexes)):
        a = expected.indexes.get(ix_name)
        b = actual.indexes.get(ix_name)
        if a != b:
            diffs.append(
                Difference(
                    name,
                    "index",
                    ix_name,
                    a.describe() if a else None,
                    b.describe() if b else None,
                )
            )
    return diffs


def diff_schemas(expected: SchemaState, actual: SchemaState) -> list[Difference]:
    """All structural differences between two states; empty when identical."""
    diffs: list[Difference] = []
    for table_name in sorted(set(expected.tables) | set(actual.tables)):
        a = expected.tables.get(table_name)
        b = actual.tables.get(table_name)
        if a is None or b is None:
            diffs.append(
                Difference(
                    table_name,
                    "table",
                    None,
                    _describe_table(a) if a else None,
                    _describe_table(b) if b else None,
                )
            )
            continue
        diffs.extend(diff_tables(a, b))
    return diffs
