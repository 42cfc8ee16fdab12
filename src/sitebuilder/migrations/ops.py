"""Schema operation set.

Each operation knows how to:

- apply itself to a modeled SchemaState (apply_to), refusing when the recorded
  prior shape does not match the model;
- produce its exact inverse (reverse) from the prior shape it records, so a
  step only declares its forward operations;
- verify existence preconditions on a live database (precheck);
- enforce data rules before DDL (check_data);
- emit DDL through alembic's Operations API (execute).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace

import sqlalchemy as sa

from alembic.operations import Operations
from sqlalchemy.engine import Connection
from sqlalchemy.engine.reflection import Inspector

from sitebuilder.schema.model import (
    ColumnSpec,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    SchemaState,
    TableSpec,
)

from . import backfill
from .backfill import BackfillRule
from .errors import (
    DataIncompatibilityError,
    MigrationDefinitionError,
    StructuralConflictError,
    UnsupportedOperationError,
)


class Operation:
    """Base class for schema operations."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def table(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def column(self) -> str | None:
        return None

    def apply_to(self, state: SchemaState) -> None:
        raise NotImplementedError

    def reverse(self) -> "Operation":
        raise NotImplementedError

    def precheck(self, inspector: Inspector) -> None:
        """Check live existence preconditions. Default: nothing to check."""

    def check_data(self, conn: Connection) -> None:
        """Run data rules before DDL. Default: no data constraints."""

    def execute(self, operations: Operations) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return f"{self.kind} {self.table}"

    def conflict(self, message: str) -> StructuralConflictError:
        return StructuralConflictError(
            message, operation=self.describe(), table=self.table, column=self.column
        )

    # model helpers

    def _table(self, state: SchemaState, name: str | None = None) -> TableSpec:
        name = name or self.table
        spec = state.tables.get(name)
        if spec is None:
            raise self.conflict(f"table {name} does not exist")
        return spec

    # live helpers

    def _live_table(self, inspector: Inspector, name: str | None = None) -> None:
        name = name or self.table
        if not inspector.has_table(name):
            raise self.conflict(f"table {name} does not exist in the database")

    def _live_columns(self, inspector: Inspector) -> set[str]:
        self._live_table(inspector)
        return {c["name"] for c in inspector.get_columns(self.table)}

    def _live_indexes(self, inspector: Inspector) -> set[str]:
        self._live_table(inspector)
        return {ix["name"] for ix in inspector.get_indexes(self.table)}

    def _live_foreign_keys(self, inspector: Inspector) -> set[str]:
        self._live_table(inspector)
        return {fk["name"] for fk in inspector.get_foreign_keys(self.table)}


def _referencing(state: SchemaState, table_name: str) -> list[str]:
    """FK names in other tables that point at table_name."""
    names = []
    for spec in state.tables.values():
        if spec.name == table_name:
            continue
        for fk in spec.foreign_keys.values():
            if fk.ref_table == table_name:
                names.append(f"{spec.name}.{fk.name}")
    return names


def _create_index(operations: Operations, table: str, index: IndexSpec) -> None:
    operations.create_index(
        index.name,
        table,
        list(index.columns),
        unique=index.unique,
        **index.dialect_kwargs(),
    )


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateTable(Operation):
    spec: TableSpec

    @property
    def table(self) -> str:
        return self.spec.name

    def apply_to(self, state: SchemaState) -> None:
        if self.table in state.tables:
            raise self.conflict(f"table {self.table} already exists")
        for fk in self.spec.foreign_keys.values():
            if fk.ref_table != self.table and fk.ref_table not in state.tables:
                raise self.conflict(f"{fk.name} references missing table {fk.ref_table}")
        for index in self.spec.indexes.values():
            if state.find_index(index.name) is not None:
                raise self.conflict(f"index {index.name} already exists")
        state.tables[self.table] = copy.deepcopy(self.spec)

    def reverse(self) -> Operation:
        return DropTable(self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if inspector.has_table(self.table):
            raise self.conflict(f"table {self.table} already exists in the database")
        for fk in self.spec.foreign_keys.values():
            if fk.ref_table != self.table:
                self._live_table(inspector, fk.ref_table)

    def execute(self, operations: Operations) -> None:
        spec = self.spec
        items: list = [c.to_sa_column() for c in spec.columns.values()]
        if spec.primary_key is not None:
            items.append(
                sa.PrimaryKeyConstraint(*spec.primary_key.columns, name=spec.primary_key.name)
            )
        for fk in spec.foreign_keys.values():
            items.append(
                sa.ForeignKeyConstraint(
                    list(fk.columns),
                    [f"{fk.ref_table}.{c}" for c in fk.ref_columns],
                    name=fk.name,
                    ondelete=fk.ondelete,
                )
            )
        operations.create_table(spec.name, *items)
        for index in spec.indexes.values():
            _create_index(operations, spec.name, index)

    def describe(self) -> str:
        return f"CreateTable {self.table}"


@dataclass(frozen=True)
class DropTable(Operation):
    """Drop a table. Carries the full definition so it can be recreated."""

    spec: TableSpec

    @property
    def table(self) -> str:
        return self.spec.name

    def apply_to(self, state: SchemaState) -> None:
        current = self._table(state)
        if current != self.spec:
            raise self.conflict(
                f"recorded definition of {self.table} does not match the schema"
            )
        refs = _referencing(state, self.table)
        if refs:
            raise self.conflict(f"{self.table} is still referenced by {', '.join(refs)}")
        del state.tables[self.table]

    def reverse(self) -> Operation:
        return CreateTable(self.spec)

    def precheck(self, inspector: Inspector) -> None:
        self._live_table(inspector)

    def execute(self, operations: Operations) -> None:
        operations.drop_table(self.table)

    def describe(self) -> str:
        return f"DropTable {self.table}"


@dataclass(frozen=True)
class RenameTable(Operation):
    """Rename a table. Constraint and index names are left untouched."""

    old_name: str
    new_name: str

    @property
    def table(self) -> str:
        return self.old_name

    def apply_to(self, state: SchemaState) -> None:
        spec = self._table(state)
        if self.new_name in state.tables:
            raise self.conflict(f"table {self.new_name} already exists")
        del state.tables[self.old_name]
        state.tables[self.new_name] = spec.renamed(self.new_name)
        for other in state.tables.values():
            for name, fk in list(other.foreign_keys.items()):
                if fk.ref_table == self.old_name:
                    other.foreign_keys[name] = replace(fk, ref_table=self.new_name)

    def reverse(self) -> Operation:
        return RenameTable(self.new_name, self.old_name)

    def precheck(self, inspector: Inspector) -> None:
        self._live_table(inspector)
        if inspector.has_table(self.new_name):
            raise self.conflict(f"table {self.new_name} already exists in the database")

    def execute(self, operations: Operations) -> None:
        operations.rename_table(self.old_name, self.new_name)

    def describe(self) -> str:
        return f"RenameTable {self.old_name} -> {self.new_name}"


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddColumn(Operation):
    table_name: str
    spec: ColumnSpec

    @property
    def table(self) -> str:
        return self.table_name

    @property
    def column(self) -> str | None:
        return self.spec.name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        if self.spec.name in table.columns:
            raise self.conflict(f"column {self.table}.{self.spec.name} already exists")
        table.columns[self.spec.name] = self.spec

    def reverse(self) -> Operation:
        return DropColumn(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name in self._live_columns(inspector):
            raise self.conflict(f"column {self.table}.{self.spec.name} already exists in the database")

    def check_data(self, conn: Connection) -> None:
        if self.spec.nullable or self.spec.default is not None:
            return
        rows = backfill.count_rows(conn, self.table)
        if rows:
            raise DataIncompatibilityError(
                f"cannot add NOT NULL column without a default to {self.table} "
                f"which has {rows} row(s)",
                operation=self.describe(),
                table=self.table,
                column=self.column,
            )

    def execute(self, operations: Operations) -> None:
        operations.add_column(self.table, self.spec.to_sa_column())

    def describe(self) -> str:
        return f"AddColumn {self.table}.{self.spec.name} {self.spec.describe()}"


@dataclass(frozen=True)
class DropColumn(Operation):
    """Drop a column. Carries the full column definition for the inverse."""

    table_name: str
    spec: ColumnSpec

    @property
    def table(self) -> str:
        return self.table_name

    @property
    def column(self) -> str | None:
        return self.spec.name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        current = table.columns.get(self.spec.name)
        if current is None:
            raise self.conflict(f"column {self.table}.{self.spec.name} does not exist")
        if current != self.spec:
            raise self.conflict(
                f"column {self.table}.{self.spec.name} is {current.describe()}, "
                f"recorded as {self.spec.describe()}"
            )
        for index in table.indexes.values():
            if self.spec.name in index.columns:
                raise self.conflict(f"column is still covered by index {index.name}")
        for fk in table.foreign_keys.values():
            if self.spec.name in fk.columns:
                raise self.conflict(f"column is still part of foreign key {fk.name}")
        if table.primary_key and self.spec.name in table.primary_key.columns:
            raise self.conflict(f"column is part of primary key {table.primary_key.name}")
        del table.columns[self.spec.name]

    def reverse(self) -> Operation:
        return AddColumn(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name not in self._live_columns(inspector):
            raise self.conflict(f"column {self.table}.{self.spec.name} does not exist in the database")

    def execute(self, operations: Operations) -> None:
        operations.drop_column(self.table, self.spec.name)

    def describe(self) -> str:
        return f"DropColumn {self.table}.{self.spec.name}"


@dataclass(frozen=True)
class AlterColumn(Operation):
    """Change a column's type/length, nullability and/or default.

    Both shapes are recorded so the inverse restores the exact prior column.
    `backfill` guards the forward direction, `reverse_backfill` the backward
    one; a direction that narrows or tightens must have a rule.
    """

    table_name: str
    old: ColumnSpec
    new: ColumnSpec
    backfill: BackfillRule | tuple[BackfillRule, ...] | None = None
    reverse_backfill: BackfillRule | tuple[BackfillRule, ...] | None = None

    def __post_init__(self) -> None:
        if self.old.name != self.new.name:
            raise MigrationDefinitionError(
                "AlterColumn cannot rename columns",
                operation="AlterColumn",
                table=self.table_name,
                column=self.old.name,
            )
        if self.old == self.new:
            raise MigrationDefinitionError(
                "AlterColumn old and new shapes are identical",
                operation="AlterColumn",
                table=self.table_name,
                column=self.old.name,
            )
        if self.old.identity != self.new.identity:
            raise MigrationDefinitionError(
                "AlterColumn cannot change identity generation",
                operation="AlterColumn",
                table=self.table_name,
                column=self.old.name,
            )
        self._require_rule(self.old, self.new, self.backfill, "forward")
        self._require_rule(self.new, self.old, self.reverse_backfill, "reverse")

    def _require_rule(self, before, after, rules, direction: str) -> None:
        length = before.narrows_to(after)
        nulls = before.tightens_to(after)
        if not (length or nulls):
            return
        if not backfill.covers(backfill.normalize_rules(rules), length=length, nulls=nulls):
            needs = " and ".join(
                label for label, flag in (("length narrowing", length), ("NOT NULL", nulls)) if flag
            )
            raise MigrationDefinitionError(
                f"{direction} alteration ({before.describe()} -> {after.describe()}) "
                f"needs a backfill rule for {needs}",
                operation="AlterColumn",
                table=self.table_name,
                column=self.old.name,
            )

    @property
    def table(self) -> str:
        return self.table_name

    @property
    def column(self) -> str | None:
        return self.old.name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        current = table.columns.get(self.old.name)
        if current is None:
            raise self.conflict(f"column {self.table}.{self.old.name} does not exist")
        if current != self.old:
            raise self.conflict(
                f"column {self.table}.{self.old.name} is {current.describe()}, "
                f"expected {self.old.describe()}"
            )
        table.columns[self.old.name] = self.new

    def reverse(self) -> Operation:
        return AlterColumn(
            self.table_name,
            old=self.new,
            new=self.old,
            backfill=self.reverse_backfill,
            reverse_backfill=self.backfill,
        )

    def precheck(self, inspector: Inspector) -> None:
        if self.old.name not in self._live_columns(inspector):
            raise self.conflict(f"column {self.table}.{self.old.name} does not exist in the database")

    def check_data(self, conn: Connection) -> None:
        length = self.old.narrows_to(self.new)
        nulls = self.old.tightens_to(self.new)
        if not (length or nulls):
            return
        rules = backfill.normalize_rules(self.backfill)
        for rule in rules:
            rule.run(conn, self.table, self.new)
        problems = []
        if length:
            overlong = backfill.count_overlong(conn, self.table, self.new)
            if overlong:
                problems.append(f"{overlong} row(s) longer than {self.new.length}")
        if nulls:
            missing = backfill.count_nulls(conn, self.table, self.new.name)
            if missing:
                problems.append(f"{missing} row(s) with NULL")
        if problems:
            applied = ", ".join(r.describe() for r in rules)
            raise DataIncompatibilityError(
                f"existing rows violate {self.new.describe()}: {'; '.join(problems)} "
                f"(rule: {applied})",
                operation=self.describe(),
                table=self.table,
                column=self.column,
            )

    def execute(self, operations: Operations) -> None:
        kwargs: dict = {
            "existing_type": self.old.to_sa_type(),
            "existing_nullable": self.old.nullable,
            "existing_server_default": (
                self.old.default.to_server_default() if self.old.default else None
            ),
        }
        if (self.old.type, self.old.length) != (self.new.type, self.new.length):
            kwargs["type_"] = self.new.to_sa_type()
        if self.old.nullable != self.new.nullable:
            kwargs["nullable"] = self.new.nullable
        if self.old.default != self.new.default:
            kwargs["server_default"] = (
                self.new.default.to_server_default() if self.new.default else None
            )
        operations.alter_column(self.table, self.old.name, **kwargs)

    def describe(self) -> str:
        return (
            f"AlterColumn {self.table}.{self.old.name} "
            f"{self.old.describe()} -> {self.new.describe()}"
        )


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddPrimaryKey(Operation):
    table_name: str
    spec: PrimaryKeySpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        if table.primary_key is not None:
            raise self.conflict(f"{self.table} already has primary key {table.primary_key.name}")
        for name in self.spec.columns:
            col = table.columns.get(name)
            if col is None:
                raise self.conflict(f"primary key column {name} does not exist")
            if col.nullable:
                raise self.conflict(f"primary key column {name} is nullable")
        table.primary_key = self.spec

    def reverse(self) -> Operation:
        return DropPrimaryKey(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        self._live_table(inspector)
        pk = inspector.get_pk_constraint(self.table)
        if pk.get("constrained_columns"):
            raise self.conflict(f"{self.table} already has a primary key in the database")

    def execute(self, operations: Operations) -> None:
        operations.create_primary_key(self.spec.name, self.table, list(self.spec.columns))

    def describe(self) -> str:
        return f"AddPrimaryKey {self.table}.{self.spec.name}"


@dataclass(frozen=True)
class DropPrimaryKey(Operation):
    table_name: str
    spec: PrimaryKeySpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        if table.primary_key != self.spec:
            raise self.conflict(
                f"{self.table} primary key is {table.primary_key}, recorded as {self.spec}"
            )
        refs = _referencing(state, self.table)
        if refs:
            raise self.conflict(f"primary key is still referenced by {', '.join(refs)}")
        table.primary_key = None

    def reverse(self) -> Operation:
        return AddPrimaryKey(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        self._live_table(inspector)
        pk = inspector.get_pk_constraint(self.table)
        if pk.get("name") != self.spec.name:
            raise self.conflict(
                f"primary key {self.spec.name} does not exist in the database "
                f"(found {pk.get('name')})"
            )

    def execute(self, operations: Operations) -> None:
        operations.drop_constraint(self.spec.name, self.table, type_="primary")

    def describe(self) -> str:
        return f"DropPrimaryKey {self.table}.{self.spec.name}"


@dataclass(frozen=True)
class AddForeignKey(Operation):
    table_name: str
    spec: ForeignKeySpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        if self.spec.name in table.foreign_keys:
            raise self.conflict(f"foreign key {self.spec.name} already exists")
        for name in self.spec.columns:
            if name not in table.columns:
                raise self.conflict(f"foreign key column {name} does not exist")
        target = self._table(state, self.spec.ref_table)
        if target.primary_key is None or target.primary_key.columns != self.spec.ref_columns:
            raise self.conflict(
                f"{self.spec.ref_table}({', '.join(self.spec.ref_columns)}) is not a primary key"
            )
        table.foreign_keys[self.spec.name] = self.spec

    def reverse(self) -> Operation:
        return DropForeignKey(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name in self._live_foreign_keys(inspector):
            raise self.conflict(f"foreign key {self.spec.name} already exists in the database")
        self._live_table(inspector, self.spec.ref_table)

    def execute(self, operations: Operations) -> None:
        operations.create_foreign_key(
            self.spec.name,
            self.table,
            self.spec.ref_table,
            list(self.spec.columns),
            list(self.spec.ref_columns),
            ondelete=self.spec.ondelete,
        )

    def describe(self) -> str:
        return f"AddForeignKey {self.table}.{self.spec.name} {self.spec.describe()}"


@dataclass(frozen=True)
class DropForeignKey(Operation):
    table_name: str
    spec: ForeignKeySpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        current = table.foreign_keys.get(self.spec.name)
        if current is None:
            raise self.conflict(f"foreign key {self.spec.name} does not exist")
        if current != self.spec:
            raise self.conflict(
                f"foreign key {self.spec.name} is {current.describe()}, "
                f"recorded as {self.spec.describe()}"
            )
        del table.foreign_keys[self.spec.name]

    def reverse(self) -> Operation:
        return AddForeignKey(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name not in self._live_foreign_keys(inspector):
            raise self.conflict(f"foreign key {self.spec.name} does not exist in the database")

    def execute(self, operations: Operations) -> None:
        operations.drop_constraint(self.spec.name, self.table, type_="foreignkey")

    def describe(self) -> str:
        return f"DropForeignKey {self.table}.{self.spec.name}"


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateIndex(Operation):
    table_name: str
    spec: IndexSpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        if state.find_index(self.spec.name) is not None:
            raise self.conflict(f"index {self.spec.name} already exists")
        for name in self.spec.columns:
            if name not in table.columns:
                raise self.conflict(f"index column {name} does not exist")
        table.indexes[self.spec.name] = self.spec

    def reverse(self) -> Operation:
        return DropIndex(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name in self._live_indexes(inspector):
            raise self.conflict(f"index {self.spec.name} already exists in the database")

    def execute(self, operations: Operations) -> None:
        _create_index(operations, self.table, self.spec)

    def describe(self) -> str:
        return f"CreateIndex {self.spec.name} ON {self.table} {self.spec.describe()}"


@dataclass(frozen=True)
class DropIndex(Operation):
    """Drop an index. Carries columns, uniqueness and filter predicate."""

    table_name: str
    spec: IndexSpec

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        current = table.indexes.get(self.spec.name)
        if current is None:
            raise self.conflict(f"index {self.spec.name} does not exist")
        if current != self.spec:
            raise self.conflict(
                f"index {self.spec.name} is {current.describe()}, "
                f"recorded as {self.spec.describe()}"
            )
        del table.indexes[self.spec.name]

    def reverse(self) -> Operation:
        return CreateIndex(self.table_name, self.spec)

    def precheck(self, inspector: Inspector) -> None:
        if self.spec.name not in self._live_indexes(inspector):
            raise self.conflict(f"index {self.spec.name} does not exist in the database")

    def execute(self, operations: Operations) -> None:
        operations.drop_index(self.spec.name, table_name=self.table)

    def describe(self) -> str:
        return f"DropIndex {self.spec.name} ON {self.table}"


@dataclass(frozen=True)
class RenameIndex(Operation):
    """Rename an index in place. PostgreSQL only."""

    table_name: str
    old_name: str
    new_name: str

    @property
    def table(self) -> str:
        return self.table_name

    def apply_to(self, state: SchemaState) -> None:
        table = self._table(state)
        current = table.indexes.get(self.old_name)
        if current is None:
            raise self.conflict(f"index {self.old_name} does not exist")
        if state.find_index(self.new_name) is not None:
            raise self.conflict(f"index {self.new_name} already exists")
        del table.indexes[self.old_name]
        table.indexes[self.new_name] = replace(current, name=self.new_name)

    def reverse(self) -> Operation:
        return RenameIndex(self.table_name, self.new_name, self.old_name)

    def precheck(self, inspector: Inspector) -> None:
        if inspector.dialect.name != "postgresql":
            raise UnsupportedOperationError(
                f"renaming indexes is not supported on {inspector.dialect.name}",
                operation=self.describe(),
                table=self.table,
            )
        indexes = self._live_indexes(inspector)
        if self.old_name not in indexes:
            raise self.conflict(f"index {self.old_name} does not exist in the database")
        if self.new_name in indexes:
            raise self.conflict(f"index {self.new_name} already exists in the database")

    def execute(self, operations: Operations) -> None:
        preparer = operations.get_bind().dialect.identifier_preparer
        operations.execute(
            f"ALTER INDEX {preparer.quote(self.old_name)} RENAME TO {preparer.quote(self.new_name)}"
        )

    def describe(self) -> str:
        return f"RenameIndex {self.old_name} -> {self.new_name} ON {self.table}"


def reverse_all(operations: list[Operation] | tuple[Operation, ...]) -> tuple[Operation, ...]:
    """Inverse of a sequence: each inverse, in reverse order."""
    return tuple(op.reverse() for op in reversed(operations))


__all__ = [
    "AddColumn",
    "AddForeignKey",
    "AddPrimaryKey",
    "AlterColumn",
    "CreateIndex",
    "CreateTable",
    "DropColumn",
    "DropForeignKey",
    "DropIndex",
    "DropPrimaryKey",
    "DropTable",
    "Operation",
    "RenameIndex",
    "RenameTable",
    "reverse_all",
]
