"""Migration error taxonomy.

Every failure carries the step, the operation, the table/column it touched and,
for database failures, the underlying driver error as __cause__. None of these
are retried.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base class for all migration failures."""

    def __init__(
        self,
        message: str,
        *,
        step_id: str | None = None,
        operation: str | None = None,
        table: str | None = None,
        column: str | None = None,
    ):
        self.step_id = step_id
        self.operation = operation
        self.table = table
        self.column = column
        super().__init__(message)

    def with_step(self, step_id: str) -> "MigrationError":
        self.step_id = step_id
        return self

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.step_id:
            context.append(f"step={self.step_id}")
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.table:
            context.append(f"table={self.table}")
        if self.column:
            context.append(f"column={self.column}")
        if not context:
            return message
        return f"{message} [{' '.join(context)}]"


class MigrationDefinitionError(MigrationError):
    """A step or operation is malformed (e.g. narrowing without a backfill rule)."""


class StructuralConflictError(MigrationError):
    """The schema is not in the shape the operation expects (drift)."""


class DataIncompatibilityError(MigrationError):
    """Existing rows violate the constraint an operation introduces."""


class OrderingViolationError(MigrationError):
    """A step was applied or reverted out of order, or history is unknown."""


class UnsupportedOperationError(MigrationError):
    """The connected dialect cannot execute the operation."""


class MigrationExecutionError(MigrationError):
    """The database rejected DDL or DML issued by an operation."""
