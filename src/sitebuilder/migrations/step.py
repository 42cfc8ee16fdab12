"""Migration step contract."""

from __future__ import annotations

import re
from dataclasses import dataclass

from sitebuilder.schema.model import SchemaState

from .errors import MigrationDefinitionError, MigrationError
from .ops import Operation, reverse_all

STEP_ID_PATTERN = re.compile(r"^\d{14}$")


@dataclass(frozen=True)
class MigrationStep:
    """One versioned schema change.

    Attributes:
        id: Sortable timestamp id (YYYYMMDDHHMMSS).
        name: Descriptive name, e.g. "AddPerroTable".
        parent: Id of the step this one builds on (None for the first).
        operations: Forward operations, in order.
    """

    id: str
    name: str
    parent: str | None
    operations: tuple[Operation, ...]

    def __post_init__(self) -> None:
        if not STEP_ID_PATTERN.match(self.id):
            raise MigrationDefinitionError(
                f"step id {self.id!r} is not a 14-digit timestamp", step_id=self.id
            )
        if not self.name:
            raise MigrationDefinitionError("step has no name", step_id=self.id)
        if not self.operations:
            raise MigrationDefinitionError(f"step {self.name} has no operations", step_id=self.id)
        if self.parent is not None and self.parent >= self.id:
            raise MigrationDefinitionError(
                f"parent {self.parent} does not precede {self.id}", step_id=self.id
            )

    @property
    def label(self) -> str:
        return f"{self.id}_{self.name}"

    @property
    def backward(self) -> tuple[Operation, ...]:
        """Backward operations, derived from the forward ones."""
        return reverse_all(self.operations)

    def apply_to(self, state: SchemaState) -> SchemaState:
        """Model the forward direction. Returns a new state."""
        return _run(self.id, self.operations, state)

    def revert_from(self, state: SchemaState) -> SchemaState:
        """Model the backward direction. Returns a new state."""
        return _run(self.id, self.backward, state)


def _run(step_id: str, operations: tuple[Operation, ...], state: SchemaState) -> SchemaState:
    result = state.copy()
    for op in operations:
        try:
            op.apply_to(result)
        except MigrationError as exc:
            raise exc.with_step(step_id)
    return result
