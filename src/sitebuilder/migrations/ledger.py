"""Migration history table and the ledger value passed through apply/revert."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from .step import MigrationStep

HISTORY_TABLE = "__MigrationHistory"

_metadata = sa.MetaData()

history = sa.Table(
    HISTORY_TABLE,
    _metadata,
    sa.Column("MigrationId", sa.String(150), nullable=False),
    sa.Column("Name", sa.String(200), nullable=False),
    sa.Column("AppliedAt", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("MigrationId", name=f"PK_{HISTORY_TABLE}"),
)


@dataclass(frozen=True)
class Ledger:
    """Applied step ids, oldest first. Never mutated; each change returns a new value."""

    applied: tuple[str, ...] = ()

    @property
    def head(self) -> str | None:
        return self.applied[-1] if self.applied else None

    def is_applied(self, step_id: str) -> bool:
        return step_id in self.applied

    def with_applied(self, step_id: str) -> "Ledger":
        return Ledger(self.applied + (step_id,))

    def without_head(self) -> "Ledger":
        return Ledger(self.applied[:-1])


def ensure_history_table(conn: Connection) -> None:
    _metadata.create_all(conn, checkfirst=True)


def load_ledger(conn: Connection) -> Ledger:
    rows = conn.execute(sa.select(history.c.MigrationId).order_by(history.c.MigrationId))
    return Ledger(tuple(row[0] for row in rows))


def record_applied(conn: Connection, step: MigrationStep, applied_at: datetime) -> None:
    conn.execute(
        history.insert().values(MigrationId=step.id, Name=step.name, AppliedAt=applied_at)
    )


def record_reverted(conn: Connection, step: MigrationStep) -> None:
    conn.execute(history.delete().where(history.c.MigrationId == step.id))


def history_rows(conn: Connection) -> list[dict]:
    """All history rows, oldest first."""
    rows = conn.execute(sa.select(history).order_by(history.c.MigrationId)).mappings()
    return [dict(row) for row in rows]
