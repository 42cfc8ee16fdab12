"""Apply/revert engine.

Each step runs inside one transaction that also records the history change,
so a step either commits completely or leaves no trace. Ordering is checked
against the ledger before any DDL is issued. On PostgreSQL the whole run holds
a session-level advisory lock so two deploys cannot mutate the schema at once.
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from sitebuilder.infra.time import utc_now
from sitebuilder.observability.logging import get_logger

from .errors import (
    MigrationError,
    MigrationExecutionError,
    OrderingViolationError,
    UnsupportedOperationError,
)
from .ledger import (
    Ledger,
    ensure_history_table,
    load_ledger,
    record_applied,
    record_reverted,
)
from .ops import Operation
from .registry import load_steps, validate_chain
from .step import MigrationStep

logger = get_logger(__name__)

DEFAULT_LOCK_KEY = 72130411


def lock_key() -> int:
    """Advisory lock key, overridable via MIGRATIONS_LOCK_KEY."""
    return int(os.environ.get("MIGRATIONS_LOCK_KEY", DEFAULT_LOCK_KEY))


class Outcome(str, Enum):
    APPLIED = "applied"
    REVERTED = "reverted"
    ALREADY_APPLIED = "already_applied"
    ALREADY_REVERTED = "already_reverted"


@dataclass(frozen=True)
class StepResult:
    step_id: str
    name: str
    outcome: Outcome
    duration_ms: int = 0


@dataclass(frozen=True)
class RunResult:
    ledger: Ledger
    results: tuple[StepResult, ...] = field(default_factory=tuple)

    @property
    def version(self) -> str | None:
        return self.ledger.head


class MigrationRunner:
    """Runs migration steps against one database."""

    def __init__(self, engine: Engine, steps: list[MigrationStep] | None = None):
        self.engine = engine
        self.steps = list(steps) if steps is not None else load_steps()
        validate_chain(self.steps)
        self._by_id = {step.id: step for step in self.steps}

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def ledger(self) -> Ledger:
        """Read the ledger from the history table, creating it if needed."""
        with self.engine.begin() as conn:
            ensure_history_table(conn)
            ledger = load_ledger(conn)
        self._check_history(ledger)
        return ledger

    def _check_history(self, ledger: Ledger) -> None:
        unknown = [step_id for step_id in ledger.applied if step_id not in self._by_id]
        if unknown:
            raise OrderingViolationError(
                f"database records unknown step(s) {', '.join(unknown)}; "
                "it was migrated by a newer or different codebase"
            )
        expected = tuple(step.id for step in self.steps[: len(ledger.applied)])
        if ledger.applied != expected:
            raise OrderingViolationError(
                f"applied steps {', '.join(ledger.applied)} are not a prefix of the step sequence"
            )

    def _check_unchanged(self, conn: Connection, ledger: Ledger) -> None:
        current = load_ledger(conn)
        if current != ledger:
            raise OrderingViolationError(
                f"ledger is stale: expected head {ledger.head}, database head is {current.head}"
            )

    # ------------------------------------------------------------------
    # Single steps
    # ------------------------------------------------------------------

    def apply_step(self, ledger: Ledger, step: MigrationStep) -> tuple[Ledger, StepResult]:
        """Apply one step. Returns the advanced ledger and the result."""
        if ledger.is_applied(step.id):
            logger.info(
                "step already applied",
                extra={"extra_fields": {"step": step.label}},
            )
            return ledger, StepResult(step.id, step.name, Outcome.ALREADY_APPLIED)
        if step.parent != ledger.head:
            raise OrderingViolationError(
                f"cannot apply {step.label}: it builds on {step.parent} "
                f"but the current version is {ledger.head}",
                step_id=step.id,
            )

        started = time.monotonic()
        with self.engine.begin() as conn:
            ensure_history_table(conn)
            self._check_unchanged(conn, ledger)
            self._run_operations(conn, step, step.operations)
            record_applied(conn, step, utc_now())
        duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            "step applied",
            extra={"extra_fields": {"step": step.label, "duration_ms": duration_ms}},
        )
        return ledger.with_applied(step.id), StepResult(
            step.id, step.name, Outcome.APPLIED, duration_ms
        )

    def revert_step(self, ledger: Ledger, step: MigrationStep) -> tuple[Ledger, StepResult]:
        """Revert one step. Only the most recent applied step may be reverted."""
        if not ledger.is_applied(step.id):
            logger.info(
                "step already reverted",
                extra={"extra_fields": {"step": step.label}},
            )
            return ledger, StepResult(step.id, step.name, Outcome.ALREADY_REVERTED)
        if ledger.head != step.id:
            raise OrderingViolationError(
                f"cannot revert {step.label}: later step {ledger.head} is still applied",
                step_id=step.id,
            )

        started = time.monotonic()
        with self.engine.begin() as conn:
            self._check_unchanged(conn, ledger)
            self._run_operations(conn, step, step.backward)
            record_reverted(conn, step)
        duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            "step reverted",
            extra={"extra_fields": {"step": step.label, "duration_ms": duration_ms}},
        )
        return ledger.without_head(), StepResult(
            step.id, step.name, Outcome.REVERTED, duration_ms
        )

    def _run_operations(
        self, conn: Connection, step: MigrationStep, operations: tuple[Operation, ...]
    ) -> None:
        ddl = Operations(MigrationContext.configure(connection=conn))
        for op in operations:
            try:
                op.precheck(sa.inspect(conn))
                op.check_data(conn)
                op.execute(ddl)
            except MigrationError as exc:
                raise exc.with_step(step.id)
            except NotImplementedError as exc:
                # alembic refuses constraint changes it cannot express on the dialect
                raise UnsupportedOperationError(
                    f"{op.describe()} is not supported on {conn.dialect.name}: {exc}",
                    step_id=step.id,
                    operation=op.describe(),
                    table=op.table,
                    column=op.column,
                ) from exc
            except SQLAlchemyError as exc:
                cause = getattr(exc, "orig", None) or exc
                raise MigrationExecutionError(
                    f"{op.describe()} failed: {cause}",
                    step_id=step.id,
                    operation=op.describe(),
                    table=op.table,
                    column=op.column,
                ) from exc
            logger.debug(
                "operation executed",
                extra={"extra_fields": {"step": step.label, "operation": op.describe()}},
            )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if self.engine.dialect.name != "postgresql":
            yield
            return
        key = lock_key()
        with self.engine.connect() as lock_conn:
            lock_conn.execute(sa.text("SELECT pg_advisory_lock(:key)"), {"key": key})
            lock_conn.commit()
            try:
                yield
            finally:
                lock_conn.execute(sa.text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                lock_conn.commit()

    def upgrade(self, target: str | None = None) -> RunResult:
        """Apply pending steps in order, up to and including target."""
        if target is not None and target not in self._by_id:
            raise OrderingViolationError(f"unknown target step {target}")
        results: list[StepResult] = []
        with self._locked():
            ledger = self.ledger()
            for step in self.steps:
                if target is not None and step.id > target:
                    break
                if ledger.is_applied(step.id):
                    continue
                ledger, result = self.apply_step(ledger, step)
                results.append(result)
        return RunResult(ledger, tuple(results))

    def downgrade(self, count: int = 1) -> RunResult:
        """Revert the count most recent steps, newest first."""
        if count < 0:
            raise ValueError("count must be >= 0")
        results: list[StepResult] = []
        with self._locked():
            ledger = self.ledger()
            for _ in range(min(count, len(ledger.applied))):
                step = self._by_id[ledger.head]
                ledger, result = self.revert_step(ledger, step)
                results.append(result)
        return RunResult(ledger, tuple(results))

    def status(self) -> list[tuple[MigrationStep, bool]]:
        """Every known step with whether it is applied."""
        ledger = self.ledger()
        return [(step, ledger.is_applied(step.id)) for step in self.steps]
