"""Round-trip verification.

Modeled checks run purely on SchemaState: every step's backward operations
must restore exactly the state its forward operations started from, and the
head of the chain must equal the declared target schema. The live check
exercises a real database the same way, comparing reflected schemas before
and after apply/revert so that dialect-specific rendering cancels out.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.engine import Engine

from sitebuilder.observability.logging import get_logger
from sitebuilder.schema.diff import Difference, diff_schemas
from sitebuilder.schema.entities import target_schema
from sitebuilder.schema.model import SchemaState
from sitebuilder.schema.reflection import reflect_schema
from sitebuilder.schema.tenancy import check_tenant_isolation

from .errors import MigrationError
from .ledger import HISTORY_TABLE
from .runner import MigrationRunner
from .step import MigrationStep

logger = get_logger(__name__)


@dataclass
class VerificationReport:
    """Problems found by a verification run; ok when there are none."""

    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def add(self, context: str, differences: list[Difference]) -> None:
        self.problems.extend(f"{context}: {d}" for d in differences)

    def extend(self, other: "VerificationReport") -> "VerificationReport":
        self.problems.extend(other.problems)
        return self


def model_versions(steps: list[MigrationStep]) -> list[SchemaState]:
    """Modeled states: index 0 is the empty schema, index i is after step i."""
    states = [SchemaState()]
    for step in steps:
        states.append(step.apply_to(states[-1]))
    return states


def verify_steps(steps: list[MigrationStep]) -> VerificationReport:
    """Check every step's round trip and the full backward sequence."""
    report = VerificationReport()
    try:
        states = model_versions(steps)
    except MigrationError as exc:
        report.problems.append(f"forward sequence: {exc}")
        return report

    for i, step in enumerate(steps):
        before, after = states[i], states[i + 1]
        try:
            restored = step.revert_from(after)
        except MigrationError as exc:
            report.problems.append(f"{step.label} backward: {exc}")
            continue
        report.add(f"{step.label} round trip", diff_schemas(before, restored))

    state = states[-1]
    try:
        for step in reversed(steps):
            state = step.revert_from(state)
    except MigrationError as exc:
        report.problems.append(f"full backward sequence: {exc}")
        return report
    report.add("full backward sequence", diff_schemas(SchemaState(), state))
    return report


def verify_target(steps: list[MigrationStep]) -> VerificationReport:
    """Check that the head version equals the target schema and is tenant-safe."""
    report = VerificationReport()
    try:
        head = model_versions(steps)[-1]
    except MigrationError as exc:
        report.problems.append(f"forward sequence: {exc}")
        return report
    report.add("head vs target", diff_schemas(target_schema(), head))
    report.problems.extend(f"tenant isolation: {v}" for v in check_tenant_isolation(head))
    return report


def verify_live(engine: Engine, steps: list[MigrationStep] | None = None) -> VerificationReport:
    """Apply and revert each pending step on a live database, then re-apply.

    For every step not yet applied: reflect, apply, revert, reflect again and
    compare, then apply it for good so the next step starts from its parent.
    The database ends at the head version.
    """
    report = VerificationReport()
    runner = MigrationRunner(engine, steps)
    ledger = runner.ledger()
    for step in runner.steps:
        if ledger.is_applied(step.id):
            continue
        before = reflect_schema(engine, exclude=(HISTORY_TABLE,))
        ledger, _ = runner.apply_step(ledger, step)
        ledger, _ = runner.revert_step(ledger, step)
        after = reflect_schema(engine, exclude=(HISTORY_TABLE,))
        report.add(f"{step.label} live round trip", diff_schemas(before, after))
        ledger, _ = runner.apply_step(ledger, step)
        logger.info(
            "step verified",
            extra={"extra_fields": {"step": step.label, "ok": report.ok}},
        )
    return report
