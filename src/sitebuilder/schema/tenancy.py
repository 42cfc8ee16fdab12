"""Tenant isolation check.

Every tenant-scoped table must carry a non-null CompanyId, an index whose
leading column is CompanyId, and a foreign key to Companies with cascade
delete. Together these make CompanyId the isolation boundary: lookups by
tenant are indexed and deleting a company removes all of its rows.
"""

from __future__ import annotations

from dataclasses import dataclass

from .entities import TENANT_EXEMPT_TABLES
from .model import SchemaState, TableSpec


@dataclass(frozen=True)
class TenantViolation:
    table: str
    problem: str

    def __str__(self) -> str:
        return f"{self.table}: {self.problem}"


def check_table(spec: TableSpec) -> list[TenantViolation]:
    violations = []
    company_id = spec.columns.get("CompanyId")
    if company_id is None:
        return [TenantViolation(spec.name, "missing CompanyId column")]
    if company_id.nullable:
        violations.append(TenantViolation(spec.name, "CompanyId is nullable"))
    if not any(ix.columns[0] == "CompanyId" for ix in spec.indexes.values()):
        violations.append(TenantViolation(spec.name, "no index leading with CompanyId"))
    cascades = [
        fk
        for fk in spec.foreign_keys.values()
        if fk.columns == ("CompanyId",)
        and fk.ref_table == "Companies"
        and fk.ondelete == "CASCADE"
    ]
    if not cascades:
        violations.append(
            TenantViolation(spec.name, "no cascade-delete foreign key from CompanyId to Companies")
        )
    return violations


def check_tenant_isolation(
    state: SchemaState, exempt: frozenset[str] = TENANT_EXEMPT_TABLES
) -> list[TenantViolation]:
    """Violations across every non-exempt table; empty when the invariant holds."""
    violations: list[TenantViolation] = []
    for name in sorted(state.tables):
        if name in exempt:
            continue
        violations.extend(check_table(state.tables[name]))
    return violations
