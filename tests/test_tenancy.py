"""Tests for the tenant isolation check."""

from sitebuilder.schema.entities import company_fk, company_id, company_index, target_schema
from sitebuilder.schema.model import ForeignKeySpec, IndexSpec, SchemaState, column, table
from sitebuilder.schema.tenancy import check_table, check_tenant_isolation


def scoped(name, **kwargs):
    return table(
        name,
        column("Id", "integer", nullable=False, identity=True),
        kwargs.pop("company_column", company_id()),
        foreign_keys=kwargs.pop("foreign_keys", [company_fk(name)]),
        indexes=kwargs.pop("indexes", [company_index(name)]),
    )


class TestCheckTable:
    def test_compliant_table(self):
        assert check_table(scoped("Notifications")) == []

    def test_composite_index_leading_with_company_counts(self):
        spec = scoped(
            "Notifications",
            indexes=[IndexSpec("IX_Notifications_CompanyId_IsRead", ("CompanyId", "IsRead"))],
        )
        assert check_table(spec) == []

    def test_missing_company_column(self):
        spec = table("Orphans", column("Id", "integer", nullable=False))
        [violation] = check_table(spec)
        assert "missing CompanyId" in violation.problem

    def test_nullable_company_column(self):
        spec = scoped("Notifications", company_column=column("CompanyId", "integer"))
        assert [v.problem for v in check_table(spec)] == ["CompanyId is nullable"]

    def test_index_not_leading_with_company(self):
        spec = scoped(
            "Notifications",
            indexes=[IndexSpec("IX_Notifications_IsRead_CompanyId", ("IsRead", "CompanyId"))],
        )
        assert [v.problem for v in check_table(spec)] == ["no index leading with CompanyId"]

    def test_foreign_key_without_cascade(self):
        spec = scoped(
            "Notifications",
            foreign_keys=[
                ForeignKeySpec("FK_Notifications_Companies_CompanyId", ("CompanyId",), "Companies")
            ],
        )
        [violation] = check_table(spec)
        assert "cascade" in violation.problem


class TestCheckTenantIsolation:
    def test_target_schema_is_isolated(self):
        assert check_tenant_isolation(target_schema()) == []

    def test_exempt_tables_skipped(self):
        state = SchemaState.of(table("Perros", column("Id", "integer", nullable=False)))
        assert check_tenant_isolation(state) == []

    def test_violation_reported_with_table(self):
        state = SchemaState.of(table("Orphans", column("Id", "integer", nullable=False)))
        [violation] = check_tenant_isolation(state)
        assert str(violation).startswith("Orphans:")
