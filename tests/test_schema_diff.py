"""Tests for structural schema comparison."""

from sitebuilder.schema.diff import diff_schemas
from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    Default,
    ForeignKeySpec,
    IndexSpec,
    SchemaState,
    column,
    table,
    varchar,
)


def perros(**overrides):
    columns = {
        "Id": column("Id", "integer", nullable=False, identity=True),
        "Nombre": column("Nombre", "text", nullable=False),
        "CreatedAt": column("CreatedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
    }
    columns.update(overrides)
    return table("Perros", *columns.values())


class TestDiffSchemas:
    def test_identical_states(self):
        assert diff_schemas(SchemaState.of(perros()), SchemaState.of(perros())) == []

    def test_column_order_is_ignored(self):
        a = perros()
        b = table("Perros", *reversed(list(a.columns.values())))
        assert diff_schemas(SchemaState.of(a), SchemaState.of(b)) == []

    def test_missing_table(self):
        diffs = diff_schemas(SchemaState.of(perros()), SchemaState())
        assert len(diffs) == 1
        assert diffs[0].kind == "table"
        assert diffs[0].actual is None

    def test_length_difference(self):
        a = SchemaState.of(table("T", varchar("To", 20)))
        b = SchemaState.of(table("T", varchar("To", 255)))
        [diff] = diff_schemas(a, b)
        assert diff.kind == "column"
        assert diff.name == "To"
        assert "varchar(20)" in diff.expected
        assert "varchar(255)" in diff.actual

    def test_default_mechanism_difference(self):
        literal = column("CreatedAt", "timestamptz", nullable=False, default=Default.literal("CURRENT_TIMESTAMP"))
        diffs = diff_schemas(SchemaState.of(perros()), SchemaState.of(perros(CreatedAt=literal)))
        assert [d.name for d in diffs] == ["CreatedAt"]

    def test_index_predicate_difference(self):
        a = perros()
        a.indexes["IX_Perros_Nombre"] = IndexSpec("IX_Perros_Nombre", ("Nombre",))
        b = perros()
        b.indexes["IX_Perros_Nombre"] = IndexSpec("IX_Perros_Nombre", ("Nombre",), where='"Nombre" <> \'\'')
        [diff] = diff_schemas(SchemaState.of(a), SchemaState.of(b))
        assert diff.kind == "index"
        assert "WHERE" in diff.actual

    def test_foreign_key_action_difference(self):
        companies = table("Companies", column("Id", "integer", nullable=False))
        a = table("Users", column("Id", "integer", nullable=False), column("CompanyId", "integer", nullable=False))
        b = table("Users", column("Id", "integer", nullable=False), column("CompanyId", "integer", nullable=False))
        a.foreign_keys["FK"] = ForeignKeySpec("FK", ("CompanyId",), "Companies", ondelete="CASCADE")
        b.foreign_keys["FK"] = ForeignKeySpec("FK", ("CompanyId",), "Companies")
        [diff] = diff_schemas(SchemaState.of(companies, a), SchemaState.of(companies, b))
        assert diff.kind == "foreign key"
        assert "CASCADE" in str(diff)

    def test_primary_key_difference(self):
        a = perros()
        b = perros()
        b.primary_key = None
        [diff] = diff_schemas(SchemaState.of(a), SchemaState.of(b))
        assert diff.kind == "primary key"
        assert diff.actual is None
