"""Tests for schema operations on the modeled state."""

import pytest

from sitebuilder.migrations.backfill import FillNulls, Reject, Truncate
from sitebuilder.migrations.errors import (
    MigrationDefinitionError,
    StructuralConflictError,
)
from sitebuilder.migrations.ops import (
    AddColumn,
    AddForeignKey,
    AddPrimaryKey,
    AlterColumn,
    CreateIndex,
    CreateTable,
    DropColumn,
    DropForeignKey,
    DropIndex,
    DropPrimaryKey,
    DropTable,
    RenameIndex,
    RenameTable,
    reverse_all,
)
from sitebuilder.schema.diff import diff_schemas
from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    Default,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    SchemaState,
    column,
    table,
    varchar,
)


def companies():
    return table(
        "Companies",
        column("Id", "integer", nullable=False, identity=True),
        varchar("Name", 200, nullable=False),
    )


def pages():
    return table(
        "WebsitePages",
        column("Id", "integer", nullable=False, identity=True),
        column("CompanyId", "integer", nullable=False),
        varchar("Slug", 255),
        foreign_keys=[
            ForeignKeySpec(
                "FK_WebsitePages_Companies_CompanyId", ("CompanyId",), "Companies", ondelete="CASCADE"
            )
        ],
        indexes=[IndexSpec("IX_WebsitePages_CompanyId", ("CompanyId",))],
    )


@pytest.fixture
def state():
    return SchemaState.of(companies(), pages())


def round_trip(state, op):
    """Apply op then its inverse on a copy; return (after, restored)."""
    after = state.copy()
    op.apply_to(after)
    restored = after.copy()
    op.reverse().apply_to(restored)
    return after, restored


class TestTables:
    def test_create_table_round_trip(self, state):
        op = CreateTable(table("Perros", column("Id", "integer", nullable=False, identity=True)))
        after, restored = round_trip(state, op)
        assert "Perros" in after.tables
        assert diff_schemas(state, restored) == []

    def test_create_existing_table_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="already exists"):
            CreateTable(companies()).apply_to(state)

    def test_create_table_with_missing_reference_conflicts(self):
        with pytest.raises(StructuralConflictError, match="missing table Companies"):
            CreateTable(pages()).apply_to(SchemaState())

    def test_drop_table_restores_full_definition(self, state):
        op = DropTable(pages())
        after, restored = round_trip(state, op)
        assert "WebsitePages" not in after.tables
        assert restored.tables["WebsitePages"] == pages()

    def test_drop_table_with_stale_definition_conflicts(self, state):
        stale = pages()
        stale.columns.pop("Slug")
        with pytest.raises(StructuralConflictError, match="does not match"):
            DropTable(stale).apply_to(state)

    def test_drop_referenced_table_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="still referenced"):
            DropTable(companies()).apply_to(state)

    def test_rename_table_updates_references(self, state):
        after, restored = round_trip(state, RenameTable("Companies", "Company"))
        fk = after.tables["WebsitePages"].foreign_keys["FK_WebsitePages_Companies_CompanyId"]
        assert fk.ref_table == "Company"
        assert after.tables["Company"].primary_key.name == "PK_Companies"
        assert diff_schemas(state, restored) == []

    def test_rename_onto_existing_table_conflicts(self, state):
        with pytest.raises(StructuralConflictError):
            RenameTable("Companies", "WebsitePages").apply_to(state)


class TestColumns:
    def test_add_column_round_trip(self, state):
        op = AddColumn("WebsitePages", varchar("Title", 200))
        after, restored = round_trip(state, op)
        assert "Title" in after.tables["WebsitePages"].columns
        assert diff_schemas(state, restored) == []

    def test_add_duplicate_column_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="already exists"):
            AddColumn("WebsitePages", varchar("Slug", 255)).apply_to(state)

    def test_add_column_to_missing_table_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="does not exist"):
            AddColumn("Perros", varchar("Nombre", 50)).apply_to(state)

    def test_drop_column_restores_definition(self, state):
        after, restored = round_trip(state, DropColumn("WebsitePages", varchar("Slug", 255)))
        assert "Slug" not in after.tables["WebsitePages"].columns
        assert restored.tables["WebsitePages"].columns["Slug"] == varchar("Slug", 255)

    def test_drop_column_with_wrong_recorded_shape_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="recorded as"):
            DropColumn("WebsitePages", varchar("Slug", 100)).apply_to(state)

    def test_drop_indexed_column_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="index"):
            DropColumn("WebsitePages", column("CompanyId", "integer", nullable=False)).apply_to(state)


class TestAlterColumn:
    def test_widening_needs_no_rule(self, state):
        op = AlterColumn(
            "WebsitePages", varchar("Slug", 255), varchar("Slug", 500), reverse_backfill=Truncate()
        )
        after, restored = round_trip(state, op)
        assert after.tables["WebsitePages"].columns["Slug"].length == 500
        assert diff_schemas(state, restored) == []

    def test_narrowing_without_rule_is_rejected(self):
        with pytest.raises(MigrationDefinitionError, match="forward alteration"):
            AlterColumn("WebsitePages", varchar("Slug", 255), varchar("Slug", 100))

    def test_reverse_narrowing_without_rule_is_rejected(self):
        with pytest.raises(MigrationDefinitionError, match="reverse alteration"):
            AlterColumn("WebsitePages", varchar("Slug", 255), varchar("Slug", 500))

    def test_tightening_needs_null_rule(self):
        with pytest.raises(MigrationDefinitionError, match="NOT NULL"):
            AlterColumn(
                "WebsitePages",
                varchar("Slug", 255),
                varchar("Slug", 255, nullable=False),
                backfill=Truncate(),
            )

    def test_tightening_with_fill_nulls(self, state):
        op = AlterColumn(
            "WebsitePages",
            varchar("Slug", 255),
            varchar("Slug", 255, nullable=False),
            backfill=FillNulls(""),
        )
        after, _ = round_trip(state, op)
        assert not after.tables["WebsitePages"].columns["Slug"].nullable

    def test_text_to_varchar_is_narrowing(self):
        with pytest.raises(MigrationDefinitionError):
            AlterColumn("Users", column("PasswordHash", "text"), varchar("PasswordHash", 255))
        AlterColumn(
            "Users", column("PasswordHash", "text"), varchar("PasswordHash", 255), backfill=Reject()
        )

    def test_reverse_swaps_rules(self):
        op = AlterColumn(
            "WhatsAppMessages",
            varchar("To", 20, nullable=False),
            varchar("To", 255, nullable=False),
            reverse_backfill=Reject("phone numbers only"),
        )
        inverse = op.reverse()
        assert inverse.old == op.new
        assert inverse.new == op.old
        assert inverse.backfill == Reject("phone numbers only")
        assert inverse.reverse_backfill is None

    def test_default_mechanism_restored(self, state):
        base = SchemaState.of(
            table("Perros", column("CreatedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP))
        )
        old = base.tables["Perros"].columns["CreatedAt"]
        after, restored = round_trip(base, AlterColumn("Perros", old, old.replace(default=None)))
        assert after.tables["Perros"].columns["CreatedAt"].default is None
        assert restored.tables["Perros"].columns["CreatedAt"].default == CURRENT_TIMESTAMP

    def test_rename_not_allowed(self):
        with pytest.raises(MigrationDefinitionError, match="rename"):
            AlterColumn("WebsitePages", varchar("Slug", 255), varchar("Path", 255))

    def test_identical_shapes_rejected(self):
        with pytest.raises(MigrationDefinitionError, match="identical"):
            AlterColumn("WebsitePages", varchar("Slug", 255), varchar("Slug", 255))

    def test_prior_shape_mismatch_conflicts(self, state):
        op = AlterColumn(
            "WebsitePages",
            varchar("Slug", 255, default="home"),
            varchar("Slug", 255),
        )
        with pytest.raises(StructuralConflictError, match="expected"):
            op.apply_to(state)


class TestKeys:
    def test_primary_key_round_trip(self):
        base = SchemaState.of(
            table("Perros", column("Id", "integer", nullable=False), primary_key=None)
        )
        base.tables["Perros"].primary_key = None
        after, restored = round_trip(base, AddPrimaryKey("Perros", PrimaryKeySpec("PK_Perros")))
        assert after.tables["Perros"].primary_key == PrimaryKeySpec("PK_Perros")
        assert restored.tables["Perros"].primary_key is None

    def test_primary_key_on_nullable_column_conflicts(self):
        base = SchemaState.of(table("Perros", column("Id", "integer")))
        base.tables["Perros"].primary_key = None
        with pytest.raises(StructuralConflictError, match="nullable"):
            AddPrimaryKey("Perros", PrimaryKeySpec("PK_Perros")).apply_to(base)

    def test_drop_referenced_primary_key_conflicts(self, state):
        with pytest.raises(StructuralConflictError, match="still referenced"):
            DropPrimaryKey("Companies", PrimaryKeySpec("PK_Companies")).apply_to(state)

    def test_foreign_key_round_trip(self, state):
        fk = pages().foreign_keys["FK_WebsitePages_Companies_CompanyId"]
        after, restored = round_trip(state, DropForeignKey("WebsitePages", fk))
        assert after.tables["WebsitePages"].foreign_keys == {}
        assert diff_schemas(state, restored) == []

    def test_drop_foreign_key_with_wrong_action_conflicts(self, state):
        fk = ForeignKeySpec(
            "FK_WebsitePages_Companies_CompanyId", ("CompanyId",), "Companies", ondelete="SET NULL"
        )
        with pytest.raises(StructuralConflictError, match="recorded as"):
            DropForeignKey("WebsitePages", fk).apply_to(state)

    def test_foreign_key_must_target_primary_key(self, state):
        fk = ForeignKeySpec("FK_WebsitePages_Companies_Name", ("Slug",), "Companies", ("Name",))
        with pytest.raises(StructuralConflictError, match="not a primary key"):
            AddForeignKey("WebsitePages", fk).apply_to(state)


class TestIndexes:
    def test_partial_index_predicate_restored(self, state):
        index = IndexSpec("IX_WebsitePages_Slug", ("Slug",), unique=True, where='"Slug" IS NOT NULL')
        after = state.copy()
        CreateIndex("WebsitePages", index).apply_to(after)
        dropped = after.copy()
        DropIndex("WebsitePages", index).apply_to(dropped)
        restored = dropped.copy()
        DropIndex("WebsitePages", index).reverse().apply_to(restored)
        assert restored.tables["WebsitePages"].indexes["IX_WebsitePages_Slug"] == index

    def test_index_names_are_schema_wide(self, state):
        index = IndexSpec("IX_WebsitePages_CompanyId", ("Name",))
        with pytest.raises(StructuralConflictError, match="already exists"):
            CreateIndex("Companies", index).apply_to(state)

    def test_drop_index_with_wrong_uniqueness_conflicts(self, state):
        index = IndexSpec("IX_WebsitePages_CompanyId", ("CompanyId",), unique=True)
        with pytest.raises(StructuralConflictError, match="recorded as"):
            DropIndex("WebsitePages", index).apply_to(state)

    def test_rename_index_round_trip(self, state):
        op = RenameIndex("WebsitePages", "IX_WebsitePages_CompanyId", "IX_Pages_CompanyId")
        after, restored = round_trip(state, op)
        assert after.tables["WebsitePages"].indexes["IX_Pages_CompanyId"].columns == ("CompanyId",)
        assert diff_schemas(state, restored) == []


class TestReverseAll:
    def test_sequence_inverse_restores_state(self, state):
        ops = [
            AddColumn("WebsitePages", varchar("Title", 200)),
            CreateIndex("WebsitePages", IndexSpec("IX_WebsitePages_Title", ("Title",))),
            AddColumn("Companies", column("IsActive", "boolean", nullable=False, default=Default.literal(True))),
        ]
        after = state.copy()
        for op in ops:
            op.apply_to(after)
        for op in reverse_all(ops):
            op.apply_to(after)
        assert diff_schemas(state, after) == []

    def test_inverse_order(self):
        ops = [AddColumn("A", varchar("X", 1)), AddColumn("A", varchar("Y", 1))]
        inverse = reverse_all(ops)
        assert [op.spec.name for op in inverse] == ["Y", "X"]
        assert all(isinstance(op, DropColumn) for op in inverse)
