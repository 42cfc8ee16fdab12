"""Tests for the declarative schema model."""

import pytest
import sqlalchemy as sa

from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    ColumnSpec,
    Default,
    IndexSpec,
    PrimaryKeySpec,
    SchemaState,
    canonical_predicate,
    column,
    table,
    strip_enclosing_parens,
    varchar,
)


class TestColumnSpec:
    def test_varchar_requires_length(self):
        with pytest.raises(ValueError, match="requires a length"):
            ColumnSpec("Name", "varchar")

    def test_length_only_on_varchar(self):
        with pytest.raises(ValueError, match="Only varchar"):
            ColumnSpec("Name", "text", length=10)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown column type"):
            ColumnSpec("Name", "money")

    def test_narrowing(self):
        assert varchar("To", 255).narrows_to(varchar("To", 20))
        assert not varchar("To", 20).narrows_to(varchar("To", 255))
        assert column("PasswordHash", "text").narrows_to(varchar("PasswordHash", 255))
        assert not varchar("PasswordHash", 255).narrows_to(column("PasswordHash", "text"))

    def test_tightening(self):
        assert varchar("Email", 100).tightens_to(varchar("Email", 100, nullable=False))
        assert not varchar("Email", 100, nullable=False).tightens_to(varchar("Email", 100))

    def test_literal_and_sql_defaults_differ(self):
        literal = column("CreatedAt", "timestamptz", default=Default.literal("CURRENT_TIMESTAMP"))
        sql = column("CreatedAt", "timestamptz", default=CURRENT_TIMESTAMP)
        assert literal != sql

    def test_describe(self):
        spec = varchar("Provider", 20, nullable=False, default="Twilio")
        assert spec.describe() == "varchar(20) NOT NULL DEFAULT 'Twilio'"

    def test_replace(self):
        spec = varchar("Email", 100)
        assert spec.replace(nullable=False) == varchar("Email", 100, nullable=False)


class TestDefault:
    def test_sql_default_renders_text(self):
        rendered = CURRENT_TIMESTAMP.to_server_default()
        assert isinstance(rendered, sa.sql.elements.TextClause)
        assert rendered.text == "CURRENT_TIMESTAMP"

    def test_string_literal_renders_str(self):
        assert Default.literal("whatsapp").to_server_default() == "whatsapp"

    def test_integer_literal_renders_text(self):
        assert Default.literal(60).to_server_default().text == "60"


class TestTableSpec:
    def test_default_primary_key(self):
        spec = table("Perros", column("Id", "integer", nullable=False, identity=True))
        assert spec.primary_key == PrimaryKeySpec("PK_Perros", ("Id",))

    def test_company_scoped(self):
        assert table("Users", column("CompanyId", "integer", nullable=False)).company_scoped
        assert not table("Perros", column("Nombre", "text")).company_scoped

    def test_renamed_is_a_copy(self):
        spec = table("WhatsAppConversations", column("Id", "uuid", nullable=False))
        clone = spec.renamed("WhatsAppConversation")
        clone.columns.clear()
        assert clone.name == "WhatsAppConversation"
        assert "Id" in spec.columns


class TestSchemaState:
    def test_of_copies_tables(self):
        spec = table("Perros", column("Id", "integer", nullable=False))
        state = SchemaState.of(spec)
        state.tables["Perros"].columns.clear()
        assert "Id" in spec.columns

    def test_find_index(self):
        from sitebuilder.schema.entities import target_schema

        found = target_schema().find_index("IX_WhatsAppMessages_TwilioSid")
        assert found is not None
        owner, index = found
        assert owner.name == "WhatsAppMessages"
        assert index.unique

    def test_to_metadata_builds_constraints(self):
        from sitebuilder.schema.entities import target_schema

        metadata = target_schema().to_metadata()
        messages = metadata.tables["WhatsAppMessages"]
        fk_names = {fk.name for fk in messages.foreign_key_constraints}
        assert "FK_WhatsAppMessages_WhatsAppConversations_ConversationId" in fk_names
        assert messages.primary_key.name == "PK_WhatsAppMessages"
        index = next(ix for ix in messages.indexes if ix.name == "IX_WhatsAppMessages_TwilioSid")
        assert index.unique


class TestPredicates:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("(a = 1)", "a = 1"),
            ("((a = 1))", "a = 1"),
            ("(a = 1) AND (b = 2)", "(a = 1) AND (b = 2)"),
            ("('(x)')", "'(x)'"),
            ("(a) + (b)", "(a) + (b)"),
        ],
    )
    def test_strip_only_enclosing_pair(self, text, expected):
        assert strip_enclosing_parens(text) == expected

    def test_postgres_compound_form_matches_model(self):
        reflected = "(\"ReadAt\" IS NULL) AND ((\"Direction\")::text = 'inbound'::text)"
        assert canonical_predicate(reflected) == "\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'"

    @pytest.mark.parametrize(
        "text",
        [
            '"UnreadCount" > 0',
            "\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'",
        ],
    )
    def test_modeled_predicates_are_already_canonical(self, text):
        assert canonical_predicate(text) == text

    def test_single_comparison_from_postgres(self):
        assert canonical_predicate('("UnreadCount" > 0)') == '"UnreadCount" > 0'

    def test_varchar_cast_removed(self):
        reflected = "((\"Status\")::character varying(20) = 'sent'::character varying)"
        assert canonical_predicate(reflected) == "\"Status\" = 'sent'"

    def test_or_keeps_grouping_inside_and(self):
        reflected = "((a = 1) OR (b = 2)) AND (c = 3)"
        assert canonical_predicate(reflected) == "(a = 1 OR b = 2) AND c = 3"

    def test_keywords_inside_literals_untouched(self):
        assert canonical_predicate("(\"Body\" = 'x AND (y)')") == "\"Body\" = 'x AND (y)'"

    def test_index_spec_compares_canonically(self):
        modeled = IndexSpec("IX_M_ReadAt", ("ReadAt",), where="\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'")
        reflected = IndexSpec(
            "IX_M_ReadAt",
            ("ReadAt",),
            where="(\"ReadAt\" IS NULL) AND ((\"Direction\")::text = 'inbound'::text)",
        )
        assert modeled == reflected
