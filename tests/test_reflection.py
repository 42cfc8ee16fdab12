"""Tests for live schema reflection."""

import pytest
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from sitebuilder.schema import entities
from sitebuilder.schema.model import Default, SchemaState
from sitebuilder.schema.reflection import _where, canonical_default, canonical_type, reflect_schema


class TestCanonicalDefault:
    @pytest.mark.parametrize(
        "text, expected",
        [
            (None, None),
            ("'whatsapp'::character varying", Default.literal("whatsapp")),
            ("'Bearer {secret}'::character varying", Default.literal("Bearer {secret}")),
            ("'{}'::jsonb", Default.literal("{}")),
            ("'it''s'", Default.literal("it's")),
            ("''::character varying", Default.literal("")),
            ("false", Default.literal(False)),
            ("true", Default.literal(True)),
            ("60", Default.literal(60)),
            ("(0)", Default.literal(0)),
            ("CURRENT_TIMESTAMP", Default.sql("CURRENT_TIMESTAMP")),
            ("now()", Default.sql("now()")),
            ("(now())", Default.sql("now()")),
            ("(1) + (2)", Default.sql("(1) + (2)")),
        ],
    )
    def test_normalizes(self, text, expected):
        assert canonical_default(text) == expected


class TestCanonicalType:
    @pytest.mark.parametrize(
        "sa_type, expected",
        [
            (sa.VARCHAR(255), ("varchar", 255)),
            (sa.TEXT(), ("text", None)),
            (sa.INTEGER(), ("integer", None)),
            (sa.BOOLEAN(), ("boolean", None)),
            (postgresql.TIMESTAMP(timezone=True), ("timestamptz", None)),
            (postgresql.UUID(), ("uuid", None)),
            (postgresql.JSONB(), ("jsonb", None)),
            (postgresql.INTERVAL(), ("interval", None)),
        ],
    )
    def test_maps(self, sa_type, expected):
        assert canonical_type(sa_type) == expected

    def test_unsupported_type(self):
        with pytest.raises(ValueError, match="Unsupported"):
            canonical_type(sa.LargeBinary())


class TestIndexPredicate:
    def test_postgres_compound_predicate(self):
        index = {
            "dialect_options": {
                "postgresql_where": "(\"ReadAt\" IS NULL) AND ((\"Direction\")::text = 'inbound'::text)"
            }
        }
        assert _where(index) == "\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'"

    def test_no_predicate(self):
        assert _where({"dialect_options": {}}) is None
        assert _where({}) is None


class TestReflectSchema:
    def test_reflects_columns_keys_and_indexes(self, engine):
        with engine.begin() as conn:
            conn.exec_driver_sql(
                'CREATE TABLE "Companies" ("Id" INTEGER NOT NULL, '
                'CONSTRAINT "PK_Companies" PRIMARY KEY ("Id"))'
            )
            conn.exec_driver_sql(
                'CREATE TABLE "Notifications" ('
                '"Id" INTEGER NOT NULL, '
                '"CompanyId" INTEGER NOT NULL, '
                '"Type" VARCHAR(50) NOT NULL DEFAULT \'info\', '
                '"Message" TEXT, '
                '"CreatedAt" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP, '
                'CONSTRAINT "PK_Notifications" PRIMARY KEY ("Id"), '
                'CONSTRAINT "FK_Notifications_Companies_CompanyId" FOREIGN KEY ("CompanyId") '
                'REFERENCES "Companies" ("Id") ON DELETE CASCADE)'
            )
            conn.exec_driver_sql(
                'CREATE INDEX "IX_Notifications_CompanyId" ON "Notifications" ("CompanyId", "Type")'
            )
            conn.exec_driver_sql('CREATE TABLE "__MigrationHistory" ("MigrationId" VARCHAR(150))')

        state = reflect_schema(engine, exclude=("__MigrationHistory",))

        assert set(state.tables) == {"Companies", "Notifications"}
        spec = state.tables["Notifications"]
        assert spec.columns["Type"].type_label == "varchar(50)"
        assert spec.columns["Type"].default == Default.literal("info")
        assert spec.columns["Message"].type == "text"
        assert spec.columns["Message"].nullable
        assert spec.columns["CreatedAt"].default == Default.sql("CURRENT_TIMESTAMP")
        assert spec.primary_key.columns == ("Id",)
        fk = spec.foreign_keys["FK_Notifications_Companies_CompanyId"]
        assert fk.ref_table == "Companies"
        assert fk.ondelete == "CASCADE"
        assert spec.indexes["IX_Notifications_CompanyId"].columns == ("CompanyId", "Type")

    def test_sqlite_foreign_key_names_after_named_primary_key(self, engine):
        modeled = SchemaState.of(entities.companies(), entities.customers(), entities.users())
        modeled.to_metadata().create_all(engine)

        state = reflect_schema(engine)

        for name in ("Customers", "Users"):
            assert state.tables[name].foreign_keys == modeled.tables[name].foreign_keys
