"""Migration tests against a real PostgreSQL database.

Set TEST_DATABASE_URL to run them; the public schema is dropped and
recreated for every test.
"""

import sqlalchemy as sa

from sitebuilder.migrations.ledger import HISTORY_TABLE
from sitebuilder.migrations.ops import CreateIndex, CreateTable, RenameIndex
from sitebuilder.migrations.runner import MigrationRunner
from sitebuilder.migrations.step import MigrationStep
from sitebuilder.migrations.verify import model_versions, verify_live
from sitebuilder.schema.diff import diff_schemas
from sitebuilder.schema.entities import target_schema
from sitebuilder.schema.model import IndexSpec, column, table, varchar
from sitebuilder.schema.reflection import reflect_schema


def user_tables(engine):
    return set(sa.inspect(engine).get_table_names()) - {HISTORY_TABLE}


class TestFullChain:
    def test_upgrade_reaches_target_schema(self, pg_engine):
        runner = MigrationRunner(pg_engine)
        result = runner.upgrade()

        assert result.version == runner.steps[-1].id
        actual = reflect_schema(pg_engine, exclude=(HISTORY_TABLE,))
        assert diff_schemas(target_schema(), actual) == []

    def test_every_version_matches_its_model(self, pg_engine):
        runner = MigrationRunner(pg_engine)
        states = model_versions(runner.steps)
        for step, expected in zip(runner.steps, states[1:]):
            runner.upgrade(target=step.id)
            actual = reflect_schema(pg_engine, exclude=(HISTORY_TABLE,))
            assert diff_schemas(expected, actual) == [], step.label

    def test_live_round_trip_of_every_step(self, pg_engine):
        report = verify_live(pg_engine)
        assert report.ok, report.problems

    def test_downgrade_everything(self, pg_engine):
        runner = MigrationRunner(pg_engine)
        runner.upgrade()
        result = runner.downgrade(len(runner.steps))

        assert result.version is None
        assert user_tables(pg_engine) == set()


class TestRenameIndex:
    def test_rename_and_revert(self, pg_engine):
        create = MigrationStep(
            "20250101000000",
            "CreateWidgets",
            None,
            (
                CreateTable(table("Widgets", column("Id", "integer", nullable=False), varchar("Name", 50))),
                CreateIndex("Widgets", IndexSpec("IX_Widgets_Name", ("Name",))),
            ),
        )
        rename = MigrationStep(
            "20250102000000",
            "RenameWidgetIndex",
            create.id,
            (RenameIndex("Widgets", "IX_Widgets_Name", "IX_Widgets_DisplayName"),),
        )
        runner = MigrationRunner(pg_engine, [create, rename])

        runner.upgrade()
        names = {ix["name"] for ix in sa.inspect(pg_engine).get_indexes("Widgets")}
        assert names == {"IX_Widgets_DisplayName"}

        runner.downgrade(1)
        names = {ix["name"] for ix in sa.inspect(pg_engine).get_indexes("Widgets")}
        assert names == {"IX_Widgets_Name"}
