"""Add PublishedSnapshots.

Revision ID: 20250903182740
Revises: 20250903155203
Create Date: 2025-09-03 18:27:40

One row per published version of a page. (PageId, Version) is unique so two
publishes of the same page cannot claim the same version number.
"""

from sitebuilder.migrations.ops import CreateTable, Operation
from sitebuilder.schema.entities import company_fk, company_id, created_at, int_id
from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    ForeignKeySpec,
    IndexSpec,
    column,
    table,
    varchar,
)

revision = "20250903182740"
down_revision = "20250903155203"
name = "AddPublishedSnapshots"


def upgrade() -> list[Operation]:
    return [
        CreateTable(
            table(
                "PublishedSnapshots",
                int_id(),
                company_id(),
                column("PageId", "integer", nullable=False),
                varchar("PageSlug", 255),
                varchar("PageType", 50, nullable=False),
                column("SnapshotData", "jsonb", nullable=False),
                column("Version", "integer", nullable=False),
                column("IsStale", "boolean", nullable=False),
                column("PublishedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
                created_at(),
                foreign_keys=[
                    company_fk("PublishedSnapshots"),
                    ForeignKeySpec(
                        "FK_PublishedSnapshots_WebsitePages_PageId",
                        ("PageId",),
                        "WebsitePages",
                        ondelete="CASCADE",
                    ),
                ],
                indexes=[
                    IndexSpec(
                        "IX_PublishedSnapshots_Lookup", ("CompanyId", "PageSlug", "IsStale")
                    ),
                    IndexSpec("IX_PublishedSnapshots_Version", ("PageId", "Version"), unique=True),
                ],
            )
        ),
    ]
