"""Soft delete for WhatsApp messages; widen From/To for widget identifiers.

Revision ID: 20250903155203
Revises: 20250902173332
Create Date: 2025-09-03 15:52:03

Deleted messages keep their row and conversation link; IsDeleted, DeletedAt
and DeletedByUserId record who removed them. DeletedByUserId is informational
and carries no foreign key. Reverting narrows From/To back to 20 characters
and fails if any stored address is longer.
"""

from sitebuilder.migrations.backfill import Reject
from sitebuilder.migrations.ops import AddColumn, AlterColumn, Operation
from sitebuilder.schema.model import Default, column, varchar

revision = "20250903155203"
down_revision = "20250902173332"
name = "AddSoftDeleteToWhatsAppMessages"


def upgrade() -> list[Operation]:
    return [
        AlterColumn(
            "WhatsAppMessages",
            varchar("To", 20, nullable=False),
            varchar("To", 255, nullable=False),
            reverse_backfill=Reject("widget session addresses do not fit in 20 characters"),
        ),
        AlterColumn(
            "WhatsAppMessages",
            varchar("From", 20, nullable=False),
            varchar("From", 255, nullable=False),
            reverse_backfill=Reject("widget session addresses do not fit in 20 characters"),
        ),
        AddColumn("WhatsAppMessages", column("DeletedAt", "timestamptz")),
        AddColumn("WhatsAppMessages", column("DeletedByUserId", "integer")),
        AddColumn(
            "WhatsAppMessages",
            column("IsDeleted", "boolean", nullable=False, default=Default.literal(False)),
        ),
    ]
