"""Add WhatsApp widget configuration to StructuralComponentsSettings.

Revision ID: 20250902044424
Revises: 20250901052226
Create Date: 2025-09-02 04:44:24

Existing rows get an empty JSON object.
"""

from sitebuilder.migrations.ops import AddColumn, Operation
from sitebuilder.schema.model import Default, column

revision = "20250902044424"
down_revision = "20250901052226"
name = "AddWhatsAppWidgetToStructuralComponents"


def upgrade() -> list[Operation]:
    return [
        AddColumn(
            "StructuralComponentsSettings",
            column("WhatsAppWidgetConfig", "jsonb", nullable=False, default=Default.literal("{}")),
        ),
    ]
