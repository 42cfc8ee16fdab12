"""Add webhook authorization fields to WhatsAppConfigs.

Revision ID: 20250901052226
Revises: 20250831042618
Create Date: 2025-09-01 05:22:26
"""

from sitebuilder.migrations.ops import AddColumn, Operation
from sitebuilder.schema.model import column, varchar

revision = "20250901052226"
down_revision = "20250831042618"
name = "AddWebhookAuthFieldsToWhatsAppConfig"


def upgrade() -> list[Operation]:
    return [
        AddColumn(
            "WhatsAppConfigs",
            varchar("HeaderName", 100, nullable=False, default="Authorization"),
        ),
        AddColumn(
            "WhatsAppConfigs",
            varchar("HeaderValueTemplate", 200, nullable=False, default="Bearer {secret}"),
        ),
        AddColumn("WhatsAppConfigs", column("LastWebhookEventAt", "timestamptz")),
        AddColumn("WhatsAppConfigs", varchar("WebhookSecret", 500)),
    ]
