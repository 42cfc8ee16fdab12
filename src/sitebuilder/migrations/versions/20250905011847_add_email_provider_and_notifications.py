"""Add EmailProviderSettings and Notifications.

Revision ID: 20250905011847
Revises: 20250903182740
Create Date: 2025-09-05 01:18:47

Both tables are company-scoped (cascade FK and CompanyId-leading index).
Notifications point at other entities by a (type, id) string pair only.
"""

from sitebuilder.migrations.ops import CreateTable, Operation
from sitebuilder.schema.entities import (
    company_fk,
    company_id,
    company_index,
    created_at,
    int_id,
    updated_at,
)
from sitebuilder.schema.model import IndexSpec, column, table, varchar

revision = "20250905011847"
down_revision = "20250903182740"
name = "AddEmailProviderAndNotifications"


def upgrade() -> list[Operation]:
    return [
        CreateTable(
            table(
                "EmailProviderSettings",
                int_id(),
                company_id(),
                varchar("Provider", 50, nullable=False),
                varchar("ApiKey", 1000),
                varchar("ApiKeyMask", 120),
                varchar("FromEmail", 255),
                varchar("FromName", 255),
                column("IsActive", "boolean", nullable=False),
                created_at(None),
                updated_at(None),
                foreign_keys=[company_fk("EmailProviderSettings")],
                indexes=[company_index("EmailProviderSettings", unique=True)],
            )
        ),
        CreateTable(
            table(
                "Notifications",
                int_id(),
                company_id(),
                varchar("Type", 50, nullable=False),
                varchar("Title", 200, nullable=False),
                varchar("Message", 1000),
                column("Data", "jsonb"),
                column("IsRead", "boolean", nullable=False),
                created_at(None),
                column("ReadAt", "timestamptz"),
                varchar("RelatedEntityType", 50),
                varchar("RelatedEntityId", 100),
                foreign_keys=[company_fk("Notifications")],
                indexes=[IndexSpec("IX_Notifications_CompanyId_IsRead", ("CompanyId", "IsRead"))],
            )
        ),
    ]
