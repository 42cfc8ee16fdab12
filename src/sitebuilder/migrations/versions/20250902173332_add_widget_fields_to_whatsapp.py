"""Add web-widget fields to WhatsApp conversations and messages.

Revision ID: 20250902173332
Revises: 20250902044424
Create Date: 2025-09-02 17:33:32

Renames WhatsAppConversation back to WhatsAppConversations and adds the
Source/SessionId/CustomerEmail columns the chat widget needs. Existing rows
are tagged with the "whatsapp" source.
"""

from sitebuilder.migrations.ops import (
    AddColumn,
    AddForeignKey,
    AddPrimaryKey,
    CreateIndex,
    DropForeignKey,
    DropPrimaryKey,
    Operation,
    RenameIndex,
    RenameTable,
)
from sitebuilder.schema.entities import company_fk
from sitebuilder.schema.model import ForeignKeySpec, IndexSpec, PrimaryKeySpec, varchar

revision = "20250902173332"
down_revision = "20250902044424"
name = "AddWidgetFieldsToWhatsApp"

OLD = "WhatsAppConversation"
NEW = "WhatsAppConversations"


def _conversation_fks(table_name: str) -> list[ForeignKeySpec]:
    return [
        company_fk(table_name),
        ForeignKeySpec(
            f"FK_{table_name}_Customers_CustomerId",
            ("CustomerId",),
            "Customers",
            ondelete="SET NULL",
        ),
        ForeignKeySpec(
            f"FK_{table_name}_Users_AssignedUserId",
            ("AssignedUserId",),
            "Users",
            ondelete="SET NULL",
        ),
    ]


def _message_fk(conversations: str) -> ForeignKeySpec:
    return ForeignKeySpec(
        f"FK_WhatsAppMessages_{conversations}_ConversationId",
        ("ConversationId",),
        conversations,
        ondelete="CASCADE",
    )


def upgrade() -> list[Operation]:
    return [
        *[DropForeignKey(OLD, fk) for fk in _conversation_fks(OLD)],
        DropForeignKey("WhatsAppMessages", _message_fk(OLD)),
        DropPrimaryKey(OLD, PrimaryKeySpec("PK_WhatsAppConversation")),
        RenameTable(OLD, NEW),
        RenameIndex(NEW, "IX_WhatsAppConversation_CustomerId", "IX_WhatsAppConversations_CustomerId"),
        RenameIndex(NEW, "IX_WhatsAppConversation_CompanyId", "IX_WhatsAppConversations_CompanyId"),
        RenameIndex(
            NEW,
            "IX_WhatsAppConversation_AssignedUserId",
            "IX_WhatsAppConversations_AssignedUserId",
        ),
        AddColumn("WhatsAppMessages", varchar("SessionId", 100)),
        AddColumn("WhatsAppMessages", varchar("Source", 20, nullable=False, default="whatsapp")),
        AddColumn(NEW, varchar("CustomerEmail", 255)),
        AddColumn(NEW, varchar("SessionId", 100)),
        AddColumn(NEW, varchar("Source", 20, nullable=False, default="whatsapp")),
        AddPrimaryKey(NEW, PrimaryKeySpec("PK_WhatsAppConversations")),
        *[AddForeignKey(NEW, fk) for fk in _conversation_fks(NEW)],
        AddForeignKey("WhatsAppMessages", _message_fk(NEW)),
        CreateIndex("WhatsAppMessages", IndexSpec("IX_WhatsAppMessages_SessionId", ("SessionId",))),
    ]
