"""Add Perros table; fold GreenApi settings into WhatsAppConfigs.

Revision ID: 20250831042618
Revises: 20250830000000
Create Date: 2025-08-31 04:26:18

- drops GreenApiWhatsAppConfigs and adds the GreenApi/Provider/mask columns
  to WhatsAppConfigs
- renames WhatsAppConversations to WhatsAppConversation and re-creates its
  primary key and foreign keys under the new name
- moves column defaults (timestamps, enumerated values) to the application
- drops secondary indexes no longer used for lookups; the uniqueness indexes
  on TwilioSid, the conversation triple and the per-company configs are kept
- narrows several contact-form columns; existing rows must already fit
"""

from sitebuilder.migrations.backfill import FillNulls, Reject
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
    Operation,
    RenameIndex,
    RenameTable,
)
from sitebuilder.schema.entities import (
    company_fk,
    company_index,
    created_at,
    green_api_whatsapp_configs,
    int_id,
    updated_at,
)
from sitebuilder.schema.model import (
    CURRENT_TIMESTAMP,
    ColumnSpec,
    Default,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    column,
    table,
    varchar,
)

revision = "20250831042618"
down_revision = "20250830000000"
name = "AddPerroTable"

MESSAGES = "WhatsAppMessages"
CONFIGS = "WhatsAppConfigs"
OLD_CONVERSATIONS = "WhatsAppConversations"
CONVERSATIONS = "WhatsAppConversation"
CONTACT_SETTINGS = "ContactNotificationSettings"
CONTACT_MESSAGES = "ContactMessages"


def drop_default(table_name: str, old: ColumnSpec) -> AlterColumn:
    return AlterColumn(table_name, old, old.replace(default=None))


def upgrade() -> list[Operation]:
    return [
        DropForeignKey(OLD_CONVERSATIONS, company_fk(OLD_CONVERSATIONS)),
        DropForeignKey(
            OLD_CONVERSATIONS,
            ForeignKeySpec(
                "FK_WhatsAppConversations_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
        ),
        DropForeignKey(
            OLD_CONVERSATIONS,
            ForeignKeySpec(
                "FK_WhatsAppConversations_Users_AssignedUserId",
                ("AssignedUserId",),
                "Users",
                ondelete="SET NULL",
            ),
        ),
        DropForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
        ),
        DropForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_Users_RepliedByUserId",
                ("RepliedByUserId",),
                "Users",
                ondelete="SET NULL",
            ),
        ),
        DropForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_WhatsAppConversations_ConversationId",
                ("ConversationId",),
                OLD_CONVERSATIONS,
                ondelete="CASCADE",
            ),
        ),
        DropTable(green_api_whatsapp_configs()),
        DropIndex(
            MESSAGES,
            IndexSpec("IX_WhatsAppMessages_CompanyId_ConversationId", ("CompanyId", "ConversationId")),
        ),
        DropIndex(MESSAGES, IndexSpec("IX_WhatsAppMessages_Direction", ("Direction",))),
        DropIndex(MESSAGES, IndexSpec("IX_WhatsAppMessages_From", ("From",))),
        DropIndex(
            MESSAGES,
            IndexSpec(
                "IX_WhatsAppMessages_ReadAt",
                ("ReadAt",),
                where="\"ReadAt\" IS NULL AND \"Direction\" = 'inbound'",
            ),
        ),
        DropIndex(MESSAGES, IndexSpec("IX_WhatsAppMessages_Status", ("Status",))),
        DropIndex(MESSAGES, IndexSpec("IX_WhatsAppMessages_Timestamp", ("Timestamp",))),
        DropIndex(MESSAGES, IndexSpec("IX_WhatsAppMessages_To", ("To",))),
        DropIndex(CONFIGS, IndexSpec("IX_WhatsAppConfigs_IsActive", ("IsActive",))),
        DropIndex(
            CONFIGS, IndexSpec("IX_WhatsAppConfigs_WhatsAppPhoneNumber", ("WhatsAppPhoneNumber",))
        ),
        DropIndex(CONTACT_MESSAGES, IndexSpec("IX_ContactMessages_CreatedAt", ("CreatedAt",))),
        DropIndex(CONTACT_MESSAGES, IndexSpec("IX_ContactMessages_Email", ("Email",))),
        DropIndex(
            CONTACT_MESSAGES,
            IndexSpec("IX_ContactMessages_IsNotificationSent", ("IsNotificationSent",)),
        ),
        DropIndex(CONTACT_MESSAGES, IndexSpec("IX_ContactMessages_Status", ("Status",))),
        DropPrimaryKey(OLD_CONVERSATIONS, PrimaryKeySpec("PK_WhatsAppConversations")),
        DropIndex(
            OLD_CONVERSATIONS,
            IndexSpec("IX_WhatsAppConversations_LastMessageAt", ("LastMessageAt",)),
        ),
        DropIndex(OLD_CONVERSATIONS, IndexSpec("IX_WhatsAppConversations_Priority", ("Priority",))),
        DropIndex(OLD_CONVERSATIONS, IndexSpec("IX_WhatsAppConversations_Status", ("Status",))),
        DropIndex(
            OLD_CONVERSATIONS,
            IndexSpec(
                "IX_WhatsAppConversations_UnreadCount", ("UnreadCount",), where='"UnreadCount" > 0'
            ),
        ),
        DropColumn("NewsletterSubscribers", varchar("ConfirmationToken", 255)),
        DropColumn(
            "NewsletterSubscribers",
            column("EmailConfirmed", "boolean", nullable=False, default=Default.literal(False)),
        ),
        DropColumn("NewsletterSubscribers", column("EmailConfirmedAt", "timestamptz")),
        DropColumn("NewsletterSubscribers", varchar("UnsubscribeToken", 255)),
        RenameTable(OLD_CONVERSATIONS, CONVERSATIONS),
        RenameIndex(
            CONVERSATIONS,
            "IX_WhatsAppConversations_CustomerId",
            "IX_WhatsAppConversation_CustomerId",
        ),
        RenameIndex(
            CONVERSATIONS,
            "IX_WhatsAppConversations_AssignedUserId",
            "IX_WhatsAppConversation_AssignedUserId",
        ),
        # WhatsAppMessages
        drop_default(MESSAGES, updated_at()),
        drop_default(
            MESSAGES, column("Timestamp", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP)
        ),
        drop_default(MESSAGES, varchar("Status", 20, nullable=False, default="received")),
        drop_default(MESSAGES, varchar("MessageType", 20, nullable=False, default="text")),
        drop_default(MESSAGES, varchar("Direction", 10, nullable=False, default="inbound")),
        drop_default(MESSAGES, created_at()),
        # WhatsAppConfigs
        drop_default(CONFIGS, updated_at()),
        AlterColumn(
            CONFIGS,
            varchar("TwilioAuthToken", 500, nullable=False, default=""),
            varchar("TwilioAuthToken", 500),
            reverse_backfill=FillNulls(""),
        ),
        AlterColumn(
            CONFIGS,
            varchar("TwilioAccountSid", 500, nullable=False, default=""),
            varchar("TwilioAccountSid", 500),
            reverse_backfill=FillNulls(""),
        ),
        drop_default(CONFIGS, created_at()),
        AddColumn(CONFIGS, varchar("GreenApiInstanceId", 100)),
        AddColumn(CONFIGS, varchar("GreenApiToken", 500)),
        AddColumn(CONFIGS, varchar("GreenApiTokenMask", 100)),
        AddColumn(CONFIGS, varchar("Provider", 20, nullable=False, default="Twilio")),
        AddColumn(CONFIGS, varchar("TwilioAccountSidMask", 100)),
        AddColumn(CONFIGS, varchar("TwilioAuthTokenMask", 100)),
        AlterColumn(
            "Users",
            column("PasswordHash", "text", nullable=False),
            varchar("PasswordHash", 255, nullable=False),
            backfill=Reject("password hashes are at most 255 characters"),
        ),
        # ContactNotificationSettings
        drop_default(CONTACT_SETTINGS, updated_at()),
        AlterColumn(
            CONTACT_SETTINGS,
            varchar("ToastSuccessMessage", 100, nullable=False, default="Message sent successfully!"),
            varchar("ToastSuccessMessage", 200, nullable=False),
            reverse_backfill=Reject(),
        ),
        AlterColumn(
            CONTACT_SETTINGS,
            varchar(
                "ToastErrorMessage",
                100,
                nullable=False,
                default="Error sending message. Please try again.",
            ),
            varchar("ToastErrorMessage", 200, nullable=False),
            reverse_backfill=Reject(),
        ),
        AlterColumn(
            CONTACT_SETTINGS,
            varchar("NotificationEmailAddress", 255, nullable=False, default=""),
            varchar("NotificationEmailAddress", 100),
            backfill=Reject(),
            reverse_backfill=FillNulls(""),
        ),
        drop_default(
            CONTACT_SETTINGS,
            varchar(
                "EmailSubjectTemplate", 200, nullable=False, default="New Contact Message from {name}"
            ),
        ),
        drop_default(CONTACT_SETTINGS, created_at()),
        # ContactMessages
        AlterColumn(
            CONTACT_MESSAGES,
            varchar("Status", 50, nullable=False, default="unread"),
            varchar("Status", 20, nullable=False),
            backfill=Reject("status values are at most 20 characters"),
        ),
        AlterColumn(
            CONTACT_MESSAGES,
            varchar("Email", 255, nullable=False),
            varchar("Email", 100, nullable=False),
            backfill=Reject(),
        ),
        drop_default(CONTACT_MESSAGES, created_at()),
        # WhatsAppConversation
        drop_default(CONVERSATIONS, updated_at()),
        drop_default(CONVERSATIONS, varchar("Status", 20, nullable=False, default="active")),
        drop_default(
            CONVERSATIONS,
            column("StartedAt", "timestamptz", nullable=False, default=CURRENT_TIMESTAMP),
        ),
        drop_default(CONVERSATIONS, varchar("Priority", 10, nullable=False, default="normal")),
        drop_default(CONVERSATIONS, created_at()),
        AddPrimaryKey(CONVERSATIONS, PrimaryKeySpec("PK_WhatsAppConversation")),
        CreateTable(
            table(
                "Perros",
                int_id(),
                column("Nombre", "text", nullable=False),
                column("Raza", "text", nullable=False),
                column("Edad", "integer", nullable=False),
                created_at(None),
            )
        ),
        CreateIndex(MESSAGES, company_index(MESSAGES)),
        CreateIndex(CONVERSATIONS, company_index(CONVERSATIONS)),
        AddForeignKey(CONVERSATIONS, company_fk(CONVERSATIONS)),
        AddForeignKey(
            CONVERSATIONS,
            ForeignKeySpec(
                "FK_WhatsAppConversation_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
        ),
        AddForeignKey(
            CONVERSATIONS,
            ForeignKeySpec(
                "FK_WhatsAppConversation_Users_AssignedUserId",
                ("AssignedUserId",),
                "Users",
                ondelete="SET NULL",
            ),
        ),
        AddForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_Customers_CustomerId",
                ("CustomerId",),
                "Customers",
                ondelete="SET NULL",
            ),
        ),
        AddForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_Users_RepliedByUserId",
                ("RepliedByUserId",),
                "Users",
                ondelete="SET NULL",
            ),
        ),
        AddForeignKey(
            MESSAGES,
            ForeignKeySpec(
                "FK_WhatsAppMessages_WhatsAppConversation_ConversationId",
                ("ConversationId",),
                CONVERSATIONS,
                ondelete="CASCADE",
            ),
        ),
    ]
